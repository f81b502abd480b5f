"""Redirect-gateway return handling."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from scribedesk.adapters.backend.base import JobBackend
from scribedesk.core.logging_safety import safe_log_identifier
from scribedesk.schemas.auth import AuthPrincipal
from scribedesk.schemas.job import JobOrigin
from scribedesk.schemas.payment import PaymentCallbackParams, PaymentPhase
from scribedesk.services.payments import PaymentHandshakeCoordinator
from scribedesk.services.reconciliation import ReconciliationEngine
from scribedesk.services.repository_client import JobRepositoryClient

logger = logging.getLogger(__name__)


class RedirectNavigator:
    """Captures the navigation target so it can be answered as an HTTP redirect."""

    def __init__(self) -> None:
        self.location: str | None = None
        self.navigations = 0

    def navigate(self, path: str) -> None:
        self.location = path
        self.navigations += 1


class PaymentCallbackService:
    def __init__(
        self,
        backend: JobBackend,
        *,
        post_payment_path: str,
        failure_paths: dict[JobOrigin, str],
    ) -> None:
        self._backend = backend
        self._post_payment_path = post_payment_path
        self._failure_paths = failure_paths

    async def handle_return(
        self,
        principal: AuthPrincipal,
        *,
        reference: str | None,
        job_id: str | None,
        origin: str | None,
        gateway: str | None,
    ) -> str:
        """Verify a redirect return and answer where the actor should land next."""
        try:
            params = PaymentCallbackParams(reference=reference, job_id=job_id, origin=origin, gateway=gateway)
        except ValidationError:
            logger.warning(
                "payment.callback_incomplete principal_id=%s origin=%s",
                safe_log_identifier(principal.user_id, prefix="pid"),
                origin,
            )
            return self._failure_path(origin)

        navigator = RedirectNavigator()
        engine = ReconciliationEngine(
            lambda: JobRepositoryClient(self._backend).fetch_active_jobs(principal.user_id, principal.role),
            label=safe_log_identifier(principal.user_id, prefix="sid"),
        )
        coordinator = PaymentHandshakeCoordinator(
            self._backend,
            engine,
            navigator,
            post_payment_path=self._post_payment_path,
        )
        step = await coordinator.verify_redirect_return(params)
        engine.close()

        logger.info(
            "payment.callback_resolved reference=%s phase=%s",
            safe_log_identifier(params.reference, prefix="ref"),
            step.phase.value,
        )
        if step.phase is PaymentPhase.VERIFIED and navigator.location is not None:
            return navigator.location
        return self._failure_path(params.origin.value)

    def _failure_path(self, origin: str | None) -> str:
        try:
            job_origin = JobOrigin(origin) if origin else JobOrigin.NEGOTIATION
        except ValueError:
            job_origin = JobOrigin.NEGOTIATION
        return self._failure_paths[job_origin]


__all__ = ["PaymentCallbackService", "RedirectNavigator"]

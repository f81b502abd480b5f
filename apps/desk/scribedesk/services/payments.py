"""Payment handshake coordinator.

Drives one ``PaymentAttempt`` from gateway selection to a verified or failed outcome.
Redirect gateways leave the process; their return trip is handled by a fresh coordinator
through ``verify_redirect_return``. The backing store decides whether a job is already
paid, so a repeated verification that the store rejects is confirmed against the next
authoritative snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Callable, Protocol

from scribedesk.adapters.backend.base import JobBackend
from scribedesk.core.logging_safety import safe_log_identifier, short_job_ref
from scribedesk.domain.status_catalog import check_action, is_paid
from scribedesk.errors import BackendError
from scribedesk.schemas.error import ErrorKind, LifecycleError
from scribedesk.schemas.job import ActorRole, Job, JobOrigin, LifecycleAction
from scribedesk.schemas.payment import (
    Gateway,
    GatewayKind,
    PaymentAttempt,
    PaymentCallbackParams,
    PaymentCustomer,
    PaymentLaunch,
    PaymentOutcome,
    PaymentPhase,
)
from scribedesk.services.reconciliation import ReconciliationEngine

logger = logging.getLogger(__name__)

_SELECTABLE_PHASES = frozenset({PaymentPhase.IDLE, PaymentPhase.METHOD_SELECTED, PaymentPhase.FAILED})


class Navigator(Protocol):
    def navigate(self, path: str) -> None:
        """Move the actor to ``path``."""


@dataclass(slots=True)
class PaymentStep:
    phase: PaymentPhase
    launch: PaymentLaunch | None = None
    error: LifecycleError | None = None


def _phase_error(action: str, phase: PaymentPhase) -> LifecycleError:
    return LifecycleError(
        kind=ErrorKind.VALIDATION,
        code="PAYMENT_PHASE_INVALID",
        message=f"Cannot {action} while the payment is {phase.value}",
        details={"phase": phase.value},
    )


class PaymentHandshakeCoordinator:
    def __init__(
        self,
        backend: JobBackend,
        engine: ReconciliationEngine,
        navigator: Navigator,
        *,
        post_payment_path: str,
        on_auth_error: Callable[[LifecycleError], None] | None = None,
    ) -> None:
        self._backend = backend
        self._engine = engine
        self._navigator = navigator
        self._post_payment_path = post_payment_path
        self._on_auth_error = on_auth_error
        self._phase = PaymentPhase.IDLE
        self._job: Job | None = None
        self._gateway: Gateway | None = None
        self._attempt: PaymentAttempt | None = None
        self._error: LifecycleError | None = None

    @property
    def phase(self) -> PaymentPhase:
        return self._phase

    @property
    def attempt(self) -> PaymentAttempt | None:
        return self._attempt

    @property
    def error(self) -> LifecycleError | None:
        return self._error

    def select_method(self, job: Job, gateway: Gateway, role: ActorRole = ActorRole.CLIENT) -> PaymentStep:
        if self._phase not in _SELECTABLE_PHASES:
            return PaymentStep(phase=self._phase, error=_phase_error("select a gateway", self._phase))

        unavailable = check_action(job.origin, job.status, role, LifecycleAction.INITIATE_PAYMENT)
        if unavailable is not None:
            return PaymentStep(phase=self._phase, error=unavailable)

        self._job = job
        self._gateway = gateway
        self._attempt = None
        self._error = None
        self._phase = PaymentPhase.METHOD_SELECTED
        return PaymentStep(phase=self._phase)

    async def initiate(self, customer: PaymentCustomer) -> PaymentStep:
        if self._phase is not PaymentPhase.METHOD_SELECTED or self._job is None or self._gateway is None:
            return PaymentStep(phase=self._phase, error=_phase_error("initiate", self._phase))

        job, gateway = self._job, self._gateway
        self._phase = PaymentPhase.INITIATING
        try:
            launch = await self._backend.initiate_payment(
                origin=job.origin,
                job_id=job.id,
                gateway=gateway,
                amount=job.price_amount,
                currency=job.currency,
                customer=customer,
            )
        except BackendError as exc:
            error = exc.to_lifecycle_error()
            logger.warning(
                "payment.initiate_failed job=%s gateway=%s kind=%s code=%s",
                short_job_ref(job.id),
                gateway.value,
                error.kind.value,
                error.code,
            )
            if error.kind is ErrorKind.NETWORK:
                # Nothing was created; the same selection may be initiated again.
                self._phase = PaymentPhase.METHOD_SELECTED
                self._error = error
                return PaymentStep(phase=self._phase, error=error)
            if error.kind is ErrorKind.AUTH and self._on_auth_error is not None:
                self._on_auth_error(error)
            return self._fail(error)

        self._attempt = PaymentAttempt(
            job_id=job.id,
            origin=job.origin,
            gateway=gateway,
            amount=job.price_amount,
            currency=job.currency,
            reference=launch.reference,
        )
        self._phase = (
            PaymentPhase.REDIRECT_PENDING if gateway.kind is GatewayKind.REDIRECT else PaymentPhase.WIDGET_PENDING
        )
        logger.info(
            "payment.initiated job=%s gateway=%s reference=%s",
            short_job_ref(job.id),
            gateway.value,
            safe_log_identifier(launch.reference, prefix="ref"),
        )
        return PaymentStep(phase=self._phase, launch=launch)

    async def on_widget_success(self, reference: str | None = None) -> PaymentStep:
        attempt = self._attempt
        if self._phase is PaymentPhase.VERIFIED and attempt is not None and reference in (None, attempt.reference):
            return PaymentStep(phase=self._phase)
        if self._phase is not PaymentPhase.WIDGET_PENDING or attempt is None:
            return PaymentStep(phase=self._phase, error=_phase_error("confirm a widget payment", self._phase))

        reference = reference or attempt.reference
        if not reference:
            return self._fail(
                LifecycleError(
                    kind=ErrorKind.PAYMENT,
                    code="PAYMENT_REFERENCE_MISSING",
                    message="The gateway did not report a payment reference",
                )
            )
        if reference != attempt.reference:
            self._attempt = attempt.model_copy(update={"reference": reference})
        return await self._verify(attempt.origin, attempt.job_id, reference, attempt.gateway)

    def on_widget_failed(self, message: str | None = None) -> PaymentStep:
        if self._phase is not PaymentPhase.WIDGET_PENDING:
            return PaymentStep(phase=self._phase, error=_phase_error("fail a widget payment", self._phase))
        return self._fail(
            LifecycleError(
                kind=ErrorKind.PAYMENT,
                code="PAYMENT_FAILED",
                message=message or "The payment gateway reported a failure",
            )
        )

    def on_widget_close(self) -> PaymentStep:
        # Widgets also close after a successful charge; only an unfinished attempt is cancelled.
        if self._phase is not PaymentPhase.WIDGET_PENDING:
            return PaymentStep(phase=self._phase)
        return self._fail(
            LifecycleError(
                kind=ErrorKind.PAYMENT,
                code="PAYMENT_CANCELLED",
                message="Payment was cancelled before it completed",
            )
        )

    async def verify_redirect_return(self, params: PaymentCallbackParams) -> PaymentStep:
        """Verify a redirect gateway's return trip using only the callback's own values."""
        if self._phase is not PaymentPhase.IDLE:
            return PaymentStep(phase=self._phase, error=_phase_error("verify a redirect return", self._phase))
        return await self._verify(params.origin, params.job_id, params.reference, params.gateway)

    def reset(self) -> PaymentStep:
        if self._phase in (PaymentPhase.INITIATING, PaymentPhase.VERIFYING):
            return PaymentStep(phase=self._phase, error=_phase_error("reset", self._phase))
        self._phase = PaymentPhase.IDLE
        self._job = None
        self._gateway = None
        self._attempt = None
        self._error = None
        return PaymentStep(phase=self._phase)

    async def _verify(self, origin: JobOrigin, job_id: str, reference: str, gateway: Gateway) -> PaymentStep:
        self._phase = PaymentPhase.VERIFYING
        safe_reference = safe_log_identifier(reference, prefix="ref")
        try:
            verification = await self._backend.verify_payment(
                origin=origin,
                job_id=job_id,
                reference=reference,
                gateway=gateway,
            )
        except BackendError as exc:
            error = exc.to_lifecycle_error()
            logger.warning(
                "payment.verify_rejected job=%s reference=%s kind=%s code=%s",
                short_job_ref(job_id),
                safe_reference,
                error.kind.value,
                error.code,
            )
            if error.kind is ErrorKind.CONFLICT:
                return await self._confirm_from_snapshot(origin, job_id, error)
            if error.kind is ErrorKind.AUTH and self._on_auth_error is not None:
                self._on_auth_error(error)
            return self._fail(error)

        if not verification.verified:
            error = LifecycleError(
                kind=ErrorKind.PAYMENT,
                code="PAYMENT_NOT_VERIFIED",
                message=verification.message or "Payment could not be verified",
            )
            return await self._confirm_from_snapshot(origin, job_id, error)

        logger.info("payment.verified job=%s reference=%s", short_job_ref(job_id), safe_reference)
        await self._engine.refresh()
        return self._complete()

    async def _confirm_from_snapshot(self, origin: JobOrigin, job_id: str, error: LifecycleError) -> PaymentStep:
        jobs = await self._engine.refresh()
        job = jobs.get(job_id)
        if job is not None and job.origin is origin and is_paid(origin, job.status):
            logger.info("payment.already_verified job=%s status=%s", short_job_ref(job_id), job.status.value)
            return self._complete()
        return self._fail(error)

    def _complete(self) -> PaymentStep:
        self._phase = PaymentPhase.VERIFIED
        self._error = None
        if self._attempt is not None:
            self._attempt = self._attempt.model_copy(update={"outcome": PaymentOutcome.VERIFIED})
        if not self._engine.closed:
            self._navigator.navigate(self._post_payment_path)
        return PaymentStep(phase=self._phase)

    def _fail(self, error: LifecycleError) -> PaymentStep:
        self._phase = PaymentPhase.FAILED
        self._error = error
        if self._attempt is not None:
            self._attempt = self._attempt.model_copy(update={"outcome": PaymentOutcome.FAILED})
        return PaymentStep(phase=self._phase, error=error)


__all__ = ["Navigator", "PaymentHandshakeCoordinator", "PaymentStep"]

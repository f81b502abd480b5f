"""Actor session: owns the push channel and wires lifecycle components together."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
import logging
from typing import Any, Mapping

from pydantic import BaseModel

from scribedesk.adapters.backend.base import JobBackend
from scribedesk.adapters.push.base import PushChannel, Subscription
from scribedesk.core.logging_safety import safe_log_identifier, short_job_ref
from scribedesk.schemas.error import LifecycleError
from scribedesk.schemas.events import ACTIVITY_EVENT_NAMES, STATUS_EVENT_NAMES, PushEvent
from scribedesk.schemas.job import ActorRole, Job, JobList, LifecycleAction
from scribedesk.services.lifecycle import ActionResult, LifecycleActionExecutor
from scribedesk.services.payments import Navigator, PaymentHandshakeCoordinator
from scribedesk.services.reconciliation import ReconciliationEngine
from scribedesk.services.repository_client import JobRepositoryClient

logger = logging.getLogger(__name__)


class Session:
    """One authenticated actor's lifecycle session.

    The session holds the only push-channel connection for its actor. ``close`` releases
    every subscription and the connection in one call; results of work still in flight
    when it runs are discarded.
    """

    def __init__(
        self,
        *,
        actor_id: str,
        role: ActorRole,
        backend: JobBackend,
        channel: PushChannel,
        navigator: Navigator,
        post_payment_path: str = "/client-dashboard",
    ) -> None:
        if channel.actor_id != actor_id:
            raise ValueError("push channel belongs to a different actor")

        self.actor_id = actor_id
        self.role = role
        self._backend = backend
        self._channel = channel
        self._navigator = navigator
        self._post_payment_path = post_payment_path
        self._label = safe_log_identifier(actor_id, prefix="sid")
        self._subscriptions: list[Subscription] = []
        self._opened = False
        self._closed = False
        self._teardown: asyncio.Task[None] | None = None
        self.close_reason: str | None = None

        self.repository = JobRepositoryClient(backend)
        self.engine = ReconciliationEngine(
            lambda: self.repository.fetch_active_jobs(actor_id, role),
            label=self._label,
            on_auth_error=self._handle_auth_error,
        )
        self.executor = LifecycleActionExecutor(backend, self.engine, on_auth_error=self._handle_auth_error)

    @property
    def jobs(self) -> JobList:
        return self.engine.jobs

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self) -> JobList:
        if self._closed:
            raise RuntimeError("session is closed")
        if not self._opened:
            await self._channel.connect()
            for event_name in sorted(STATUS_EVENT_NAMES | ACTIVITY_EVENT_NAMES):
                self._subscriptions.append(self._channel.subscribe(event_name, self._on_push))
            self._opened = True
            logger.info(
                "session.opened session=%s role=%s subscriptions=%s",
                self._label,
                self.role.value,
                len(self._subscriptions),
            )
        return await self.engine.refresh()

    async def attempt(
        self,
        action: LifecycleAction,
        job: Job,
        payload: BaseModel | Mapping[str, Any] | None = None,
    ) -> ActionResult:
        return await self.executor.attempt(action, job, self.role, payload)

    def payment_coordinator(self) -> PaymentHandshakeCoordinator:
        return PaymentHandshakeCoordinator(
            self._backend,
            self.engine,
            self._navigator,
            post_payment_path=self._post_payment_path,
            on_auth_error=self._handle_auth_error,
        )

    def note_outgoing_message(self, job_id: str, text: str, timestamp: datetime | None = None) -> bool:
        """Optimistically show a message the actor just sent as the job's last activity."""
        return self.engine.apply_activity(job_id, text, timestamp or datetime.now(UTC))

    async def close(self, reason: str = "ended") -> None:
        if self._closed:
            return
        self._closed = True
        self.close_reason = reason
        self.engine.close()
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions.clear()
        try:
            await self._channel.disconnect()
        finally:
            await self._backend.aclose()
        logger.info("session.closed session=%s reason=%s", self._label, reason)

    async def wait_closed(self) -> None:
        if self._teardown is not None:
            await self._teardown

    def _on_push(self, event_name: str, payload: Any) -> None:
        if self._closed:
            return
        try:
            event = PushEvent.from_payload(event_name, payload)
        except ValueError as exc:
            logger.warning("push.dropped session=%s name=%s reason=%s", self._label, event_name, exc)
            return
        logger.debug("push.received session=%s name=%s job=%s", self._label, event.name, short_job_ref(event.job_id))
        self.engine.apply_event(event)

    def _handle_auth_error(self, error: LifecycleError) -> None:
        if self._closed or self._teardown is not None:
            return
        logger.warning("session.auth_failed session=%s code=%s", self._label, error.code)
        self._teardown = asyncio.get_running_loop().create_task(self.close(reason="auth"))


__all__ = ["Session"]

"""Lifecycle action executor."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Callable, Mapping

from pydantic import BaseModel, ValidationError

from scribedesk.adapters.backend.base import JobBackend, MutationRequest
from scribedesk.core.logging_safety import short_job_ref
from scribedesk.domain.status_catalog import check_action
from scribedesk.errors import BackendError
from scribedesk.schemas.error import ErrorKind, LifecycleError
from scribedesk.schemas.job import (
    ActorRole,
    ClientCompletionPayload,
    CounterOfferPayload,
    Job,
    JobOrigin,
    LifecycleAction,
    RejectPayload,
    TranscriberCompletionPayload,
)
from scribedesk.services.reconciliation import ReconciliationEngine

logger = logging.getLogger(__name__)

# (action, role, origin) -> payload model; ``None`` in a slot matches any value.
_PAYLOAD_MODELS: tuple[tuple[LifecycleAction, ActorRole | None, JobOrigin | None, type[BaseModel]], ...] = (
    (LifecycleAction.COUNTER, None, None, CounterOfferPayload),
    (LifecycleAction.REJECT, None, None, RejectPayload),
    (LifecycleAction.MARK_COMPLETE, ActorRole.CLIENT, None, ClientCompletionPayload),
    (LifecycleAction.MARK_COMPLETE, ActorRole.TRANSCRIBER, JobOrigin.DIRECT_UPLOAD, TranscriberCompletionPayload),
)
_OPTIONAL_PAYLOADS: frozenset[type[BaseModel]] = frozenset({TranscriberCompletionPayload})


@dataclass(slots=True)
class ActionAck:
    job_id: str
    action: LifecycleAction
    message: str | None = None


@dataclass(slots=True)
class ActionResult:
    ack: ActionAck | None = None
    error: LifecycleError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def payload_model_for(action: LifecycleAction, role: ActorRole, origin: JobOrigin) -> type[BaseModel] | None:
    for candidate_action, candidate_role, candidate_origin, model in _PAYLOAD_MODELS:
        if candidate_action is not action:
            continue
        if candidate_role is not None and candidate_role is not role:
            continue
        if candidate_origin is not None and candidate_origin is not origin:
            continue
        return model
    return None


def build_payload(
    action: LifecycleAction,
    role: ActorRole,
    origin: JobOrigin,
    payload: BaseModel | Mapping[str, Any] | None,
) -> tuple[BaseModel | None, LifecycleError | None]:
    """Validate caller input locally; no request is issued for an invalid payload."""
    model = payload_model_for(action, role, origin)
    if model is None:
        return None, None
    if isinstance(payload, model):
        return payload, None
    if payload is None and model in _OPTIONAL_PAYLOADS:
        return model(), None

    raw = payload.model_dump() if isinstance(payload, BaseModel) else dict(payload or {})
    try:
        return model.model_validate(raw), None
    except ValidationError as exc:
        fields = sorted({".".join(str(part) for part in error["loc"]) or "payload" for error in exc.errors()})
        return None, LifecycleError(
            kind=ErrorKind.VALIDATION,
            code="INVALID_PAYLOAD",
            message="Required action details are missing or invalid",
            details={"attempted_action": action.value, "fields": fields},
        )


class LifecycleActionExecutor:
    """Validates, issues and reconciles one lifecycle mutation at a time per call."""

    def __init__(
        self,
        backend: JobBackend,
        engine: ReconciliationEngine,
        *,
        on_auth_error: Callable[[LifecycleError], None] | None = None,
    ) -> None:
        self._backend = backend
        self._engine = engine
        self._on_auth_error = on_auth_error

    async def attempt(
        self,
        action: LifecycleAction,
        job: Job,
        role: ActorRole,
        payload: BaseModel | Mapping[str, Any] | None = None,
    ) -> ActionResult:
        if action is LifecycleAction.INITIATE_PAYMENT:
            return ActionResult(
                error=LifecycleError(
                    kind=ErrorKind.VALIDATION,
                    code="PAYMENT_HANDSHAKE_REQUIRED",
                    message="Payments are started through the payment handshake",
                    details={"attempted_action": action.value},
                )
            )

        unavailable = check_action(job.origin, job.status, role, action)
        if unavailable is not None:
            logger.info(
                "action.unavailable job=%s action=%s status=%s",
                short_job_ref(job.id),
                action.value,
                job.status.value,
            )
            return ActionResult(error=unavailable)

        body, invalid = build_payload(action, role, job.origin, payload)
        if invalid is not None:
            return ActionResult(error=invalid)

        request = MutationRequest(origin=job.origin, job_id=job.id, role=role, action=action, payload=body)
        try:
            response = await self._backend.perform_action(request)
        except BackendError as exc:
            return await self._failed(job, action, exc)

        logger.info("action.applied job=%s action=%s origin=%s", short_job_ref(job.id), action.value, job.origin.value)
        if not self._engine.closed:
            await self._engine.refresh()
        return ActionResult(ack=ActionAck(job_id=job.id, action=action, message=response.message))

    async def _failed(self, job: Job, action: LifecycleAction, exc: BackendError) -> ActionResult:
        error = exc.to_lifecycle_error()
        logger.warning(
            "action.failed job=%s action=%s kind=%s code=%s",
            short_job_ref(job.id),
            action.value,
            error.kind.value,
            error.code,
        )
        if error.kind is ErrorKind.CONFLICT and not self._engine.closed:
            await self._engine.refresh()
        elif error.kind is ErrorKind.AUTH and self._on_auth_error is not None:
            self._on_auth_error(error)
        return ActionResult(error=error)


__all__ = [
    "ActionAck",
    "ActionResult",
    "LifecycleActionExecutor",
    "build_payload",
    "payload_model_for",
]

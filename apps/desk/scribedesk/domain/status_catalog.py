"""Per-origin job lifecycle catalog: display semantics and legal actions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from scribedesk.schemas.error import ErrorKind, LifecycleError
from scribedesk.schemas.job import (
    ActorRole,
    DirectUploadStatus,
    JobOrigin,
    JobStatus,
    LifecycleAction,
    NegotiationStatus,
)

_CLIENT = ActorRole.CLIENT
_TRANSCRIBER = ActorRole.TRANSCRIBER
_N = NegotiationStatus
_D = DirectUploadStatus
_A = LifecycleAction


@dataclass(frozen=True, slots=True)
class StatusDisplay:
    color: str
    text: str


@dataclass(frozen=True, slots=True)
class CatalogEntry:
    display: StatusDisplay
    # role -> action -> resulting status; ``None`` removes the job from the actor's list.
    capabilities: Mapping[ActorRole, Mapping[LifecycleAction, JobStatus | None]] = field(default_factory=dict)


_NEGOTIATION_CATALOG: dict[NegotiationStatus, CatalogEntry] = {
    _N.PENDING: CatalogEntry(
        display=StatusDisplay("#007bff", "Waiting for Transcriber"),
        capabilities={
            _TRANSCRIBER: {
                _A.ACCEPT: _N.ACCEPTED_AWAITING_PAYMENT,
                _A.COUNTER: _N.TRANSCRIBER_COUNTER,
                _A.REJECT: _N.REJECTED,
            },
            _CLIENT: {_A.DELETE: _N.CANCELLED},
        },
    ),
    _N.TRANSCRIBER_COUNTER: CatalogEntry(
        display=StatusDisplay("#ffc107", "Transcriber Countered"),
        capabilities={
            _CLIENT: {
                _A.ACCEPT: _N.ACCEPTED_AWAITING_PAYMENT,
                _A.COUNTER: _N.CLIENT_COUNTER,
                _A.REJECT: _N.REJECTED,
                _A.DELETE: _N.CANCELLED,
            },
        },
    ),
    _N.CLIENT_COUNTER: CatalogEntry(
        display=StatusDisplay("#6c757d", "Client Countered"),
        capabilities={
            _TRANSCRIBER: {
                _A.ACCEPT: _N.ACCEPTED_AWAITING_PAYMENT,
                _A.COUNTER: _N.TRANSCRIBER_COUNTER,
                _A.REJECT: _N.REJECTED,
            },
            _CLIENT: {_A.DELETE: _N.CANCELLED},
        },
    ),
    _N.ACCEPTED_AWAITING_PAYMENT: CatalogEntry(
        display=StatusDisplay("#28a745", "Accepted - Awaiting Payment"),
        capabilities={
            _CLIENT: {
                _A.INITIATE_PAYMENT: _N.HIRED,
                _A.DELETE: _N.CANCELLED,
            },
        },
    ),
    _N.HIRED: CatalogEntry(
        display=StatusDisplay("#007bff", "Job Active - Paid"),
        capabilities={_TRANSCRIBER: {_A.MARK_COMPLETE: _N.COMPLETED}},
    ),
    _N.COMPLETED: CatalogEntry(
        display=StatusDisplay("#6f42c1", "Completed by Transcriber"),
        capabilities={_CLIENT: {_A.MARK_COMPLETE: _N.CLIENT_COMPLETED}},
    ),
    _N.CLIENT_COMPLETED: CatalogEntry(
        display=StatusDisplay("#6f42c1", "Completed by Client"),
        capabilities={_CLIENT: {_A.DELETE: None}},
    ),
    _N.REJECTED: CatalogEntry(
        display=StatusDisplay("#dc3545", "Rejected"),
        capabilities={_CLIENT: {_A.DELETE: None}},
    ),
    _N.CANCELLED: CatalogEntry(
        display=StatusDisplay("#dc3545", "Cancelled"),
        capabilities={_CLIENT: {_A.DELETE: None}},
    ),
}

_DIRECT_UPLOAD_CATALOG: dict[DirectUploadStatus, CatalogEntry] = {
    _D.PENDING_PAYMENT: CatalogEntry(
        display=StatusDisplay("#ffc107", "Awaiting Payment"),
        capabilities={
            _CLIENT: {
                _A.INITIATE_PAYMENT: _D.AVAILABLE_FOR_TRANSCRIBER,
                _A.DELETE: _D.CANCELLED,
            },
        },
    ),
    _D.AVAILABLE_FOR_TRANSCRIBER: CatalogEntry(
        display=StatusDisplay("#17a2b8", "Available for Transcriber"),
        capabilities={
            _CLIENT: {_A.DELETE: _D.CANCELLED},
            _TRANSCRIBER: {_A.TAKE: _D.TAKEN},
        },
    ),
    _D.TAKEN: CatalogEntry(
        display=StatusDisplay("#007bff", "Taken by Transcriber"),
        capabilities={
            _TRANSCRIBER: {
                _A.MARK_COMPLETE: _D.COMPLETED,
                _A.RELEASE: _D.AVAILABLE_FOR_TRANSCRIBER,
            },
        },
    ),
    _D.IN_PROGRESS: CatalogEntry(
        display=StatusDisplay("#007bff", "In Progress"),
        capabilities={
            _TRANSCRIBER: {
                _A.MARK_COMPLETE: _D.COMPLETED,
                _A.RELEASE: _D.AVAILABLE_FOR_TRANSCRIBER,
            },
        },
    ),
    _D.COMPLETED: CatalogEntry(
        display=StatusDisplay("#6f42c1", "Submitted for Review"),
        capabilities={
            _CLIENT: {_A.MARK_COMPLETE: _D.CLIENT_COMPLETED},
            _TRANSCRIBER: {_A.DELETE: None},
        },
    ),
    _D.CLIENT_COMPLETED: CatalogEntry(
        display=StatusDisplay("#6f42c1", "Completed by Client"),
        capabilities={_TRANSCRIBER: {_A.DELETE: None}},
    ),
    _D.CANCELLED: CatalogEntry(display=StatusDisplay("#dc3545", "Cancelled")),
}

# Transitions the backing store performs on its own; no actor may request them.
_SERVER_ONLY_TRANSITIONS: dict[JobOrigin, dict[JobStatus, set[JobStatus]]] = {
    JobOrigin.NEGOTIATION: {},
    JobOrigin.DIRECT_UPLOAD: {_D.TAKEN: {_D.IN_PROGRESS}},
}

_PRE_ASSIGNMENT_STATUSES: dict[JobOrigin, frozenset[JobStatus]] = {
    JobOrigin.NEGOTIATION: frozenset(
        {
            _N.PENDING,
            _N.TRANSCRIBER_COUNTER,
            _N.CLIENT_COUNTER,
            _N.ACCEPTED_AWAITING_PAYMENT,
            _N.REJECTED,
            _N.CANCELLED,
        }
    ),
    JobOrigin.DIRECT_UPLOAD: frozenset({_D.PENDING_PAYMENT, _D.AVAILABLE_FOR_TRANSCRIBER, _D.CANCELLED}),
}

# Statuses a verified payment moves the job into.
_PAID_STATUSES: dict[JobOrigin, frozenset[JobStatus]] = {
    JobOrigin.NEGOTIATION: frozenset({_N.HIRED, _N.COMPLETED, _N.CLIENT_COMPLETED}),
    JobOrigin.DIRECT_UPLOAD: frozenset(
        {_D.AVAILABLE_FOR_TRANSCRIBER, _D.TAKEN, _D.IN_PROGRESS, _D.COMPLETED, _D.CLIENT_COMPLETED}
    ),
}

_CATALOGS: dict[JobOrigin, Mapping[JobStatus, CatalogEntry]] = {
    JobOrigin.NEGOTIATION: _NEGOTIATION_CATALOG,
    JobOrigin.DIRECT_UPLOAD: _DIRECT_UPLOAD_CATALOG,
}


def coerce_status(origin: JobOrigin, status: str) -> JobStatus:
    """Return the origin-specific status enum for a raw status value."""
    if origin is JobOrigin.NEGOTIATION:
        return NegotiationStatus(status)
    return DirectUploadStatus(status)


def _entry(origin: JobOrigin, status: JobStatus) -> CatalogEntry | None:
    try:
        return _CATALOGS[origin].get(coerce_status(origin, status))
    except ValueError:
        return None


def describe_status(origin: JobOrigin, status: JobStatus) -> StatusDisplay:
    entry = _entry(origin, status)
    if entry is None:
        return StatusDisplay("#6c757d", str(getattr(status, "value", status)).replace("_", " "))
    return entry.display


def available_actions(origin: JobOrigin, status: JobStatus, role: ActorRole) -> list[LifecycleAction]:
    """Return deterministically ordered legal actions for an actor."""
    entry = _entry(origin, status)
    if entry is None:
        return []
    return sorted(entry.capabilities.get(role, {}), key=lambda action: action.value)


def action_target(
    origin: JobOrigin,
    status: JobStatus,
    role: ActorRole,
    action: LifecycleAction,
) -> JobStatus | None:
    entry = _entry(origin, status)
    if entry is None:
        return None
    return entry.capabilities.get(role, {}).get(action)


def check_action(
    origin: JobOrigin,
    status: JobStatus,
    role: ActorRole,
    action: LifecycleAction,
) -> LifecycleError | None:
    """Fail closed: any action not listed for (origin, status, role) is unavailable."""
    entry = _entry(origin, status)
    if entry is not None and action in entry.capabilities.get(role, {}):
        return None
    return LifecycleError(
        kind=ErrorKind.VALIDATION,
        code="ACTION_UNAVAILABLE",
        message="Action is unavailable for the job's current status",
        details={
            "origin": origin.value,
            "current_status": str(getattr(status, "value", status)),
            "role": role.value,
            "attempted_action": action.value,
            "available_actions": [item.value for item in available_actions(origin, status, role)],
        },
    )


def allowed_next_statuses(origin: JobOrigin, status: JobStatus) -> list[JobStatus]:
    """Return every status reachable in one step, by any actor or by the backing store."""
    entry = _entry(origin, status)
    if entry is None:
        return []
    targets: set[JobStatus] = set()
    for actions in entry.capabilities.values():
        targets.update(target for target in actions.values() if target is not None)
    targets.update(_SERVER_ONLY_TRANSITIONS[origin].get(coerce_status(origin, status), set()))
    return sorted(targets, key=lambda target: target.value)


def is_legal_transition(origin: JobOrigin, old_status: JobStatus, new_status: JobStatus) -> bool:
    try:
        target = coerce_status(origin, new_status)
    except ValueError:
        return False
    return target in allowed_next_statuses(origin, old_status)


def is_terminal(origin: JobOrigin, status: JobStatus) -> bool:
    return not allowed_next_statuses(origin, status)


def is_pre_assignment(origin: JobOrigin, status: JobStatus) -> bool:
    return coerce_status(origin, status) in _PRE_ASSIGNMENT_STATUSES[origin]


def is_paid(origin: JobOrigin, status: JobStatus) -> bool:
    return coerce_status(origin, status) in _PAID_STATUSES[origin]

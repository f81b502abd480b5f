"""Authoritative job snapshots from the backing store."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
import logging
from typing import Any, Callable

from scribedesk.adapters.backend.base import JobBackend
from scribedesk.core.logging_safety import safe_log_identifier, short_job_ref
from scribedesk.domain.status_catalog import coerce_status, is_pre_assignment
from scribedesk.errors import BackendError
from scribedesk.schemas.job import (
    ActorRole,
    Counterparties,
    FetchNotice,
    Feedback,
    Job,
    JobList,
    JobOrigin,
    LastActivity,
)

logger = logging.getLogger(__name__)

_ORIGINS_BY_ROLE: dict[ActorRole, tuple[JobOrigin, ...]] = {
    ActorRole.CLIENT: (JobOrigin.NEGOTIATION, JobOrigin.DIRECT_UPLOAD),
    ActorRole.TRANSCRIBER: (JobOrigin.NEGOTIATION, JobOrigin.DIRECT_UPLOAD),
}

_PRICE_KEYS: dict[JobOrigin, tuple[str, ...]] = {
    JobOrigin.NEGOTIATION: ("agreed_price_usd", "price"),
    JobOrigin.DIRECT_UPLOAD: ("quote_amount", "agreed_price_usd", "price"),
}
_DEADLINE_KEYS: dict[JobOrigin, tuple[str, ...]] = {
    JobOrigin.NEGOTIATION: ("deadline_hours",),
    JobOrigin.DIRECT_UPLOAD: ("agreed_deadline_hours", "deadline_hours"),
}
_FILE_KEYS: dict[JobOrigin, tuple[str, ...]] = {
    JobOrigin.NEGOTIATION: ("negotiation_files", "file_name"),
    JobOrigin.DIRECT_UPLOAD: ("file_name",),
}


class MalformedJobError(ValueError):
    """A snapshot entry could not be normalized into a ``Job``."""


def _first(raw: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return None


def _optional_id(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, dict):
        value = value.get("id")
    text = str(value).strip() if value is not None else ""
    return text or None


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None:
        return None
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


def normalize_job(origin: JobOrigin, raw: Any) -> Job:
    """Normalize one backing-store record; ``origin`` comes from the collection it was read from."""
    if not isinstance(raw, dict):
        raise MalformedJobError("snapshot entry is not an object")

    job_id = _optional_id(raw.get("id"))
    client_id = _optional_id(raw.get("client_id"))
    if job_id is None or client_id is None:
        raise MalformedJobError("snapshot entry is missing its id or client")

    try:
        status = coerce_status(origin, str(raw.get("status")))
        price = _first(raw, _PRICE_KEYS[origin])
        price_amount = Decimal(str(price)) if price is not None else None
    except (ValueError, InvalidOperation) as exc:
        raise MalformedJobError(str(exc)) from exc
    if price_amount is None or not price_amount.is_finite():
        raise MalformedJobError("snapshot entry has no usable price")

    transcriber = _optional_id(raw.get("transcriber_id"))
    if is_pre_assignment(origin, status):
        # Before hiring, a negotiation's transcriber is only the invited party.
        counterparties = Counterparties(
            client_id=client_id,
            proposed_transcriber_id=transcriber if origin is JobOrigin.NEGOTIATION else None,
        )
    else:
        if transcriber is None:
            raise MalformedJobError(f"status {status.value} requires an assigned transcriber")
        counterparties = Counterparties(client_id=client_id, transcriber_id=transcriber)

    rating = raw.get("client_feedback_rating")
    feedback = None
    if rating is not None:
        feedback = Feedback(comment=raw.get("client_feedback_comment") or "", rating=int(rating))

    last_activity = None
    text = raw.get("last_message_text")
    timestamp = _parse_timestamp(raw.get("last_message_timestamp"))
    if isinstance(text, str) and timestamp is not None:
        last_activity = LastActivity(text=text, timestamp=timestamp)

    deadline = _first(raw, _DEADLINE_KEYS[origin])
    file_name = _first(raw, _FILE_KEYS[origin])
    return Job(
        id=job_id,
        origin=origin,
        status=status,
        price_amount=price_amount,
        currency=raw.get("currency") or "USD",
        deadline_hours=int(deadline) if deadline is not None else None,
        counterparties=counterparties,
        file_name=str(file_name) if file_name is not None else None,
        last_activity=last_activity,
        feedback=feedback,
    )


class JobRepositoryClient:
    """Fetches and normalizes an actor's jobs across both origins."""

    def __init__(self, backend: JobBackend, *, normalizer: Callable[[JobOrigin, Any], Job] = normalize_job) -> None:
        self._backend = backend
        self._normalize = normalizer

    async def fetch_active_jobs(self, actor_id: str, role: ActorRole) -> JobList:
        origins = _ORIGINS_BY_ROLE[role]
        results = await asyncio.gather(
            *(self._backend.list_jobs(origin, role) for origin in origins),
            return_exceptions=True,
        )

        jobs: list[Job] = []
        notices: list[FetchNotice] = []
        for origin, result in zip(origins, results):
            if isinstance(result, BackendError):
                logger.warning(
                    "snapshot.origin_failed actor_id=%s origin=%s code=%s",
                    safe_log_identifier(actor_id, prefix="aid"),
                    origin.value,
                    result.code,
                )
                notices.append(FetchNotice(origin=origin, error=result.to_lifecycle_error()))
                continue
            if isinstance(result, BaseException):
                raise result
            jobs.extend(self._normalize_batch(origin, result))

        logger.info(
            "snapshot.fetched actor_id=%s jobs=%s failed_origins=%s",
            safe_log_identifier(actor_id, prefix="aid"),
            len(jobs),
            len(notices),
        )
        return JobList(jobs=tuple(jobs), notices=tuple(notices))

    async def fetch_available_jobs(self) -> JobList:
        """Direct-upload jobs open for any transcriber to take."""
        try:
            raw_jobs = await self._backend.list_available_jobs()
        except BackendError as exc:
            logger.warning("snapshot.pool_failed code=%s", exc.code)
            return JobList(notices=(FetchNotice(origin=JobOrigin.DIRECT_UPLOAD, error=exc.to_lifecycle_error()),))
        return JobList(jobs=tuple(self._normalize_batch(JobOrigin.DIRECT_UPLOAD, raw_jobs)))

    def _normalize_batch(self, origin: JobOrigin, raw_jobs: list[Any]) -> list[Job]:
        jobs: list[Job] = []
        seen: set[str] = set()
        for raw in raw_jobs:
            try:
                job = self._normalize(origin, raw)
            except (MalformedJobError, ValueError, TypeError) as exc:
                raw_id = raw.get("id") if isinstance(raw, dict) else None
                logger.warning(
                    "snapshot.entry_dropped origin=%s job=%s reason=%s",
                    origin.value,
                    short_job_ref(raw_id),
                    exc,
                )
                continue
            if job.id in seen:
                logger.warning("snapshot.duplicate_dropped origin=%s job=%s", origin.value, short_job_ref(job.id))
                continue
            seen.add(job.id)
            jobs.append(job)
        return jobs


__all__ = ["JobRepositoryClient", "MalformedJobError", "normalize_job"]

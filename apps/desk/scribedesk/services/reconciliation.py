"""Session-owned job collection kept consistent with the backing store.

Two writers exist. ``refresh`` replaces the whole collection from an authoritative
snapshot and is the only path that changes ``status``. ``apply_activity`` patches
``last_activity`` in place without a network call. Refresh requests that arrive while a
replace is in flight collapse into one trailing replace.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
import logging
from typing import Awaitable, Callable

from scribedesk.core.logging_safety import short_job_ref
from scribedesk.schemas.error import ErrorKind, LifecycleError
from scribedesk.schemas.events import FILE_UPLOAD_ACTIVITY_TEXT, PushEvent
from scribedesk.schemas.job import Job, JobList, JobOrigin, LastActivity

logger = logging.getLogger(__name__)

SnapshotSource = Callable[[], Awaitable[JobList]]
Listener = Callable[[JobList], None]
AuthErrorHook = Callable[[LifecycleError], None]


def _aware(timestamp: datetime) -> datetime:
    return timestamp if timestamp.tzinfo is not None else timestamp.replace(tzinfo=UTC)


def _newer_activity(current: LastActivity | None, candidate: LastActivity | None) -> LastActivity | None:
    if candidate is None:
        return current
    if current is None or _aware(candidate.timestamp) > _aware(current.timestamp):
        return candidate
    return current


class ReconciliationEngine:
    def __init__(
        self,
        fetch_snapshot: SnapshotSource,
        *,
        label: str = "session",
        on_auth_error: AuthErrorHook | None = None,
    ) -> None:
        self._fetch_snapshot = fetch_snapshot
        self._label = label
        self._on_auth_error = on_auth_error
        self._jobs = JobList()
        self._listeners: list[Listener] = []
        self._driver: asyncio.Task[None] | None = None
        self._dirty = False
        self._closed = False
        self.replace_count = 0
        self.patch_count = 0

    @property
    def jobs(self) -> JobList:
        return self._jobs

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def in_flight(self) -> bool:
        return self._driver is not None

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def request_refresh(self) -> asyncio.Task[None] | None:
        """Schedule a replace; while one is in flight, mark a single trailing replace instead."""
        if self._closed:
            return None
        if self._driver is not None:
            if not self._dirty:
                logger.debug("replace.coalesced session=%s", self._label)
            self._dirty = True
            return self._driver
        self._driver = asyncio.get_running_loop().create_task(self._drive())
        return self._driver

    async def refresh(self) -> JobList:
        """Request a replace and wait until every replace it depends on has resolved."""
        task = self.request_refresh()
        if task is not None:
            await asyncio.shield(task)
        return self._jobs

    def apply_activity(self, job_id: str, text: str, timestamp: datetime) -> bool:
        """Last-write-wins patch of ``last_activity``; returns whether anything changed."""
        if self._closed:
            return False
        candidate = LastActivity(text=text, timestamp=_aware(timestamp))
        updated: list[Job] = []
        changed = False
        for job in self._jobs.jobs:
            if job.id == job_id and _newer_activity(job.last_activity, candidate) is candidate:
                job = job.model_copy(update={"last_activity": candidate})
                changed = True
            updated.append(job)
        if not changed:
            return False

        self._jobs = JobList(jobs=tuple(updated), notices=self._jobs.notices)
        self.patch_count += 1
        logger.debug("patch.applied session=%s job=%s", self._label, short_job_ref(job_id))
        self._notify()
        return True

    def apply_event(self, event: PushEvent) -> None:
        if event.affects_status:
            self.request_refresh()
        elif event.is_activity:
            # Text-less events are file uploads; untimed ones are stamped on receipt.
            self.apply_activity(
                event.job_id,
                event.text or FILE_UPLOAD_ACTIVITY_TEXT,
                event.timestamp or datetime.now(UTC),
            )
        else:
            logger.debug("event.ignored session=%s name=%s", self._label, event.name)

    def close(self) -> None:
        """Stop accepting work; an in-flight replace finishes but its result is discarded."""
        self._closed = True
        self._dirty = False
        self._listeners.clear()

    async def _drive(self) -> None:
        try:
            while True:
                self._dirty = False
                try:
                    await self._replace_once()
                except Exception:
                    logger.exception("replace.failed session=%s", self._label)
                if self._closed or not self._dirty:
                    break
        finally:
            self._driver = None

    async def _replace_once(self) -> None:
        snapshot = await self._fetch_snapshot()
        if self._closed:
            logger.debug("replace.discarded session=%s", self._label)
            return

        auth_errors = [notice.error for notice in snapshot.notices if notice.error.kind is ErrorKind.AUTH]
        if auth_errors:
            logger.warning("replace.auth_rejected session=%s", self._label)
            if self._on_auth_error is not None:
                self._on_auth_error(auth_errors[0])
            return

        failed_origins = {notice.origin for notice in snapshot.notices}
        if not snapshot.jobs and failed_origins >= set(JobOrigin):
            # Nothing authoritative arrived; keep showing the last good collection.
            self._jobs = JobList(jobs=self._jobs.jobs, notices=snapshot.notices)
            logger.warning("replace.skipped session=%s failed_origins=%s", self._label, len(failed_origins))
            self._notify()
            return

        previous = {job.id: job for job in self._jobs.jobs}
        jobs = []
        for job in snapshot.jobs:
            prior = previous.get(job.id)
            if prior is not None:
                activity = _newer_activity(job.last_activity, prior.last_activity)
                if activity is not job.last_activity:
                    job = job.model_copy(update={"last_activity": activity})
            jobs.append(job)

        # An origin that failed keeps its last good jobs until it answers again.
        fetched_ids = {job.id for job in jobs}
        carried = [
            job for job in self._jobs.jobs if job.origin in failed_origins and job.id not in fetched_ids
        ]
        if carried:
            logger.warning(
                "replace.carried_over session=%s jobs=%s failed_origins=%s",
                self._label,
                len(carried),
                len(failed_origins),
            )
            jobs.extend(carried)

        self._jobs = JobList(jobs=tuple(jobs), notices=snapshot.notices)
        self.replace_count += 1
        logger.info(
            "replace.applied session=%s jobs=%s notices=%s",
            self._label,
            len(jobs),
            len(snapshot.notices),
        )
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._jobs)
            except Exception:
                logger.exception("listener.failed session=%s", self._label)


__all__ = ["ReconciliationEngine"]

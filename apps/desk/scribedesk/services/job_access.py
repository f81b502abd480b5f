"""Request-scoped job reads for the HTTP surface."""

from __future__ import annotations

import logging

from scribedesk.adapters.backend.base import JobBackend
from scribedesk.core.logging_safety import safe_log_identifier, short_job_ref
from scribedesk.errors import ApiError, BackendError
from scribedesk.schemas.auth import AuthPrincipal
from scribedesk.schemas.error import ErrorKind
from scribedesk.schemas.job import ActorRole, JobList, JobOrigin
from scribedesk.services.repository_client import JobRepositoryClient

logger = logging.getLogger(__name__)


def _not_found() -> ApiError:
    return ApiError(status_code=404, code="RESOURCE_NOT_FOUND", message="Resource not found")


class JobAccessService:
    def __init__(self, backend: JobBackend) -> None:
        self._backend = backend
        self._repository = JobRepositoryClient(backend)

    async def list_jobs(self, principal: AuthPrincipal) -> JobList:
        jobs = await self._repository.fetch_active_jobs(principal.user_id, principal.role)
        self._raise_for_auth(jobs)
        return jobs

    async def list_available_jobs(self, principal: AuthPrincipal) -> JobList:
        if principal.role is not ActorRole.TRANSCRIBER:
            raise ApiError(status_code=403, code="FORBIDDEN", message="Only transcribers can browse open jobs")
        jobs = await self._repository.fetch_available_jobs()
        self._raise_for_auth(jobs)
        return jobs

    async def download_file(
        self,
        principal: AuthPrincipal,
        *,
        origin: JobOrigin,
        job_id: str,
        file_name: str,
    ) -> bytes:
        """Download a job file only when the job is in the actor's own snapshot."""
        jobs = await self.list_jobs(principal)
        job = jobs.get(job_id)
        if job is None or job.origin is not origin:
            logger.info(
                "file.denied principal_id=%s job=%s reason=not_in_snapshot",
                safe_log_identifier(principal.user_id, prefix="pid"),
                short_job_ref(job_id),
            )
            raise _not_found()

        try:
            return await self._backend.download_file(origin=origin, job_id=job_id, file_name=file_name)
        except BackendError as exc:
            if exc.kind is ErrorKind.AUTH:
                raise ApiError(status_code=401, code="UNAUTHORIZED", message=str(exc)) from exc
            if exc.kind is ErrorKind.CONFLICT:
                raise _not_found() from exc
            logger.warning("file.unavailable job=%s code=%s", short_job_ref(job_id), exc.code)
            raise ApiError(status_code=502, code=exc.code, message=str(exc)) from exc

    @staticmethod
    def _raise_for_auth(jobs: JobList) -> None:
        for notice in jobs.notices:
            if notice.error.kind is ErrorKind.AUTH:
                raise ApiError(status_code=401, code="UNAUTHORIZED", message=notice.error.message)


__all__ = ["JobAccessService"]

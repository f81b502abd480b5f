"""Job routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Response

from scribedesk.routes.dependencies import get_authenticated_principal, get_job_access_service
from scribedesk.schemas.auth import AuthPrincipal
from scribedesk.schemas.error import ErrorResponse, NoLeakNotFoundError
from scribedesk.schemas.job import JobList, JobOrigin
from scribedesk.services.job_access import JobAccessService

router = APIRouter(tags=["Jobs"])


@router.get("/jobs", response_model=JobList, responses={401: {"model": ErrorResponse}})
async def list_jobs(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[JobAccessService, Depends(get_job_access_service)],
) -> JobList:
    return await service.list_jobs(principal)


@router.get(
    "/jobs/available",
    response_model=JobList,
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def list_available_jobs(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[JobAccessService, Depends(get_job_access_service)],
) -> JobList:
    return await service.list_available_jobs(principal)


@router.get(
    "/jobs/{origin}/{jobId}/files/{fileName}",
    response_class=Response,
    responses={404: {"model": NoLeakNotFoundError}, 502: {"model": ErrorResponse}},
)
async def download_job_file(
    origin: JobOrigin,
    job_id: Annotated[str, Path(alias="jobId")],
    file_name: Annotated[str, Path(alias="fileName")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[JobAccessService, Depends(get_job_access_service)],
) -> Response:
    content = await service.download_file(principal, origin=origin, job_id=job_id, file_name=file_name)
    return Response(
        content=content,
        media_type="application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )

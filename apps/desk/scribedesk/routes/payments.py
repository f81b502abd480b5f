"""Payment return routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import RedirectResponse

from scribedesk.routes.dependencies import get_authenticated_principal, get_payment_callback_service
from scribedesk.schemas.auth import AuthPrincipal
from scribedesk.schemas.error import ErrorResponse
from scribedesk.services.payment_callbacks import PaymentCallbackService

router = APIRouter(tags=["Payments"])


@router.get(
    "/payments/callback",
    status_code=status.HTTP_303_SEE_OTHER,
    response_class=RedirectResponse,
    responses={401: {"model": ErrorResponse}},
)
async def payment_callback(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[PaymentCallbackService, Depends(get_payment_callback_service)],
    reference: str | None = None,
    job_id: Annotated[str | None, Query(alias="jobId")] = None,
    origin: str | None = None,
    gateway: str | None = None,
) -> RedirectResponse:
    location = await service.handle_return(
        principal,
        reference=reference,
        job_id=job_id,
        origin=origin,
        gateway=gateway,
    )
    return RedirectResponse(url=location, status_code=status.HTTP_303_SEE_OTHER)

"""Dependency wiring for routes."""

from __future__ import annotations

import logging
from typing import Annotated, AsyncIterator, Callable
from uuid import uuid4

from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from scribedesk.adapters.auth import (
    AuthVerificationError,
    JwtTokenVerifier,
    MockTokenVerifier,
    TokenVerifier,
)
from scribedesk.adapters.backend import HttpJobBackend, JobBackend
from scribedesk.core.config import Settings, get_settings
from scribedesk.core.logging_safety import safe_log_identifier
from scribedesk.errors import ApiError
from scribedesk.schemas.auth import AuthPrincipal
from scribedesk.schemas.job import JobOrigin
from scribedesk.services.job_access import JobAccessService
from scribedesk.services.payment_callbacks import PaymentCallbackService

BackendFactory = Callable[[AuthPrincipal, str], JobBackend]

bearer_scheme = HTTPBearer(auto_error=False, scheme_name="bearerAuth")
logger = logging.getLogger(__name__)


def _auth_error(message: str) -> ApiError:
    return ApiError(status_code=401, code="UNAUTHORIZED", message=message)


def _request_correlation_id(request: Request) -> str:
    existing = getattr(request.state, "correlation_id", None)
    if isinstance(existing, str) and existing:
        return existing

    correlation_id = request.headers.get("X-Correlation-Id") or f"req-{uuid4()}"
    request.state.correlation_id = correlation_id
    return correlation_id


def get_token_verifier(settings: Annotated[Settings, Depends(get_settings)]) -> TokenVerifier:
    """Resolve provider adapter from configuration."""
    if settings.auth_provider == "jwt":
        return JwtTokenVerifier(secret=settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return MockTokenVerifier()


async def get_authenticated_principal(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    verifier: Annotated[TokenVerifier, Depends(get_token_verifier)],
) -> AuthPrincipal:
    """Validate the bearer token; the raw token is kept for forwarding to the backing store."""
    safe_correlation_id = safe_log_identifier(_request_correlation_id(request), prefix="cid")
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        logger.warning(
            "auth.rejected correlation_id=%s method=%s path=%s reason=invalid_or_missing_bearer",
            safe_correlation_id,
            request.method,
            request.url.path,
        )
        raise _auth_error("Invalid or missing bearer token")

    try:
        principal = verifier.verify_token(credentials.credentials)
    except AuthVerificationError as exc:
        logger.warning(
            "auth.rejected correlation_id=%s method=%s path=%s reason=token_verification_failed",
            safe_correlation_id,
            request.method,
            request.url.path,
        )
        raise _auth_error(str(exc) or "Invalid bearer token") from exc

    logger.info(
        "auth.accepted correlation_id=%s path=%s principal_id=%s role=%s",
        safe_correlation_id,
        request.url.path,
        safe_log_identifier(principal.user_id, prefix="pid"),
        principal.role.value,
    )
    request.state.auth_principal = principal
    request.state.bearer_token = credentials.credentials
    return principal


def http_backend_factory(settings: Settings) -> BackendFactory:
    def build(_principal: AuthPrincipal, token: str) -> JobBackend:
        return HttpJobBackend(
            base_url=settings.backend_url,
            token=token,
            timeout=settings.request_timeout_seconds,
        )

    return build


async def get_backend(
    request: Request,
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> AsyncIterator[JobBackend]:
    factory: BackendFactory | None = getattr(request.app.state, "backend_factory", None)
    backend = (factory or http_backend_factory(settings))(principal, request.state.bearer_token)
    try:
        yield backend
    finally:
        await backend.aclose()


def get_job_access_service(backend: Annotated[JobBackend, Depends(get_backend)]) -> JobAccessService:
    return JobAccessService(backend)


def get_payment_callback_service(
    backend: Annotated[JobBackend, Depends(get_backend)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> PaymentCallbackService:
    return PaymentCallbackService(
        backend,
        post_payment_path=settings.post_payment_path,
        failure_paths={
            JobOrigin.NEGOTIATION: settings.negotiation_payment_failure_path,
            JobOrigin.DIRECT_UPLOAD: settings.direct_upload_payment_failure_path,
        },
    )

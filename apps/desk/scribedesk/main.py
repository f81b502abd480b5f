"""FastAPI application entrypoint."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from scribedesk.errors import ApiError
from scribedesk.routes import jobs_router, payments_router
from scribedesk.routes.dependencies import BackendFactory


def create_app(*, backend_factory: BackendFactory | None = None) -> FastAPI:
    """Build the app; ``backend_factory`` replaces the HTTP backing-store adapter."""
    app = FastAPI(title="Scribedesk API", version="0.1.0")
    app.state.backend_factory = backend_factory

    @app.exception_handler(ApiError)
    async def handle_api_error(_, exc: ApiError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.payload.model_dump(mode="json", exclude_none=True),
        )

    api_prefix = "/api/v1"
    app.include_router(jobs_router, prefix=api_prefix)
    app.include_router(payments_router, prefix=api_prefix)

    return app


app = create_app()

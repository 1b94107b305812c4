"""devspaces - per-user development workspaces behind GitHub OAuth."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from devspaces import __version__
from devspaces.adapters.identity import GitHubIdentityProvider
from devspaces.app.api import router as api_router
from devspaces.app.api.dependencies import get_identity_provider
from devspaces.app.config import get_settings
from devspaces.app.logging import setup_logging
from devspaces.app.middleware import RequestIdMiddleware
from devspaces.core.errors import DevSpacesError, InternalError, ValidationError
from devspaces.core.logging_schema import LogEvent
from devspaces.infra import close_db, init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan handler - configures logging and the database."""
    settings = get_settings()
    setup_logging(settings.logging.level, settings.logging.json_format)

    logger.info(
        "Configuration loaded",
        extra={
            "public_base_url": settings.server.public_base_url,
            "database_url": settings.database.url.split("@")[-1],  # Hide credentials
            "target_organization": settings.auth.oauth.target_organization or None,
            "session_cookie": settings.auth.session.cookie_name,
        },
    )

    await init_db(
        settings.database.url,
        settings.database.echo,
        create_tables=settings.database.create_tables,
    )
    logger.info("Application started", extra={"event": LogEvent.APP_STARTED})

    yield

    if get_identity_provider.cache_info().currsize:
        identity = get_identity_provider()
        if isinstance(identity, GitHubIdentityProvider):
            await identity.aclose()
    await close_db()
    logger.info("Application stopped", extra={"event": LogEvent.APP_STOPPED})


app = FastAPI(
    title="devspaces",
    description="Ephemeral per-user development workspaces",
    version=__version__,
    lifespan=lifespan,
)

# Add middleware (order matters: first added = outermost)
app.add_middleware(RequestIdMiddleware)

app.include_router(api_router)


@app.exception_handler(DevSpacesError)
async def devspaces_error_handler(
    _request: Request, exc: DevSpacesError
) -> JSONResponse:
    """Handle DevSpacesError exceptions and return standardized error responses."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report malformed request bodies as 400 VALIDATION_ERROR."""
    fields = sorted(
        {".".join(str(part) for part in err["loc"][1:]) for err in exc.errors()} - {""}
    )
    message = "Invalid request"
    if fields:
        message = f"Invalid or missing fields: {', '.join(fields)}"
    error = ValidationError(message)
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_response().model_dump(),
    )


@app.exception_handler(Exception)
async def generic_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions and return standardized error responses."""
    logger.exception("Unexpected error: %s", exc)
    error = InternalError()
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_response().model_dump(),
    )


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint for container orchestration."""
    return {"status": "ok"}

"""
Post-Meeting Assistant
Connects Google, LinkedIn and Facebook accounts, records meetings with bots
and turns transcripts into follow-up content.
"""
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from postmeeting import __version__
from postmeeting.api import router
from postmeeting.config import Settings, get_settings
from postmeeting.container import build_services
from postmeeting.database import Database
from postmeeting.exceptions import (
    ConfigurationError,
    ExternalServiceError,
    InvalidRequest,
    NotConnected,
    NotFound,
    ReauthRequired,
    RefreshFailed,
)
from postmeeting.logging_config import get_logger, setup_logging
from postmeeting.monitoring import record_error

logger = get_logger(__name__)


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


def create_app(settings: Optional[Settings] = None, http_client: Optional[httpx.AsyncClient] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Application settings (loaded from the environment when omitted)
        http_client: Shared client for outbound calls, mainly for tests

    Returns:
        Configured application; services are created in the lifespan
    """
    settings = settings or get_settings()

    # ============================================
    # LIFESPAN CONTEXT MANAGER
    # ============================================

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan event handler for startup and shutdown."""
        setup_logging(debug=settings.debug)
        database = Database(settings.database_url, echo=settings.debug)
        await database.create_tables()
        app.state.services = build_services(settings, database, client=http_client)

        logger.info(
            "application_started",
            version=__version__,
            environment="development" if settings.debug else "production",
            recall_configured=settings.is_recall_configured,
            openai_configured=settings.is_openai_configured,
        )

        yield

        await database.close()
        logger.info("application_stopped")

    app = FastAPI(
        title="Post-Meeting Assistant",
        description="Meeting bots, transcripts and follow-up content with encrypted credential storage",
        version=__version__,
        docs_url="/docs" if settings.debug else None,  # Disable docs in production
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["*"],
    )

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.secret_key,
        session_cookie="postmeeting_session",
        max_age=60 * 60 * 24 * 7,
        same_site="lax",
        https_only=not settings.debug,  # HTTPS only in production
    )

    app.include_router(router)

    # ============================================
    # ERROR HANDLERS
    # ============================================

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Custom HTTP exception handler."""
        return _error(exc.status_code, exc.detail)

    @app.exception_handler(NotConnected)
    @app.exception_handler(ReauthRequired)
    async def reconnect_handler(request: Request, exc):
        """The user has to go through the provider's authorization again."""
        return _error(
            status.HTTP_401_UNAUTHORIZED,
            str(exc),
            requires_reconnect=True,
            provider=exc.provider,
        )

    @app.exception_handler(RefreshFailed)
    async def refresh_failed_handler(request: Request, exc: RefreshFailed):
        # credential untouched; a retry may succeed
        return _error(status.HTTP_502_BAD_GATEWAY, str(exc), requires_reconnect=False, provider=exc.provider)

    @app.exception_handler(ExternalServiceError)
    async def external_service_handler(request: Request, exc: ExternalServiceError):
        record_error(type(exc).__name__, exc.service or "external")
        logger.warning("external_service_error", service=exc.service, status_code=exc.status_code, error=str(exc))
        return _error(status.HTTP_502_BAD_GATEWAY, str(exc), service=exc.service)

    @app.exception_handler(NotFound)
    async def not_found_handler(request: Request, exc: NotFound):
        return _error(status.HTTP_404_NOT_FOUND, str(exc))

    @app.exception_handler(InvalidRequest)
    async def invalid_request_handler(request: Request, exc: InvalidRequest):
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(ConfigurationError)
    async def configuration_handler(request: Request, exc: ConfigurationError):
        logger.error("configuration_error", error=str(exc))
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, str(exc))

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """General exception handler for unhandled errors."""
        record_error(type(exc).__name__, "api")
        logger.exception("unhandled_error", path=request.url.path)
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Internal server error",
            details=str(exc) if settings.debug else "An error occurred",
        )

    return app


def run() -> None:
    """Serve the application with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()

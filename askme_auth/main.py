"""
FastAPI Application Factory
===========================

Entry point of the AskMe authentication service. The chat front end and
backend services only ask it one thing: is there an authenticated user for
this request, and who is it.

Routers:
    - /auth/*       : Local sign-in, session queries, OIDC login and callback
    - /health       : Health check endpoint

Running the Service:
    Development:
        uvicorn askme_auth.main:create_app --factory --reload --port 8080

    Production:
        uvicorn askme_auth.main:create_app --factory --host 0.0.0.0 --port 8080 --workers 4

    With custom log level:
        LOG_LEVEL=DEBUG uvicorn askme_auth.main:create_app --factory --reload
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Dict, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .auth.credentials import StaticCredentialStore
from .auth.routes import auth_router
from .config import Settings, get_settings, validate_configuration


# Configure structured JSON logging
def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup tasks:
        - Configure logging
        - Report configuration problems and security smells
        - Open the shared HTTP client for identity provider calls

    Shutdown tasks:
        - Close the shared HTTP client
    """
    settings: Settings = app.state.settings

    setup_logging(settings.LOG_LEVEL)
    logger = logging.getLogger("askme_auth.main")

    report = validate_configuration(settings)
    for error in report["errors"]:
        logger.error(f"Configuration error: {error}")
    for warning in report["warnings"]:
        logger.warning(f"Configuration warning: {warning}")

    app.state.oidc_http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(settings.OIDC_HTTP_TIMEOUT_SECONDS)
    )

    logger.info(
        "Authentication service started",
        extra={
            "environment": settings.APP_ENV,
            "oidc_configured": settings.oidc_configured,
            "version": __version__,
        },
    )

    yield

    logger.info("Shutting down authentication service")
    await app.state.oidc_http_client.aclose()
    app.state.oidc_http_client = None


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application instance with:
        - Lifespan management
        - CORS middleware
        - Route handlers
        - Exception handlers

    Args:
        settings: Settings to use; loaded from the environment when omitted

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="AskMe Authentication Service",
        description="Cookie sessions and Microsoft Entra ID sign-in for the AskMe chat application",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.credential_store = StaticCredentialStore.from_settings(settings)

    if settings.allowed_origins_list:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.allowed_origins_list,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
        )

    app.include_router(auth_router)

    @app.get("/health", tags=["System"])
    async def health_check() -> Dict[str, str]:
        return {
            "status": "ok",
            "service": "askme-auth",
            "version": __version__,
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Log unhandled errors and return a standardized response without
        internal details.
        """
        logger = logging.getLogger("askme_auth.main")
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__,
            },
            exc_info=True,
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
            },
        )

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "askme_auth.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8080,
        reload=True,
        log_level=get_settings().LOG_LEVEL.lower(),
    )

"""
Tally Backend Application

Election administration API that mirrors elections, voter registrations,
and votes onto an external ledger.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from api.v1 import router as api_v1_router
from core.config import settings
from core.events import create_start_app_handler, create_stop_app_handler
from core.exceptions import TallyError
from core.middleware import RequestIDMiddleware, SecurityHeadersMiddleware

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    # Startup
    await create_start_app_handler(app)()
    yield
    # Shutdown
    await create_stop_app_handler(app)()


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title=settings.APP_NAME,
        description="Election administration with an external ledger mirror",
        version="1.0.0",
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        openapi_url="/openapi.json" if settings.DEBUG else None,
        lifespan=lifespan,
    )

    # Processed in reverse order of registration
    application.add_middleware(SecurityHeadersMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )
    application.add_middleware(GZipMiddleware, minimum_size=1000)
    application.add_middleware(RequestIDMiddleware)

    application.include_router(api_v1_router, prefix="/api/v1")

    @application.exception_handler(TallyError)
    async def tally_error_handler(request: Request, exc: TallyError) -> JSONResponse:
        """Map domain errors to their HTTP status."""
        log = logger.warning if exc.status_code < 500 else logger.error
        log(
            "request_failed",
            error=exc.detail,
            error_type=type(exc).__name__,
            status_code=exc.status_code,
            path=request.url.path,
            method=request.method,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @application.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler to catch unhandled exceptions.

        Returns a structured JSON body so the CORS middleware can still attach
        its headers to 500 responses.
        """
        logger.exception(
            "Unhandled exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
            method=request.method,
        )

        return JSONResponse(
            status_code=500,
            content={
                "detail": "An internal server error occurred. Please try again later.",
                "error_type": type(exc).__name__ if settings.DEBUG else "InternalServerError",
            },
        )

    return application


app = create_application()


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint for load balancers and monitoring."""
    return {"status": "healthy", "service": "tally-api"}


@app.get("/health/services", tags=["Health"])
async def service_status() -> dict:
    """
    Service configuration status endpoint for deployment validation.

    Returns the configuration status of all external services.
    """
    from repositories.provider import is_cosmos_enabled

    services = {
        "database": {
            "configured": is_cosmos_enabled(),
            "details": {
                "database": settings.AZURE_COSMOS_DATABASE,
                "auth": "rbac" if settings.AZURE_COSMOS_ENDPOINT else "connection_string",
            },
        },
        "ledger": {
            "configured": settings.ledger_configured,
            "details": {
                "chain_id": settings.LEDGER_CHAIN_ID,
                "factory_address": settings.LEDGER_FACTORY_ADDRESS,
                "signer_configured": bool(settings.LEDGER_SIGNER_PRIVATE_KEY),
            },
        },
        "encryption": {
            "configured": bool(settings.FIELD_ENCRYPTION_KEY),
        },
    }

    all_configured = all(svc["configured"] for svc in services.values())

    return {
        "status": "healthy" if all_configured else "degraded",
        "all_services_configured": all_configured,
        "services": services,
    }


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint with API information."""
    return {
        "name": settings.APP_NAME,
        "version": "1.0.0",
        "docs": "/docs" if settings.DEBUG else "Documentation disabled in production",
    }

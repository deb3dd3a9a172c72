"""Main FastAPI application for the Curbside portal"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from curbside import __version__
from curbside.api import (
    addresses,
    admin,
    catalog,
    chat,
    health,
    payments,
    service_requests,
    websockets,
)
from curbside.config import settings
from curbside.db.database import close_db, init_db
from curbside.middleware.logging import LoggingMiddleware
from curbside.middleware.rate_limit import RateLimitMiddleware
from curbside.middleware.request_id import RequestIDMiddleware
from curbside.services.errors import PortalError
from curbside.utils.logging import setup_logging

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""
    logger.info("Starting Curbside application...")

    issues = settings.validate_configuration()
    for warning in issues["warnings"]:
        logger.warning(f"Configuration warning: {warning}")
    for error in issues["errors"]:
        logger.error(f"Configuration error: {error}")

    await init_db()
    logger.info("Application startup complete")

    yield

    logger.info("Shutting down Curbside application...")
    await close_db()
    logger.info("Application shutdown complete")


app = FastAPI(
    title="Curbside API",
    description="""
    ## Municipal Sanitation Service Portal

    Residents and businesses request sanitation services; operators triage
    and respond.

    ### Key Features
    - **Service requests** with a status lifecycle and operator responses
    - **Paid services** (roll-off containers, extra carts) through a payment saga
    - **Quick services** such as missed collections and supervisor callbacks
    - **Live chat** between visitors and operators
    - **Address book** for saved service addresses
    """,
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if settings.app_debug else None,
    redoc_url="/redoc" if settings.app_debug else None,
)

# Configure middleware (last added runs first)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(LoggingMiddleware)
app.add_middleware(
    RateLimitMiddleware,
    requests_per_minute=settings.requests_per_minute,
    requests_per_hour=settings.requests_per_hour,
    enable_rate_limiting=settings.enable_rate_limiting,
)
app.add_middleware(RequestIDMiddleware)


@app.get("/status", response_class=JSONResponse)
async def api_status() -> dict[str, Any]:
    """API status endpoint for programmatic access"""
    return {
        "name": "Curbside API",
        "version": __version__,
        "status": "operational",
        "payments": "live" if settings.is_payments_configured() else "simulated",
        "docs": "/docs" if settings.app_debug else None,
    }


# Include routers
app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(service_requests.router, prefix="/api", tags=["service-requests"])
app.include_router(payments.router, prefix="/api", tags=["payments"])
app.include_router(addresses.router, prefix="/api", tags=["addresses"])
app.include_router(chat.router, prefix="/api", tags=["chat"])
app.include_router(catalog.router, prefix="/api", tags=["catalog"])
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])
app.include_router(websockets.router, prefix="/api", tags=["websockets"])


def error_response(status_code: int, error: str, message: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message},
        headers=headers,
    )


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    if exc.status_code >= 500:
        logger.error(f"{exc.kind}: {exc.message}", extra={"path": request.url.path})
    else:
        logger.info(f"{exc.kind}: {exc.message}", extra={"path": request.url.path})
    return error_response(exc.status_code, exc.kind, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'] if part != 'body')}: {error['msg']}"
        for error in exc.errors()
    )
    return error_response(400, "validation_error", details or "Invalid request")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    error = "internal_error" if exc.status_code >= 500 else "http_error"
    return error_response(exc.status_code, error, str(exc.detail), getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return error_response(
        500,
        "internal_error",
        str(exc) if settings.app_debug else "An error occurred",
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "curbside.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_debug,
        log_level=settings.log_level.lower(),
    )

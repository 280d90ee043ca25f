# pyright: reportMissingTypeStubs=false
"""
Therapy Practice Backend API

A FastAPI application for a therapy practice: professionals publish a
weekly schedule, patients book slots, and new patients join through
invitation codes delivered by SMS, WhatsApp or email.

Features:
- Weekly schedule templates and slot resolution
- Appointment booking and status transitions
- Invitation issuance, verification and redemption
- SQL database with SQLAlchemy ORM
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api import auth, availability, appointments, invitations, patients, professionals
from core.config import INVITATION_SWEEP_ENABLED, is_production
from core.constants import CORS_ORIGINS
from core.database import create_tables
from services.invitation_cleanup_scheduler import (
    start_invitation_cleanup_scheduler, stop_invitation_cleanup_scheduler
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)

logger = logging.getLogger(__name__)
logger.info("Therapy Practice API starting...")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("Starting Therapy Practice Backend API")

    create_tables()

    # Note: Database sessions are created fresh for each scheduler run
    if INVITATION_SWEEP_ENABLED:
        try:
            await start_invitation_cleanup_scheduler()
        except Exception as e:
            logger.exception(f"Failed to start invitation cleanup scheduler: {e}")

    yield

    try:
        await stop_invitation_cleanup_scheduler()
    except Exception as e:
        logger.exception(f"Error stopping invitation cleanup scheduler: {e}")

    logger.info("Shutting down Therapy Practice Backend API")


# Create FastAPI application
app = FastAPI(
    title="Therapy Practice Backend",
    description="Scheduling, booking and invitation-based onboarding for therapy practices",
    version="1.0.0",
    docs_url="/docs",  # Swagger UI
    redoc_url="/redoc",  # ReDoc
    lifespan=lifespan,
)

# CORS middleware for frontend integration
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

_COMMON_RESPONSES: Dict[int | str, Dict[str, Any]] = {
    401: {"description": "Unauthorized"},
    403: {"description": "Forbidden"},
    404: {"description": "Resource not found"},
    500: {"description": "Internal server error"},
}

# Include API routers
app.include_router(
    auth.router,
    prefix="/api/auth",
    tags=["authentication"],
    responses={
        400: {"description": "Bad request"},
        401: {"description": "Unauthorized"},
        409: {"description": "Conflict"},
        502: {"description": "Verification provider error"},
        500: {"description": "Internal server error"},
    },
)
app.include_router(
    availability.router,
    prefix="/api/availability",
    tags=["availability"],
    responses=_COMMON_RESPONSES,
)
app.include_router(
    appointments.router,
    prefix="/api/appointments",
    tags=["appointments"],
    responses={**_COMMON_RESPONSES, 409: {"description": "Slot already taken"}},
)
app.include_router(
    invitations.router,
    prefix="/api/invitations",
    tags=["invitations"],
    responses=_COMMON_RESPONSES,
)
app.include_router(
    patients.router,
    prefix="/api/patients",
    tags=["patients"],
    responses={**_COMMON_RESPONSES, 409: {"description": "Conflict"}},
)
app.include_router(
    professionals.router,
    prefix="/api/professionals",
    tags=["professionals"],
    responses=_COMMON_RESPONSES,
)


@app.get(
    "/",
    summary="Root endpoint",
    description="Returns basic API information",
)
async def root() -> dict[str, str]:
    """Get API information."""
    return {
        "message": "Therapy Practice Backend API",
        "version": "1.0.0",
        "status": "running"
    }


@app.get(
    "/health",
    summary="Health check",
    description="Returns the health status of the API",
)
async def health_check() -> dict[str, str]:
    """Check if the API is healthy and responding."""
    return {"status": "healthy"}


def _error_body(message: str, **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "message": message}
    for key, value in extra.items():
        if value is not None:
            body[key] = value
    return body


# Global exception handlers
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render HTTPException in the standard error envelope."""
    if isinstance(exc.detail, dict):
        detail = dict(exc.detail)
        message = str(detail.pop("message", "Error"))
        content = _error_body(message, **detail)
    else:
        content = _error_body(str(exc.detail))
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Report malformed request bodies and parameters as 400."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"Datos inválidos: {location} {first.get('msg', '')}".strip()
    logger.info(f"Request validation failed on {request.url.path}: {errors}")
    return JSONResponse(status_code=400, content=_error_body(message))


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Handle ValueError exceptions."""
    logger.warning(f"ValueError: {exc}")
    return JSONResponse(status_code=400, content=_error_body(str(exc)))


@app.exception_handler(httpx.HTTPStatusError)
async def http_status_error_handler(request: Request, exc: httpx.HTTPStatusError):
    """Handle HTTP status errors from external services."""
    logger.exception(f"External service error: {exc}")
    return JSONResponse(
        status_code=502,
        content=_error_body("Error en servicio externo", code=str(exc.response.status_code)),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions globally."""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content=_error_body(
            "Error interno del servidor",
            error=None if is_production() else str(exc),
        ),
    )

"""
FastAPI application entry point for the protocols API.

Provides REST API for:
- Protocols, visits, activities and clinical rules
- Templates and activity templates
- Authentication and user management
- Dashboard statistics
- AI-generated clinical histories (text and PDF)
"""

import logging
from collections import defaultdict
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from protocols_api import __version__
from protocols_api.config import settings
from protocols_api.db import init_schema
from protocols_api.errors import ProtocolsAPIError


# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(),
    ]
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting protocols API...")

    try:
        init_schema()
        logger.info("Database schema initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database schema: {e}")
        raise

    logger.info("Protocols API started")
    yield

    # Shutdown
    logger.info("Shutting down protocols API...")


# Create FastAPI application
app = FastAPI(
    title="Protocols API",
    description="Clinical trial protocols, visit forms, templates and clinical histories",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Error handlers
# =============================================================================

def validation_details(errors) -> dict:
    """Group pydantic errors by field: {"visits.0.name": ["msg", ...]}."""
    details = defaultdict(list)
    for error in errors:
        # Drop the request location ("body", "query", "path")
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        details[".".join(loc) or "body"].append(error.get("msg", ""))
    return dict(details)


def _validation_response(errors) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "success": False,
            "error": "Error de validación",
            "details": validation_details(errors),
        },
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return _validation_response(exc.errors())


@app.exception_handler(ValidationError)
async def model_validation_handler(request: Request, exc: ValidationError):
    return _validation_response(exc.errors())


@app.exception_handler(ProtocolsAPIError)
async def domain_error_handler(request: Request, exc: ProtocolsAPIError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} ({exc.category})")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": "Error interno del servidor"},
    )


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__,
    }


# Import and include routers
from protocols_api.routers import activity_templates, auth, protocols, stats, templates  # noqa: E402
app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(protocols.router, prefix="/api/protocols", tags=["protocols"])
app.include_router(templates.router, prefix="/api/templates", tags=["templates"])
app.include_router(activity_templates.router, prefix="/api/activity-templates", tags=["activity-templates"])
app.include_router(stats.router, prefix="/api/stats", tags=["stats"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "protocols_api.main:app",
        host="0.0.0.0",
        port=8080,
        reload=settings.debug,
    )

"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .api.dependencies import Services
from .api.routes import router
from .core.config import get_settings
from .core.security import (
    BodySizeLimitMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
    limiter,
)
from .db.database import close_db, engine, init_db

load_dotenv()

# Configure logging
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are reported as 400 rather than FastAPI's 422."""
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Build the application.

    Without ``services``, startup wires providers and ledgers from the
    environment and fails if some task type has no configured provider.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        settings = get_settings()
        logger.info(f"Starting Buildable in {settings.environment} mode")

        app.state.services = services or Services.build(settings, engine)
        db_engine = app.state.services.db_engine

        # Creates tables that don't exist yet
        if settings.auto_migrate:
            logger.info("Initializing database...")
            await init_db(db_engine)
            logger.info("Database initialized")

        yield

        # Cleanup
        logger.info("Shutting down Buildable")
        await app.state.services.supervisor.shutdown()
        await close_db(db_engine)

    app = FastAPI(
        title="Buildable - AI Application Generator",
        description="Turn a natural-language description into a working multi-file web application.",
        version=VERSION,
        lifespan=lifespan,
    )

    # Add rate limiter state and exception handlers
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    # Add security middleware (before CORS)
    app.add_middleware(BodySizeLimitMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

    settings = get_settings()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API routes
    app.include_router(router, prefix="/api/v1", tags=["generation"])

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": "Buildable",
            "version": VERSION,
            "description": "AI Application Generator",
            "docs": "/docs",
        }

    @app.get("/health")
    async def health(request: Request):
        """Health check endpoint."""
        services: Services = request.app.state.services

        return {
            "status": "healthy",
            "providers": {
                d.provider.value: d.has_credentials for d in services.registry.descriptors()
            },
            "provider_health": services.health.get_all_health(),
            "active_runs": services.supervisor.active,
        }

    return app


app = create_app()

"""
Formmaker Backend — FastAPI Application Factory
=================================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn to start the server (uvicorn formmaker.main:app).

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware:  Request ID → Logging → GZip → CORS         │
    │                                                          │
    │  Routes:   /api/users  /api/teams  /api/folders          │
    │            /api/forms  /api/forms/{id}/responses         │
    │            /ws         /health                           │
    │                                                          │
    │  Exception Handlers:                                     │
    │   Validation→400  AccessDenied→403  NotFound→404         │
    │   Conflict→409    Database→500      Exception→500        │
    │                                                          │
    │  app.state.services ── Services container (+ outbox)     │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, configuration check, start the outbox worker
    Shutdown: stop the outbox worker, close the mail client, dispose the engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from formmaker import __version__
from formmaker.config import settings
from formmaker.container import Services, build_services
from formmaker.database import dispose_engine
from formmaker.exceptions import (
    AccessDeniedError,
    ConflictError,
    DatabaseError,
    FormmakerError,
    NotFoundError,
    ValidationError,
)
from formmaker.middleware.logging import RequestLoggingMiddleware
from formmaker.middleware.request_id import RequestIDMiddleware, request_id_var
from formmaker.routes import folders, forms, health, realtime, responses, teams, users

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """Configures the root logger once, before anything else logs."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party libraries are noisy at INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("=" * 60)
    logger.info("Formmaker Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Development setups run without mail and on SQLite; keep serving.
        logger.warning("Configuration warning: %s", str(e))

    services: Services = app.state.services
    services.outbox.start()
    if not services.mail.enabled:
        logger.warning("MAIL_API_KEY is empty: emails will be logged and skipped")

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("Formmaker Backend shutting down...")
    await services.outbox.stop()
    await services.mail.aclose()
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_body(error: str, message: str, details: Optional[dict] = None) -> dict:
    return {
        "error": error,
        "message": message,
        "details": details or None,
        "request_id": request_id_var.get(""),
    }


def register_exception_handlers(app: FastAPI) -> None:
    """
    Handler hierarchy:
        ValidationError     → 400 Bad Request
        AccessDeniedError   → 403 Forbidden
        NotFoundError       → 404 Not Found
        ConflictError       → 409 Conflict
        DatabaseError       → 500 (generic message, details logged)
        FormmakerError      → 500 (catch-all for custom errors)
        Exception           → 500 (unexpected errors)

    Handlers never expose stack traces or SQL in the body; those go to the log.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return JSONResponse(status_code=400, content=_error_body("validation_error", exc.message, exc.context))

    @app.exception_handler(AccessDeniedError)
    async def handle_access_denied(request: Request, exc: AccessDeniedError):
        return JSONResponse(status_code=403, content=_error_body("access_denied", exc.message, exc.context))

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content=_error_body("not_found", exc.message, exc.context))

    @app.exception_handler(ConflictError)
    async def handle_conflict(request: Request, exc: ConflictError):
        return JSONResponse(status_code=409, content=_error_body("conflict", exc.message, exc.context))

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        rid = request_id_var.get("")
        logger.error("[%s] Database error: %s | Context: %s", rid, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content=_error_body("server_error", "An internal error occurred. Please try again later."),
        )

    @app.exception_handler(FormmakerError)
    async def handle_formmaker_error(request: Request, exc: FormmakerError):
        logger.error("[%s] %s: %s", request_id_var.get(""), type(exc).__name__, exc.message)
        return JSONResponse(status_code=500, content=_error_body("server_error", exc.message))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", request_id_var.get(""), str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "internal_server_error",
                "An unexpected error occurred. Please try again or contact support.",
            ),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Assembles the application.

    Args:
        services: a prebuilt service container; tests pass one with a fake
                  mail client. Defaults to `build_services()`.
    """
    app = FastAPI(
        title="Formmaker API",
        description=(
            "Collaborative form builder: teams, folders, forms with shared "
            "permissions, and response collection."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.services = services or build_services()

    # Last added runs first: RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(users.router)
    app.include_router(teams.router)
    app.include_router(folders.router)
    app.include_router(forms.router)
    app.include_router(responses.router)
    app.include_router(realtime.router)
    app.include_router(health.router)

    return app


app = create_app()

"""
StackIt Backend — FastAPI Application Factory
===============================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() registers middleware, exception handlers and routers;
       lifespan() handles startup checks and shutdown cleanup.
Who:   uvicorn stackit.main:app

Application Architecture:
    ┌────────────────────────────────────────────────────────────┐
    │                        FastAPI App                         │
    │                                                            │
    │  Middleware:  Rate Limit → Request ID → Access Log → GZip  │
    │               → CORS                                       │
    │                                                            │
    │  Routes:      /api/auth/*  /api/profile  /api/questions/*  │
    │               /api/admin/users  /api/files/*  /health      │
    │                                                            │
    │  Errors:      Validation 400 │ Auth 401 │ Permission 403   │
    │               NotFound 404 │ RateLimit 429 │ Backend 502   │
    │               anything else 500                            │
    └────────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging → config check (logged, not fatal) → session cache
              subscribed to identity events → storage dir (local store)
    Shutdown: session cache unsubscribed → database engine disposed
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from stackit import __version__
from stackit.config import settings
from stackit.database import dispose_engine
from stackit.dependencies import get_session_cache
from stackit.exceptions import (
    AuthenticationError,
    BackendCallError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitExceededError,
    StackItError,
    ValidationError,
)
from stackit.middleware.logging import RequestLoggingMiddleware
from stackit.middleware.rate_limit import RateLimitMiddleware
from stackit.middleware.request_id import RequestIDMiddleware, request_id_var
from stackit.routes import admin, auth, files, health, questions

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure the root logger once for the whole process.

    Format: 2026-10-19T12:00:00 [INFO] stackit.services.question_composer: ...
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Per-request chatter from libraries; our own access log covers requests
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("=" * 60)
    logger.info("StackIt Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving: /health and the feed still work without these
        logger.error("Configuration error: %s", str(e))

    session_cache = get_session_cache()

    if settings.object_store_backend == "local":
        storage = Path(settings.storage_root)
        storage.mkdir(parents=True, exist_ok=True)
        logger.info("Local object store at %s", storage.resolve())
    else:
        logger.info("Object store: Cloudinary cloud '%s'", settings.cloudinary_cloud_name)

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("StackIt Backend shutting down...")
    session_cache.detach()
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(
    status_code: int,
    error: str,
    exc: StackItError,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": exc.message,
            "details": exc.context or None,
            "request_id": request_id_var.get(""),
        },
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map the StackIt exception hierarchy onto HTTP responses.

    Every body has the shape {"error", "message", "details", "request_id"}.
    BackendCallError keeps upstream details in the log; the client only
    gets the operation's one-sentence message.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return _error_response(400, "validation_error", exc)

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        return _error_response(401, "authentication_required", exc)

    @app.exception_handler(PermissionDeniedError)
    async def handle_permission_denied(request: Request, exc: PermissionDeniedError):
        return _error_response(403, "permission_denied", exc)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error_response(404, "not_found", exc)

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return _error_response(
            429, "rate_limit_exceeded", exc, headers={"Retry-After": str(exc.retry_after)}
        )

    @app.exception_handler(BackendCallError)
    async def handle_backend_call_error(request: Request, exc: BackendCallError):
        logger.error(
            "[%s] Backend call failed (%s): %s",
            request_id_var.get(""),
            exc.service,
            exc.message,
        )
        return _error_response(502, "backend_error", exc)

    @app.exception_handler(StackItError)
    async def handle_stackit_error(request: Request, exc: StackItError):
        logger.error("[%s] Unhandled application error: %s", request_id_var.get(""), exc.message)
        return _error_response(500, "server_error", exc)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "Something went wrong. Please reload the page.",
                "details": None,
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="StackIt API",
        description=(
            "Community question-and-answer service: ask questions with rich text, "
            "tags and attachments, answer, vote, comment and accept answers."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Last added runs first: RateLimit → RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    register_exception_handlers(app)

    app.include_router(auth.router)
    app.include_router(questions.router)
    app.include_router(admin.router)
    app.include_router(files.router)
    app.include_router(health.router)

    return app


app = create_app()

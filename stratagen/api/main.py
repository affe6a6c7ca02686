"""FastAPI application for the stratagen generation pipeline.

Provides the main application instance with routers, middleware,
and exception handlers configured.
"""

import logging
import sys
import time as _time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError

# Configure logging to stdout for uvicorn to capture
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logging.getLogger("stratagen").setLevel(logging.INFO)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from stratagen import __version__
from stratagen.api.routes import automation, generation, intelligence, sessions
from stratagen.config import load_settings
from stratagen.db.connection import init_db
from stratagen.errors import (
    DomainError,
    RateLimitExceeded,
    UpstreamError,
    UpstreamTimeoutError,
    format_message,
)
from stratagen.services.analysis_cache import ResultCache
from stratagen.services.rate_limit import RateLimiter
from stratagen.services.session_registry import SessionRegistry
from stratagen.services.tool_client import ToolInvocationClient

logger = logging.getLogger(__name__)

_startup_time: float = 0.0
_SHUTDOWN_GRACE_SECONDS = 5.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the injected stores on startup; release them on shutdown."""
    global _startup_time

    # --- Startup ---
    _startup_time = _time.time()
    settings = load_settings()
    init_db()

    app.state.settings = settings
    app.state.registry = SessionRegistry(history_limit=settings.session_history_limit)
    app.state.rate_limiter = RateLimiter(
        limit=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.state.result_cache = ResultCache(
        ttl_seconds=settings.analysis_cache_ttl_seconds,
        max_entries=settings.analysis_cache_max_entries,
    )
    app.state.tool_client = ToolInvocationClient(settings)
    logger.info(
        "stratagen %s started (tool service %s)", __version__, settings.tool_service_url
    )

    yield

    # --- Shutdown ---
    cancelled = app.state.registry.cancel_all()
    if cancelled:
        logger.info("Cancelled %d in-flight sessions on shutdown", cancelled)
    await app.state.registry.wait_for_tasks(timeout=_SHUTDOWN_GRACE_SECONDS)
    await app.state.tool_client.aclose()


app = FastAPI(
    title="stratagen API",
    description="AI generation orchestration for strategy planning",
    version=__version__,
    lifespan=lifespan,
)

# CORS allowlist is env-driven. If unset, CORS is disabled (same-origin only).
allowed_origins = load_settings().allowed_origins
if allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-User-Id"],
    )


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Map domain errors to their HTTP status with an {error, message} body."""
    headers = None
    if isinstance(exc, RateLimitExceeded):
        headers = {"Retry-After": str(int(exc.retry_after_seconds) + 1)}
    return JSONResponse(
        status_code=exc.status_code, content=exc.to_body(), headers=headers
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report missing or blank request fields as HTTP 400."""
    fields: list[str] = []
    for error in exc.errors():
        loc = error.get("loc") or ()
        name = str(loc[-1]) if loc else "body"
        if name not in fields:
            fields.append(name)
    return JSONResponse(
        status_code=400,
        content={
            "error": "Missing required fields",
            "message": format_message("E-2001", fields=", ".join(fields)),
            "code": "E-2001",
            "fields": fields,
        },
    )


@app.exception_handler(UpstreamError)
async def upstream_error_handler(request: Request, exc: UpstreamError) -> JSONResponse:
    """Upstream timeouts map to 408; every other upstream failure to 502."""
    if isinstance(exc, UpstreamTimeoutError):
        status_code, error = 408, "Request timeout"
    else:
        status_code, error = 502, "Upstream request failed"
    logger.warning("%s on %s: %s", error, request.url.path, exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": exc.message, "code": exc.code},
    )


# Include routers
app.include_router(generation.router, prefix="/api/v1")
app.include_router(sessions.router, prefix="/api/v1")
app.include_router(intelligence.router, prefix="/api/v1")
app.include_router(automation.router, prefix="/api/v1")


@app.get("/health")
def health_check(request: Request) -> dict:
    """Health check endpoint with pipeline status.

    Returns:
        Dictionary with status, version, uptime and active session count.
    """
    uptime = int(_time.time() - _startup_time) if _startup_time else 0
    registry = getattr(request.app.state, "registry", None)
    return {
        "status": "healthy",
        "version": __version__,
        "uptime_seconds": uptime,
        "active_sessions": registry.active_count if registry is not None else 0,
    }

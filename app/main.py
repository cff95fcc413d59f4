"""
Double Mirror — FastAPI Application Entry Point

Wires together:
- structlog JSON logging (level from ``LOG_LEVEL``)
- optional reflection database, warmed at startup and disposed at shutdown
- request-id binding, wall-clock timeout and CORS middleware
- liveness and readiness probes
- the versioned analysis API
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from app.config import get_settings
from app.database import dispose_engine, get_engine
from app.services.errors import RETRY_NEEDED, AnalysisError

settings = get_settings()

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.format_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(ensure_ascii=False),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    ),
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger("doublemirror")

SHUTDOWN_GRACE_SECONDS = 15.0


# ---------------------------------------------------------------------------
# In-flight tracking: shutdown waits for running analyses to settle
# ---------------------------------------------------------------------------

_in_flight = 0
_idle = asyncio.Event()
_idle.set()


def _request_started() -> None:
    global _in_flight
    _in_flight += 1
    _idle.clear()


def _request_finished() -> None:
    global _in_flight
    _in_flight -= 1
    if _in_flight <= 0:
        _in_flight = 0
        _idle.set()


async def _wait_until_idle(grace_seconds: float = SHUTDOWN_GRACE_SECONDS) -> None:
    try:
        await asyncio.wait_for(_idle.wait(), timeout=grace_seconds)
    except asyncio.TimeoutError:
        logger.warning("shutdown_grace_exceeded", in_flight=_in_flight)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

async def _warm_database() -> None:
    engine = get_engine()
    if engine is None:
        logger.info("reflection_persistence_disabled")
        return
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("database_ready")
    except Exception:
        # analyses still work; only reflection inserts will fail
        logger.exception("database_warmup_failed")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info(
        "startup",
        environment=settings.ENVIRONMENT,
        scoring_models=settings.scoring_model_chain,
        feedback_models=settings.feedback_model_chain,
        max_attempts=settings.ANALYSIS_MAX_ATTEMPTS,
    )
    if not settings.GEMINI_API_KEY:
        logger.warning("gemini_api_key_missing")

    await _warm_database()

    yield

    logger.info("shutdown", in_flight=_in_flight)
    await _wait_until_idle()
    await dispose_engine()


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a request id to every log line of a request and echo it back
    as ``X-Request-ID``."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            http_request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        started = time.perf_counter()
        _request_started()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("request_failed", duration_ms=_since(started))
            raise
        finally:
            _request_finished()

        response.headers["X-Request-ID"] = request_id
        logger.info("request_handled", status=response.status_code, duration_ms=_since(started))
        return response


class TimeoutMiddleware(BaseHTTPMiddleware):
    """Cut off requests that outlive every retry the orchestrator could make."""

    def __init__(self, app, timeout_seconds: float) -> None:
        super().__init__(app)
        self.timeout_seconds = timeout_seconds

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await asyncio.wait_for(call_next(request), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("request_timeout", timeout=self.timeout_seconds)
            return JSONResponse(
                status_code=504,
                content={
                    "error": f"{RETRY_NEEDED}: request exceeded {self.timeout_seconds:g}s",
                    "message": "The analysis took too long. Please try again.",
                },
            )


def _since(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Double Mirror",
    description="AI-sync vs human-identity reflection scoring",
    version="1.0.0",
    lifespan=lifespan,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None,
)

# Last added runs outermost.
app.add_middleware(TimeoutMiddleware, timeout_seconds=settings.REQUEST_TIMEOUT_SECONDS)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


@app.exception_handler(AnalysisError)
async def analysis_error_handler(request: Request, exc: AnalysisError) -> JSONResponse:
    """Classified errors that escape a route still render as
    ``CLASSIFICATION: detail``."""
    logger.error("unhandled_analysis_error", error=str(exc))
    return JSONResponse(
        status_code=503 if exc.retriable else 500,
        content={"error": str(exc), "message": exc.detail},
    )


@app.get("/health", tags=["health"])
async def health_liveness() -> dict:
    return {"status": "healthy"}


@app.get("/health/deep", tags=["health"])
async def health_deep() -> dict:
    """Readiness: API key presence, effective model chains and database
    connectivity.  A missing key or an unreachable database reports
    ``degraded`` rather than failing the probe."""
    ceiling = settings.GEMINI_MODEL_CHAIN_CEILING
    report: dict = {
        "status": "healthy",
        "gemini_api_key": "configured" if settings.GEMINI_API_KEY else "missing",
        "scoring_models": settings.scoring_model_chain[:ceiling],
        "feedback_models": settings.feedback_model_chain[:ceiling],
        "database": "not_configured",
    }
    if not settings.GEMINI_API_KEY:
        report["status"] = "degraded"

    engine = get_engine()
    if engine is not None:
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            report["database"] = "connected"
        except Exception as exc:
            logger.error("health_database_unreachable", error=str(exc))
            report["database"] = "unreachable"
            report["status"] = "degraded"

    return report


from app.api.router import router as api_router  # noqa: E402

app.include_router(api_router, prefix="/api/v1")

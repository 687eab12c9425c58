"""Bank Reconciliation Engine - FastAPI Application."""

import time
import traceback
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from erp_recon import __version__
from erp_recon.config import settings
from erp_recon.database import init_db
from erp_recon.deps import DbSession
from erp_recon.logger import configure_logging, get_logger
from erp_recon.routers import reconciliation
from erp_recon.services.matching_config import load_matching_config

# Initialize logging early
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan - init DB and matching policy on startup."""
    await init_db()
    config = load_matching_config(force_reload=True)
    logger.info(
        "Application started",
        version=__version__,
        environment=settings.environment,
        exact_threshold=config.exact_threshold,
        fuzzy_threshold=config.fuzzy_threshold,
    )
    yield
    logger.info("Application shutting down")


app = FastAPI(
    title="Bank Reconciliation API",
    description="Bank statement ingestion, payment matching and invoice settlement",
    version=__version__,
    lifespan=lifespan,
)


@app.middleware("http")
async def logging_middleware(request: Request, call_next: Any) -> Response:
    """Middleware to inject Request-ID and log request details."""
    request_id = request.headers.get("X-Request-ID", str(uuid4()))

    # structlog contextvars are per task; start each request from a clean slate.
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        method=request.method,
        path=request.url.path,
    )

    start_time = time.perf_counter()
    try:
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        logger.info(
            "HTTP Request",
            status_code=response.status_code,
            duration_ms=round(duration * 1000, 2),
        )

        response.headers["X-Request-ID"] = request_id
        return response
    except Exception as exc:
        duration = time.perf_counter() - start_time
        logger.exception(
            "HTTP Request Failed",
            duration_ms=round(duration * 1000, 2),
            error=str(exc),
        )
        raise


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler to ensure JSON response."""
    # Only show exception details in DEBUG mode
    if settings.debug:
        detail = str(exc)
        trace = traceback.format_exc()
    else:
        detail = "An internal server error occurred. Please try again later."
        trace = None

    return JSONResponse(
        status_code=500,
        content={
            "detail": detail,
            "trace": trace,
            "request_id": structlog.contextvars.get_contextvars().get("request_id"),
        },
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "X-User-Id", "X-Request-ID"],
)

app.include_router(reconciliation.router)


@app.get("/health")
async def health_check(db: DbSession) -> Response:
    """Return 200 when the database answers, 503 otherwise."""
    try:
        await db.execute(text("SELECT 1"))
        database_ok = True
    except SQLAlchemyError as exc:
        logger.error(
            "Health check: database unavailable",
            error=str(exc),
            error_type=type(exc).__name__,
        )
        database_ok = False

    return JSONResponse(
        status_code=200 if database_ok else 503,
        content={
            "status": "healthy" if database_ok else "unhealthy",
            "timestamp": datetime.now(UTC).isoformat(),
            "checks": {"database": database_ok},
            "version": __version__,
        },
    )

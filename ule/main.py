"""FastAPI application entry point — wires everything together.

Usage:
    python -m ule.main

Every long-lived collaborator (database, lock, services, jobs, notifier) is
built here by `create_app` and stored on `app.state`; nothing is created as
an import side effect.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any

import redis.asyncio as aioredis
import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from ule.api import admin, cron, privacy
from ule.config import Settings, get_settings
from ule.db.engine import Database
from ule.jobs.deletions import DeletionJob
from ule.jobs.lock import DistributedLock, LockBackend, RedisLockBackend
from ule.jobs.sessions import SessionCleanupJob
from ule.privacy.deletion import AccountDeletionService, Clock, utc_now
from ule.privacy.notifications import EmailNotifier
from ule.security.redaction import redact_processor

logger = logging.getLogger(__name__)


# ── Logging setup ────────────────────────────────────────────────────


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
        stream=sys.stdout,
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            redact_processor,
            structlog.processors.JSONRenderer() if settings.is_production else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ── Error responses ──────────────────────────────────────────────────


async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def _validation_error(request: Request, exc: Exception) -> JSONResponse:
    errors: Any
    if isinstance(exc, (RequestValidationError, ValidationError)):
        errors = [
            {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()
        ]
    else:
        errors = []
    return JSONResponse(status_code=400, content={"error": "Datos inválidos", "details": errors})


async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Error interno del servidor"})


# ── App factory ──────────────────────────────────────────────────────


def _build_lock(settings: Settings, database: Database, clock: Clock) -> tuple[LockBackend, Any]:
    """Return the configured lock backend and the Redis client it owns, if any."""
    if settings.cron.lock_backend == "redis":
        redis_client = aioredis.from_url(settings.db.redis_url, decode_responses=True)
        return RedisLockBackend(redis_client), redis_client
    return DistributedLock(database.session_factory, clock=clock), None


def create_app(settings: Settings | None = None, clock: Clock = utc_now) -> FastAPI:
    settings = settings or get_settings()

    database = Database(settings.db, echo=settings.log_level == "DEBUG")
    lock, redis_client = _build_lock(settings, database, clock)
    deletion_service = AccountDeletionService(clock=clock)
    notifier = EmailNotifier(settings.email)
    lock_ttl = timedelta(seconds=settings.cron.lock_ttl_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application startup and shutdown lifecycle."""
        logger.info("Starting Ule privacy service (env=%s)", settings.environment)

        # In production, tables are created via migrations
        if not settings.is_production:
            await database.create_all()
            logger.info("Database tables ensured")

        try:
            yield
        finally:
            logger.info("Shutting down Ule privacy service...")
            if redis_client is not None:
                await redis_client.aclose()
            await database.dispose()
            logger.info("Shutdown complete")

    app = FastAPI(
        title="Ule Privacy API",
        description="Account deletion lifecycle and scheduled privacy jobs",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.database = database
    app.state.lock = lock
    app.state.deletion_service = deletion_service
    app.state.notifier = notifier
    app.state.deletion_job = DeletionJob(database, lock, deletion_service, notifier, lock_ttl=lock_ttl)
    app.state.session_cleanup_job = SessionCleanupJob(database, lock, clock=clock)

    app.add_exception_handler(StarletteHTTPException, _http_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(ValidationError, _validation_error)
    app.add_exception_handler(Exception, _unhandled_error)

    app.include_router(privacy.router)
    app.include_router(cron.router)
    app.include_router(admin.router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "environment": settings.environment}

    return app


# ── Entry point ──────────────────────────────────────────────────────

if __name__ == "__main__":
    _settings = get_settings()
    configure_logging(_settings)
    uvicorn.run(
        create_app(_settings),
        host="0.0.0.0",
        port=8000,
        log_level=_settings.log_level.lower(),
    )

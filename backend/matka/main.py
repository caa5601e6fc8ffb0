"""
backend/matka/main.py

Purpose:
    FastAPI application bootstrap: middleware/router wiring, scheduler
    lifecycle and the mapping of domain and infrastructure errors to HTTP.

Dependencies:
    - matka.database
    - matka.services.errors
    - matka.workers.game_lifecycle
"""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from bson.errors import InvalidId
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import (
    ConnectionFailure,
    DuplicateKeyError,
    OperationFailure,
    ServerSelectionTimeoutError,
)

from matka.config import settings
import matka.database as _db
from matka.database import connect_db, close_db
from matka.middleware.logging import StructuredLoggingMiddleware, setup_logging
from matka.services.errors import DomainError
from matka.workers._state import get_worker_state, is_stale
from matka.workers.game_lifecycle import STATE_KEY as LIFECYCLE_STATE_KEY, run_game_lifecycle

logger = logging.getLogger("matka")
scheduler = AsyncIOScheduler()


def _register_jobs() -> None:
    if not settings.LIFECYCLE_WORKER_ENABLED:
        logger.info("Game lifecycle worker disabled via config")
        return
    scheduler.add_job(
        run_game_lifecycle,
        "interval",
        id=LIFECYCLE_STATE_KEY,
        seconds=settings.GAME_LIFECYCLE_TICK_SECONDS,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    logger.info(
        "Game lifecycle worker scheduled every %ds", settings.GAME_LIFECYCLE_TICK_SECONDS,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await connect_db()
    _register_jobs()
    scheduler.start()
    logger.info("Background scheduler started")

    yield

    if scheduler.running:
        scheduler.shutdown(wait=False)
    await close_db()


app = FastAPI(
    title="Matka",
    description="Matka game settlement and wallet backend",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# Structured logging
app.add_middleware(StructuredLoggingMiddleware)

# Routers
from matka.routers.admin import router as admin_router
from matka.routers.games import router as games_router
from matka.routers.wallet import router as wallet_router

app.include_router(admin_router)
app.include_router(games_router)
app.include_router(wallet_router)


def _error(status_code: int, detail: str, code: str, money_moved=False, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "code": code, "money_moved": money_moved, **extra},
    )


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    """Domain errors are raised before commit: nothing was written."""
    logger.info(
        "Domain error on %s %s: %s %s", request.method, request.url.path, exc.code, exc.context,
    )
    return _error(exc.http_status, exc.message, exc.code)


@app.exception_handler(InvalidId)
async def invalid_object_id_handler(request: Request, exc: InvalidId):
    return _error(400, "Invalid ID.", "invalid_id")


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Return clean validation errors without leaking internal field paths."""
    errors = []
    for err in exc.errors():
        loc = err.get("loc", ())
        # Strip the "body" / "query" prefix for cleaner messages
        field = ".".join(str(l) for l in loc[1:]) if len(loc) > 1 else str(loc[-1]) if loc else "unknown"
        errors.append({"field": field, "message": err.get("msg", "Invalid value.")})
    return _error(422, "Validation error.", "validation_failed", errors=errors)


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    return _error(409, "Duplicate entry.", "duplicate")


# Infrastructure failures: the transaction may or may not have committed.
@app.exception_handler(ServerSelectionTimeoutError)
async def db_timeout_handler(request: Request, exc: ServerSelectionTimeoutError):
    logger.error("Database timeout: %s %s", request.method, request.url.path)
    return _error(
        503, "Service temporarily unavailable. Re-check state before retrying.",
        "infrastructure", money_moved="unknown",
    )


@app.exception_handler(ConnectionFailure)
async def db_connection_handler(request: Request, exc: ConnectionFailure):
    logger.error("Database connection failure: %s %s", request.method, request.url.path)
    return _error(
        503, "Service temporarily unavailable. Re-check state before retrying.",
        "infrastructure", money_moved="unknown",
    )


@app.exception_handler(OperationFailure)
async def db_operation_handler(request: Request, exc: OperationFailure):
    logger.error("Database operation error on %s %s: %s", request.method, request.url.path, exc)
    return _error(500, "An internal error occurred.", "internal", money_moved="unknown")


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Catch-all: log the real error, return a safe generic message."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "An internal error occurred.", "internal", money_moved="unknown")


@app.get("/health")
async def health():
    """Health check -- verifies DB connection and the lifecycle worker's last tick."""
    try:
        result = await _db.db.command("ping")
        db_ok = result.get("ok") == 1.0
    except (ConnectionFailure, OperationFailure):
        db_ok = False

    lifecycle = None
    if db_ok and settings.LIFECYCLE_WORKER_ENABLED:
        state = await get_worker_state(LIFECYCLE_STATE_KEY) or {}
        max_age = timedelta(seconds=settings.GAME_LIFECYCLE_TICK_SECONDS * 3)
        lifecycle = {
            "synced_at": state.get("synced_at"),
            "last_moved": state.get("last_moved"),
            "stale": await is_stale(LIFECYCLE_STATE_KEY, max_age),
        }

    return {
        "status": "healthy" if db_ok else "degraded",
        "db": "connected" if db_ok else "disconnected",
        "game_lifecycle": lifecycle,
    }

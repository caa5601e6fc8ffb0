"""
backend/matka/database.py

Purpose:
    MongoDB connection bootstrap, index management and the transaction helper
    every money-moving command runs through. The unique indexes created here
    are the arbiters of "who goes first" for concurrent declares, ledger
    replays and per-user wallets.

Dependencies:
    - motor.motor_asyncio
    - pymongo
    - matka.config
"""

import logging
from typing import Any, Awaitable, Callable, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import WriteConcern
from pymongo.errors import DuplicateKeyError, OperationFailure
from pymongo.read_concern import ReadConcern

from matka.config import settings

client: AsyncIOMotorClient = None
db: AsyncIOMotorDatabase = None

logger = logging.getLogger("matka.database")


async def connect_db() -> None:
    global client, db
    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        maxPoolSize=25,
        minPoolSize=5,
        w="majority",
        readConcernLevel="majority",
    )
    db = client[settings.MONGO_DB]
    await _ensure_indexes()


async def close_db() -> None:
    global client
    if client:
        client.close()


async def get_db() -> AsyncIOMotorDatabase:
    return db


async def run_in_transaction(
    callback: Callable[[Any], Awaitable[Any]],
    session: Optional[Any] = None,
) -> Any:
    """Run ``callback(session)`` inside one multi-document transaction.

    When ``session`` is given the callback joins the caller's transaction
    instead of opening a nested one. ``with_transaction`` retries the whole
    callback on TransientTransactionError (e.g. a write conflict with a
    concurrent writer on the same wallet), so callbacks must be re-runnable.
    """
    if session is not None:
        return await callback(session)

    async with await client.start_session() as new_session:
        return await new_session.with_transaction(
            callback,
            read_concern=ReadConcern("snapshot"),
            write_concern=WriteConcern("majority"),
            max_commit_time_ms=settings.TRANSACTION_MAX_COMMIT_MS,
        )


async def _ensure_indexes() -> None:
    """Create indexes on startup. Idempotent, safe to run repeatedly."""

    # ---- Users ----
    await db.users.create_index("email", unique=True, sparse=True)

    # ---- Games ----
    await db.games.create_index("name", unique=True)
    await db.games.create_index([("is_active", 1), ("type", 1)])
    await db.game_days.create_index(
        [("game_id", 1), ("game_date", 1)],
        unique=True,
    )
    await db.game_days.create_index([("game_date", 1), ("status", 1)])

    # ---- Results: one per game and calendar date ----
    try:
        await db.game_results.create_index(
            [("game_id", 1), ("result_date", 1)],
            unique=True,
            name="game_result_per_day",
        )
    except (DuplicateKeyError, OperationFailure) as exc:
        # Never fall back to a non-unique index here: without it two declares
        # can both pay out.
        logger.error("Cannot create unique game_results index: %s", exc)
        raise
    await db.game_results.create_index([("result_date", -1), ("status", 1)])

    # ---- Bets ----
    await db.bets.create_index([("game_id", 1), ("game_date", 1), ("status", 1)])
    await db.bets.create_index([("user_id", 1), ("placed_at", -1)])

    # ---- Wallet ledger ----
    await db.wallets.create_index("user_id", unique=True)
    await db.ledger_entries.create_index(
        [("causal_ref", 1), ("seq", 1)],
        unique=True,
    )
    await db.ledger_entries.create_index([("user_id", 1), ("created_at", -1)])

    # ---- Financial requests ----
    await db.financial_requests.create_index([("kind", 1), ("status", 1), ("created_at", -1)])
    await db.financial_requests.create_index([("user_id", 1), ("created_at", -1)])

    # ---- Audit ----
    await db.audit_logs.create_index([("target_id", 1), ("timestamp", -1)])

    logger.info("Database indexes ensured")

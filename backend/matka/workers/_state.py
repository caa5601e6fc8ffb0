"""Persistent worker state: last run time and outcome per worker.

Uses a lightweight `worker_state` collection so /health can report whether
background jobs are still ticking after restarts and deploys.
"""

from datetime import datetime, timedelta
from typing import Optional

import matka.database as _db
from matka.utils import ensure_utc, utcnow


async def get_worker_state(worker_id: str) -> Optional[dict]:
    return await _db.db.worker_state.find_one({"_id": worker_id})


async def set_synced(worker_id: str, **details) -> None:
    """Mark a worker as just run, with optional counters for the last run."""
    await _db.db.worker_state.update_one(
        {"_id": worker_id},
        {"$set": {"synced_at": utcnow(), **details}},
        upsert=True,
    )


async def is_stale(worker_id: str, max_age: timedelta) -> bool:
    """True if the worker never ran or has not run within ``max_age``."""
    state = await get_worker_state(worker_id)
    if not state or not state.get("synced_at"):
        return True
    last: datetime = ensure_utc(state["synced_at"])
    return (utcnow() - last) > max_age

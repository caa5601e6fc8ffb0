"""
backend/tests/conftest.py

Purpose:
    Shared pytest bootstrap: import paths, required settings, and an in-memory
    database patched into ``matka.database`` for every test that asks for it.
"""

from __future__ import annotations

import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
import pytest_asyncio

_THIS_FILE = Path(__file__).resolve()
_TESTS_DIR = _THIS_FILE.parent
_BACKEND_DIR = _THIS_FILE.parents[1]

for candidate in (str(_BACKEND_DIR), str(_TESTS_DIR)):
    if candidate not in sys.path:
        sys.path.insert(0, candidate)

# Settings are instantiated at import time and need these two.
os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017")
os.environ.setdefault("JWT_SECRET", "test-secret-with-enough-bytes-for-hs256")
os.environ.setdefault("LIFECYCLE_WORKER_ENABLED", "false")

from bson import ObjectId  # noqa: E402

import matka.database as _db  # noqa: E402
from fake_mongo import FakeMongoClient  # noqa: E402

# 2026-03-10 21:00 IST: the default test game (10:00-20:00 IST) is closed.
AFTER_CLOSE = datetime(2026, 3, 10, 15, 30, tzinfo=timezone.utc)
# 2026-03-10 14:00 IST: betting is open.
DURING_OPEN = datetime(2026, 3, 10, 8, 30, tzinfo=timezone.utc)
GAME_DATE = "2026-03-10"


@pytest_asyncio.fixture
async def fake_db(monkeypatch):
    client = FakeMongoClient()
    monkeypatch.setattr(_db, "client", client, raising=False)
    monkeypatch.setattr(_db, "db", client.database, raising=False)
    await _db._ensure_indexes()
    return client.database


@pytest.fixture
def fake_client(fake_db):
    return _db.client


@pytest.fixture
def make_game(fake_db):
    async def _make(**overrides) -> dict:
        doc = {
            "_id": ObjectId(),
            "name": overrides.pop("name", f"Game {ObjectId()}"),
            "type": "jodi",
            "description": "",
            "open_time": "10:00",
            "close_time": "20:00",
            "result_time": "21:00",
            "timezone": "Asia/Kolkata",
            "jodi_payout": 95.0,
            "haruf_payout": 9.0,
            "crossing_payout": 95.0,
            "min_bet": 10.0,
            "max_bet": 10000.0,
            "commission_pct": 5.0,
            "crossing_policy": None,
            "is_active": True,
            "forced_status": None,
            "forced_for_date": None,
            "created_by": "admin",
            "created_at": DURING_OPEN,
            "updated_at": DURING_OPEN,
        }
        doc.update(overrides)
        await fake_db.games.insert_one(doc)
        return doc
    return _make


@pytest.fixture
def make_bet(fake_db):
    async def _make(game: dict, user_id: str, number: str, amount: float, **overrides) -> dict:
        doc = {
            "_id": ObjectId(),
            "user_id": user_id,
            "game_id": str(game["_id"]),
            "game_name": game["name"],
            "game_date": GAME_DATE,
            "bet_type": overrides.pop("bet_type", game["type"]),
            "number": number,
            "position": None,
            "amount": amount,
            "potential_winning": 0.0,
            "status": "pending",
            "winning_amount": 0.0,
            "declared_result": None,
            "game_result_id": None,
            "placed_at": DURING_OPEN,
            "settled_at": None,
        }
        doc.update(overrides)
        await fake_db.bets.insert_one(doc)
        return doc
    return _make


@pytest.fixture
def fund_wallet(fake_db):
    async def _fund(user_id: str, **segments) -> dict:
        doc = {
            "user_id": user_id,
            "deposit": 0.0,
            "winning": 0.0,
            "bonus": 0.0,
            "commission": 0.0,
            "total_deposits": 0.0,
            "total_withdrawals": 0.0,
            "total_winnings": 0.0,
            "total_bets": 0.0,
            "version": 0,
            "created_at": DURING_OPEN,
            "updated_at": DURING_OPEN,
        }
        doc.update({k: float(v) for k, v in segments.items()})
        await fake_db.wallets.insert_one(doc)
        return doc
    return _fund

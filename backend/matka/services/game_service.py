"""
backend/matka/services/game_service.py

Purpose:
    Game registry and per-day lifecycle (scheduled -> open -> closed ->
    result_declared). Status is derived per request from the clock, the game's
    window and the persisted game day; there is no in-process status cache.

Dependencies:
    - matka.database
    - matka.services.state_machine
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from bson import ObjectId
from bson.errors import InvalidId

import matka.database as _db
from matka.config import settings
from matka.models.game import (
    STATUS_ORDER,
    GameCreate,
    GameResponse,
    GameStatus,
    GameUpdate,
)
from matka.services.errors import GameNotFound, GameNotOpen, ResultAlreadyDeclared, ValidationFailed
from matka.services.state_machine import transition_once
from matka.utils import ensure_utc, parse_game_date, utcnow

logger = logging.getLogger("matka.game_service")


# ---------- Windows ----------

def _at(hhmm: str, day: date, tz: ZoneInfo) -> datetime:
    hours, minutes = (int(p) for p in hhmm.split(":"))
    return datetime.combine(day, time(hours, minutes), tzinfo=tz)


def window_for(game: dict, game_date: str) -> tuple[datetime, datetime, datetime]:
    """(opens_at, closes_at, result_at) for one game date, in the game's timezone.

    A close time at or before the open time means the window runs past
    midnight; the result time is always on or after the close.
    """
    tz = ZoneInfo(game.get("timezone") or settings.DEFAULT_TIMEZONE)
    day = date.fromisoformat(game_date)
    opens = _at(game["open_time"], day, tz)
    closes = _at(game["close_time"], day, tz)
    if closes <= opens:
        closes += timedelta(days=1)
    result = _at(game["result_time"], day, tz)
    while result < closes:
        result += timedelta(days=1)
    return opens, closes, result


def game_date_for(game: dict, now: datetime) -> str:
    """The game date whose window is current at ``now``.

    Before today's open, a window that started yesterday and closes after
    midnight is still the current one.
    """
    tz = ZoneInfo(game.get("timezone") or settings.DEFAULT_TIMEZONE)
    today = ensure_utc(now).astimezone(tz).date()
    yesterday = (today - timedelta(days=1)).isoformat()
    _, yesterday_close, _ = window_for(game, yesterday)
    if ensure_utc(now) < yesterday_close:
        return yesterday
    return today.isoformat()


def clock_status(game: dict, game_date: str, now: datetime) -> GameStatus:
    opens, closes, _ = window_for(game, game_date)
    now = ensure_utc(now)
    if now < opens:
        return GameStatus.scheduled
    if now < closes:
        return GameStatus.open if game.get("is_active", True) else GameStatus.scheduled
    return GameStatus.closed


def status_for(
    game: dict, game_date: str, now: datetime, day: Optional[dict] = None,
) -> GameStatus:
    """Effective status of a game for one date.

    A declared result is terminal. An admin-forced status applies to the
    current game date only; otherwise the clock decides.
    """
    if day and day.get("status") == GameStatus.result_declared.value:
        return GameStatus.result_declared
    forced = game.get("forced_status")
    if (
        forced
        and game.get("forced_for_date") == game_date
        and game_date == game_date_for(game, now)
    ):
        return GameStatus(forced)
    return clock_status(game, game_date, now)


def checked_game_date(value, label: str = "game date") -> str:
    """ISO game date from caller input; malformed dates are a validation error."""
    try:
        return parse_game_date(value)
    except ValueError:
        raise ValidationFailed(f"Invalid {label} '{value}'; expected YYYY-MM-DD.")


# ---------- Registry ----------

def _oid(game_id: str) -> ObjectId:
    try:
        return ObjectId(game_id)
    except (InvalidId, TypeError):
        raise GameNotFound(f"Game {game_id} not found.", game_id=game_id)


async def get_game(game_id: str, session=None) -> dict:
    game = await _db.db.games.find_one({"_id": _oid(game_id)}, session=session)
    if not game:
        raise GameNotFound(f"Game {game_id} not found.", game_id=game_id)
    return game


async def get_day(game_id: str, game_date: str, session=None) -> Optional[dict]:
    return await _db.db.game_days.find_one(
        {"game_id": game_id, "game_date": game_date}, session=session,
    )


async def create_game(body: GameCreate, created_by: str) -> dict:
    """Register a game. Duplicate names surface as DuplicateKeyError (409)."""
    if body.min_bet > body.max_bet:
        raise ValidationFailed("min_bet must not exceed max_bet.")
    now = utcnow()
    doc = {
        "name": body.name.strip(),
        "type": body.type.value,
        "description": body.description,
        "open_time": body.open_time,
        "close_time": body.close_time,
        "result_time": body.result_time,
        "timezone": body.timezone or settings.DEFAULT_TIMEZONE,
        "jodi_payout": body.jodi_payout or settings.DEFAULT_JODI_PAYOUT,
        "haruf_payout": body.haruf_payout or settings.DEFAULT_HARUF_PAYOUT,
        "crossing_payout": body.crossing_payout or settings.DEFAULT_CROSSING_PAYOUT,
        "min_bet": body.min_bet,
        "max_bet": body.max_bet,
        "commission_pct": (
            body.commission_pct if body.commission_pct is not None
            else settings.DEFAULT_COMMISSION_PCT
        ),
        "crossing_policy": body.crossing_policy.value if body.crossing_policy else None,
        "is_active": True,
        "forced_status": None,
        "forced_for_date": None,
        "created_by": created_by,
        "created_at": now,
        "updated_at": now,
    }
    result = await _db.db.games.insert_one(doc)
    doc["_id"] = result.inserted_id
    logger.info("Game created: %s (%s) by %s", doc["name"], doc["type"], created_by)
    return doc


async def update_game(game_id: str, body: GameUpdate) -> dict:
    """Edit game configuration. Window edits move the clock-driven status."""
    game = await get_game(game_id)
    changes = body.model_dump(exclude_none=True, mode="json")
    if not changes:
        return game
    merged = {**game, **changes}
    if merged["min_bet"] > merged["max_bet"]:
        raise ValidationFailed("min_bet must not exceed max_bet.")
    changes["updated_at"] = utcnow()
    await _db.db.games.update_one({"_id": game["_id"]}, {"$set": changes})
    logger.info("Game %s updated: %s", game_id, sorted(changes))
    return {**game, **changes}


async def force_status(
    game_id: str, status: Optional[GameStatus], now: Optional[datetime] = None,
) -> dict:
    """Override the clock for the current game date (None clears).

    The override is pinned to the game date it was set on and lapses when
    the next window starts.
    """
    if status == GameStatus.result_declared:
        raise ValidationFailed("result_declared can only be reached by declaring a result.")
    now = now or utcnow()
    game = await get_game(game_id)
    value = status.value if status else None
    forced_for = game_date_for(game, now) if value else None
    await _db.db.games.update_one(
        {"_id": game["_id"]},
        {"$set": {"forced_status": value, "forced_for_date": forced_for, "updated_at": now}},
    )
    logger.info("Game %s forced status -> %s for %s", game_id, value, forced_for)
    return {**game, "forced_status": value, "forced_for_date": forced_for}


def game_response(game: dict, game_date: str, status: GameStatus) -> GameResponse:
    opens, closes, result = window_for(game, game_date)
    return GameResponse(
        id=str(game["_id"]),
        name=game["name"],
        type=game["type"],
        description=game.get("description", ""),
        open_time=game["open_time"],
        close_time=game["close_time"],
        result_time=game["result_time"],
        timezone=game["timezone"],
        jodi_payout=game["jodi_payout"],
        haruf_payout=game["haruf_payout"],
        crossing_payout=game["crossing_payout"],
        min_bet=game["min_bet"],
        max_bet=game["max_bet"],
        commission_pct=game["commission_pct"],
        is_active=game.get("is_active", True),
        game_date=game_date,
        status=status.value,
        forced_status=game.get("forced_status"),
        forced_for_date=game.get("forced_for_date"),
        opens_at=opens,
        closes_at=closes,
        result_at=result,
    )


async def describe_game(game: dict, now: datetime, game_date: Optional[str] = None) -> GameResponse:
    gd = checked_game_date(game_date) if game_date else game_date_for(game, now)
    day = await get_day(str(game["_id"]), gd)
    return game_response(game, gd, status_for(game, gd, now, day))


async def list_games(
    now: datetime, game_date: Optional[str] = None, include_inactive: bool = False,
) -> list[GameResponse]:
    query = {} if include_inactive else {"is_active": True}
    games = await _db.db.games.find(query).sort("open_time", 1).to_list(length=500)
    return [await describe_game(g, now, game_date) for g in games]


# ---------- Lifecycle ----------

async def _ensure_day(game_id: str, game_date: str, now: datetime, session=None) -> None:
    await _db.db.game_days.update_one(
        {"game_id": game_id, "game_date": game_date},
        {"$setOnInsert": {"status": GameStatus.scheduled.value, "created_at": now}},
        upsert=True,
        session=session,
    )


async def hold_day_for_bet(game_id: str, game_date: str, now: datetime, session=None) -> None:
    """Count a bet against its game day inside the bet's transaction.

    The day document is written, so a concurrent declare for the same day
    write-conflicts with the bet instead of committing around it.
    """
    await _ensure_day(game_id, game_date, now, session=session)
    result = await _db.db.game_days.update_one(
        {
            "game_id": game_id,
            "game_date": game_date,
            "status": {"$ne": GameStatus.result_declared.value},
        },
        {"$inc": {"bets_placed": 1}},
        session=session,
    )
    if result.matched_count == 0:
        raise GameNotOpen(
            f"Result already declared for game {game_id} on {game_date}.",
            game_id=game_id, status=GameStatus.result_declared.value,
        )


async def advance_day(game: dict, game_date: str, target: GameStatus, now: datetime) -> bool:
    """Move a game day forward to ``target``; never backwards, never past a result."""
    if target == GameStatus.result_declared:
        raise ValueError("Use mark_result_declared for the terminal transition.")
    game_id = str(game["_id"])
    await _ensure_day(game_id, game_date, now)
    earlier = [s.value for s, order in STATUS_ORDER.items() if order < STATUS_ORDER[target]]
    moved = await transition_once(
        _db.db.game_days,
        {"game_id": game_id, "game_date": game_date},
        from_status=earlier,
        to_status=target.value,
        set_fields={f"{target.value}_at": now},
    )
    return moved is not None


async def mark_result_declared(
    game_id: str, game_date: str, result_id: str, now: datetime, session=None,
) -> None:
    """Terminal transition, run inside the settlement transaction."""
    await _ensure_day(game_id, game_date, now, session=session)
    moved = await transition_once(
        _db.db.game_days,
        {"game_id": game_id, "game_date": game_date},
        from_status=[GameStatus.scheduled.value, GameStatus.open.value, GameStatus.closed.value],
        to_status=GameStatus.result_declared.value,
        set_fields={"result_declared_at": now, "game_result_id": result_id},
        session=session,
    )
    if moved is None:
        raise ResultAlreadyDeclared(
            f"Result already declared for game {game_id} on {game_date}.",
            game_id=game_id, result_date=game_date,
        )


async def sync_game_days(now: Optional[datetime] = None) -> int:
    """Persist clock-driven transitions for every active game.

    Looks at the current and previous game date so a window that closed
    between two ticks still gets its closed record.
    """
    now = now or utcnow()
    moved = 0
    games = await _db.db.games.find({"is_active": True}).to_list(length=500)
    for game in games:
        current = game_date_for(game, now)
        previous = (date.fromisoformat(current) - timedelta(days=1)).isoformat()
        for gd in (previous, current):
            target = clock_status(game, gd, now)
            if target == GameStatus.scheduled:
                continue
            if await advance_day(game, gd, target, now):
                moved += 1
                logger.info("Game %s %s -> %s", game["name"], gd, target.value)
    return moved

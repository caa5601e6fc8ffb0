"""Game registry models: game definitions, betting windows, day status."""

import re
from datetime import datetime
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

_HHMM = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")


class GameType(str, Enum):
    jodi = "jodi"
    haruf = "haruf"
    crossing = "crossing"


class GameStatus(str, Enum):
    scheduled = "scheduled"
    open = "open"
    closed = "closed"
    result_declared = "result_declared"


# Forward-only order of the per-day lifecycle.
STATUS_ORDER = {
    GameStatus.scheduled: 0,
    GameStatus.open: 1,
    GameStatus.closed: 2,
    GameStatus.result_declared: 3,
}


class CrossingPolicy(str, Enum):
    permutation = "permutation"
    pairs = "pairs"
    exact = "exact"


def _check_hhmm(v: str) -> str:
    if not _HHMM.match(v):
        raise ValueError("Time must be HH:MM.")
    hours, minutes = v.split(":")
    return f"{int(hours):02d}:{minutes}"


def _check_timezone(v: str) -> str:
    try:
        ZoneInfo(v)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown timezone: {v}")
    return v


class GameInDB(BaseModel):
    """A recurring daily game. Status per date lives in ``game_days``."""
    name: str
    type: GameType
    description: str = ""
    open_time: str
    close_time: str
    result_time: str
    timezone: str
    jodi_payout: float
    haruf_payout: float
    crossing_payout: float
    min_bet: float = 10.0
    max_bet: float = 10000.0
    commission_pct: float
    crossing_policy: Optional[CrossingPolicy] = None
    is_active: bool = True
    forced_status: Optional[GameStatus] = None
    forced_for_date: Optional[str] = None
    created_by: str
    created_at: datetime
    updated_at: datetime


class GameCreate(BaseModel):
    """Request body for creating a game."""
    name: str = Field(min_length=1, max_length=80)
    type: GameType
    description: str = Field(default="", max_length=500)
    open_time: str
    close_time: str
    result_time: str
    timezone: Optional[str] = None
    jodi_payout: Optional[float] = Field(default=None, ge=1)
    haruf_payout: Optional[float] = Field(default=None, ge=1)
    crossing_payout: Optional[float] = Field(default=None, ge=1)
    min_bet: float = Field(default=10.0, ge=1)
    max_bet: float = Field(default=10000.0, ge=1)
    commission_pct: Optional[float] = Field(default=None, ge=0, le=100)
    crossing_policy: Optional[CrossingPolicy] = None

    @field_validator("open_time", "close_time", "result_time")
    @classmethod
    def _times(cls, v: str) -> str:
        return _check_hhmm(v)

    @field_validator("timezone")
    @classmethod
    def _tz(cls, v: Optional[str]) -> Optional[str]:
        return _check_timezone(v) if v else v


class GameUpdate(BaseModel):
    """Configuration edit. Only provided fields change."""
    description: Optional[str] = Field(default=None, max_length=500)
    open_time: Optional[str] = None
    close_time: Optional[str] = None
    result_time: Optional[str] = None
    timezone: Optional[str] = None
    jodi_payout: Optional[float] = Field(default=None, ge=1)
    haruf_payout: Optional[float] = Field(default=None, ge=1)
    crossing_payout: Optional[float] = Field(default=None, ge=1)
    min_bet: Optional[float] = Field(default=None, ge=1)
    max_bet: Optional[float] = Field(default=None, ge=1)
    commission_pct: Optional[float] = Field(default=None, ge=0, le=100)
    crossing_policy: Optional[CrossingPolicy] = None
    is_active: Optional[bool] = None

    @field_validator("open_time", "close_time", "result_time")
    @classmethod
    def _times(cls, v: Optional[str]) -> Optional[str]:
        return _check_hhmm(v) if v else v

    @field_validator("timezone")
    @classmethod
    def _tz(cls, v: Optional[str]) -> Optional[str]:
        return _check_timezone(v) if v else v


class ForceStatusRequest(BaseModel):
    """Admin override of the clock-driven status. ``None`` clears it."""
    status: Optional[GameStatus] = None


class GameResponse(BaseModel):
    id: str
    name: str
    type: str
    description: str
    open_time: str
    close_time: str
    result_time: str
    timezone: str
    jodi_payout: float
    haruf_payout: float
    crossing_payout: float
    min_bet: float
    max_bet: float
    commission_pct: float
    is_active: bool
    game_date: str
    status: str
    forced_status: Optional[str] = None
    forced_for_date: Optional[str] = None
    opens_at: datetime
    closes_at: datetime
    result_at: datetime

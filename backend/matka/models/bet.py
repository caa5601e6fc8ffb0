"""Bet models: wagers placed against a game day."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from matka.models.game import GameType


class BetStatus(str, Enum):
    pending = "pending"
    won = "won"
    lost = "lost"


class HarufPosition(str, Enum):
    first = "first"   # andar
    last = "last"     # bahar


class BetInDB(BaseModel):
    """A single wager. Settled exactly once, never deleted."""
    user_id: str
    game_id: str
    game_name: str
    game_date: str  # ISO date
    bet_type: GameType
    number: str
    position: Optional[HarufPosition] = None  # haruf only
    amount: float
    potential_winning: float
    status: BetStatus = BetStatus.pending
    winning_amount: float = 0.0
    declared_result: Optional[str] = None
    game_result_id: Optional[str] = None
    placed_at: datetime
    settled_at: Optional[datetime] = None


class BetCreate(BaseModel):
    """Request body for placing a bet."""
    bet_type: GameType
    number: str = Field(min_length=1, max_length=20)
    amount: float = Field(gt=0)
    position: Optional[HarufPosition] = None


class BetOutcome(BaseModel):
    """Settlement verdict for one bet."""
    status: BetStatus
    winning_amount: float = 0.0


class BetResponse(BaseModel):
    id: str
    game_id: str
    game_name: str
    game_date: str
    bet_type: str
    number: str
    position: Optional[str] = None
    amount: float
    potential_winning: float
    status: str
    winning_amount: float
    declared_result: Optional[str] = None
    placed_at: datetime
    settled_at: Optional[datetime] = None

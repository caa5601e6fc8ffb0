"""Game result models: declaration input, settlement report, stored result."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ResultStatus(str, Enum):
    pending = "pending"      # claimed inside an uncommitted declare
    declared = "declared"


class TypeDistribution(BaseModel):
    total_bets: int = 0
    total_amount: float = 0.0
    winning_bets: int = 0
    winning_amount: float = 0.0


class GameResultInDB(BaseModel):
    """At most one per (game_id, result_date); enforced by a unique index."""
    game_id: str
    game_name: str
    game_type: str
    result_date: str
    result_value: str
    jodi_result: Optional[str] = None
    haruf_result: Optional[str] = None
    crossing_result: Optional[str] = None
    total_bets: int = 0
    total_bet_amount: float = 0.0
    total_winning_amount: float = 0.0
    platform_commission: float = 0.0
    net_profit: float = 0.0
    winners_count: int = 0
    bet_distribution: dict[str, TypeDistribution] = Field(default_factory=dict)
    status: ResultStatus = ResultStatus.pending
    declared_by: str
    declared_at: datetime


class DeclareResultRequest(BaseModel):
    """Request body for declaring a result.

    ``result_value`` must match the game type's shape. The per-type fields let
    an admin declare a different value for bets of another type on the same
    game; each falls back to ``result_value``.
    """
    result_date: str
    result_value: str = Field(min_length=1, max_length=4)
    jodi_result: Optional[str] = Field(default=None, max_length=4)
    haruf_result: Optional[str] = Field(default=None, max_length=4)
    crossing_result: Optional[str] = Field(default=None, max_length=4)


class SettlementReport(BaseModel):
    """Returned to the admin after a successful declaration."""
    result_id: str
    game_id: str
    result_date: str
    result_value: str
    winners_count: int
    losers_count: int
    total_bets: int
    total_bet_amount: float
    total_winning_amount: float
    platform_commission: float
    net_profit: float
    bet_distribution: dict[str, TypeDistribution]
    declared_at: datetime


class GameResultResponse(BaseModel):
    id: str
    game_id: str
    game_name: str
    game_type: str
    result_date: str
    result_value: str
    jodi_result: Optional[str] = None
    haruf_result: Optional[str] = None
    crossing_result: Optional[str] = None
    total_bets: int
    total_bet_amount: float
    total_winning_amount: float
    platform_commission: float
    net_profit: float
    winners_count: int
    declared_at: datetime

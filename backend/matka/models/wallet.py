"""Wallet ledger models: segments, ledger entries, applied batches."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


# ---------- Wallet ----------

class Segment(str, Enum):
    deposit = "deposit"
    winning = "winning"
    bonus = "bonus"
    commission = "commission"


SEGMENTS = [s.value for s in Segment]


class WalletInDB(BaseModel):
    """One wallet per user. Segments only change through ledger entries."""
    user_id: str
    deposit: float = 0.0
    winning: float = 0.0
    bonus: float = 0.0
    commission: float = 0.0
    total_deposits: float = 0.0
    total_withdrawals: float = 0.0
    total_winnings: float = 0.0
    total_bets: float = 0.0
    version: int = 0
    created_at: datetime
    updated_at: datetime


class WalletResponse(BaseModel):
    """Wallet data returned to the client."""
    user_id: str
    balance: float
    deposit: float
    winning: float
    bonus: float
    commission: float
    total_deposits: float
    total_withdrawals: float
    total_winnings: float
    total_bets: float


# ---------- Ledger ----------

class LedgerReason(str, Enum):
    bet_stake = "bet_stake"
    bet_win = "bet_win"
    withdrawal_debit = "withdrawal_debit"
    deposit_credit = "deposit_credit"
    commission = "commission"
    admin_adjustment = "admin_adjustment"


# Cumulative wallet counter bumped (by magnitude) for each reason.
REASON_COUNTERS = {
    LedgerReason.bet_stake: "total_bets",
    LedgerReason.bet_win: "total_winnings",
    LedgerReason.withdrawal_debit: "total_withdrawals",
    LedgerReason.deposit_credit: "total_deposits",
}


class LedgerEntryIn(BaseModel):
    """One requested balance mutation. Positive = credit, negative = debit."""
    user_id: str
    segment: Segment
    amount: float
    reason: LedgerReason
    description: str = ""

    @field_validator("amount")
    @classmethod
    def _non_zero(cls, v: float) -> float:
        if v == 0:
            raise ValueError("Ledger amount must be non-zero.")
        return round(v, 2)


class LedgerEntryInDB(BaseModel):
    """Immutable audit trail for every money movement."""
    user_id: str
    segment: Segment
    amount: float
    reason: LedgerReason
    causal_ref: str
    causal_type: str
    seq: int
    segment_balance_after: float
    description: str
    created_at: datetime


class AppliedResult(BaseModel):
    """Outcome of one ledger batch; stored and replayed verbatim."""
    causal_ref: str
    causal_type: str
    entry_ids: list[str]
    balances: dict[str, dict[str, float]]  # user_id -> segment -> balance after
    applied_at: datetime
    replayed: bool = False


class LedgerEntryResponse(BaseModel):
    id: str
    segment: str
    amount: float
    reason: str
    causal_ref: str
    segment_balance_after: float
    description: str
    created_at: datetime


# ---------- Admin credit ----------

class AdminCreditRequest(BaseModel):
    """Manual admin credit. ``idempotency_key`` makes client retries safe."""
    amount: float = Field(gt=0)
    segment: Segment = Segment.deposit
    description: str = Field(default="", max_length=500)
    idempotency_key: Optional[str] = Field(default=None, max_length=64)

"""Pending financial requests: withdrawals and deposit (payment) requests."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class RequestKind(str, Enum):
    withdrawal = "withdrawal"
    deposit = "deposit"


class RequestStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class ReviewAction(str, Enum):
    approve = "approve"
    reject = "reject"


class BankDetails(BaseModel):
    bank_name: str = Field(max_length=100)
    account_number: str = Field(max_length=34)
    ifsc_code: str = Field(max_length=11)
    account_holder_name: str = Field(max_length=100)


class FinancialRequestInDB(BaseModel):
    """Tagged union: ``kind`` selects the ledger effect applied on approval."""
    kind: RequestKind
    user_id: str
    amount: float
    status: RequestStatus = RequestStatus.pending
    bank_details: Optional[BankDetails] = None       # withdrawal evidence
    payment_reference: Optional[str] = None          # deposit evidence
    proof_url: Optional[str] = None
    user_notes: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    admin_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_at: datetime


class WithdrawalCreate(BaseModel):
    amount: float = Field(gt=0)
    bank_details: BankDetails
    user_notes: Optional[str] = Field(default=None, max_length=500)


class DepositCreate(BaseModel):
    amount: float = Field(gt=0)
    payment_reference: str = Field(min_length=1, max_length=64)
    proof_url: Optional[str] = Field(default=None, max_length=500)
    user_notes: Optional[str] = Field(default=None, max_length=500)


class ReviewRequest(BaseModel):
    """Request body for processing a pending request."""
    action: ReviewAction
    notes: str = Field(default="", max_length=1000)


class FinancialRequestResponse(BaseModel):
    id: str
    kind: str
    user_id: str
    amount: float
    status: str
    payment_reference: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    admin_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_at: datetime


class ReviewResult(BaseModel):
    """Tells the admin exactly whether money moved."""
    request: FinancialRequestResponse
    money_moved: bool
    ledger_entry_ids: list[str] = Field(default_factory=list)

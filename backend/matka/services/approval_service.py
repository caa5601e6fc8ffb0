"""
backend/matka/services/approval_service.py

Purpose:
    Approval workflow for pending financial requests (withdrawals and deposit
    requests). One state machine for both kinds; the request's ``kind``
    selects the ledger effect applied on approval.

Dependencies:
    - matka.database
    - matka.services.ledger_service
    - matka.services.state_machine
"""

import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional

from bson import ObjectId
from bson.errors import InvalidId

import matka.database as _db
from matka.config import settings
from matka.models.financial_request import (
    FinancialRequestResponse,
    RequestKind,
    RequestStatus,
    ReviewAction,
    ReviewResult,
)
from matka.models.wallet import LedgerEntryIn, LedgerReason, Segment
from matka.services import ledger_service
from matka.services.errors import (
    AlreadyReviewed,
    InsufficientFunds,
    RequestNotFound,
    ValidationFailed,
)
from matka.services.state_machine import transition_once
from matka.utils import money, utcnow

logger = logging.getLogger("matka.approval_service")


# ---------- Ledger effects per request kind ----------

def withdrawal_plan(wallet: dict, amount: float) -> list[tuple[Segment, float]]:
    """Split a withdrawal across segments in WITHDRAWAL_SEGMENT_ORDER.

    Raises InsufficientFunds when the withdrawable segments together hold
    less than ``amount``.
    """
    remaining = money(amount)
    plan: list[tuple[Segment, float]] = []
    for name in settings.withdrawal_segments:
        if remaining <= 0:
            break
        available = money(wallet.get(name, 0.0))
        take = min(available, remaining)
        if take > 0:
            plan.append((Segment(name), take))
            remaining = money(remaining - take)
    if remaining > 0:
        available = money(amount - remaining)
        raise InsufficientFunds(
            f"Insufficient withdrawable balance: available {available:.2f}, required {amount:.2f}.",
            user_id=wallet.get("user_id"),
            available=available,
            required=money(amount),
        )
    return plan


async def _withdrawal_entries(request: dict, session) -> list[LedgerEntryIn]:
    wallet = await ledger_service.get_wallet(request["user_id"], session=session)
    return [
        LedgerEntryIn(
            user_id=request["user_id"],
            segment=segment,
            amount=-portion,
            reason=LedgerReason.withdrawal_debit,
            description=f"Withdrawal {request['_id']} ({segment.value})",
        )
        for segment, portion in withdrawal_plan(wallet, request["amount"])
    ]


async def _deposit_entries(request: dict, session) -> list[LedgerEntryIn]:
    return [
        LedgerEntryIn(
            user_id=request["user_id"],
            segment=Segment.deposit,
            amount=request["amount"],
            reason=LedgerReason.deposit_credit,
            description=f"Deposit {request['_id']} ref {request.get('payment_reference') or '-'}",
        )
    ]


LEDGER_EFFECTS: dict[RequestKind, Callable[[dict, object], Awaitable[list[LedgerEntryIn]]]] = {
    RequestKind.withdrawal: _withdrawal_entries,
    RequestKind.deposit: _deposit_entries,
}


# ---------- Review ----------

def _oid(request_id: str) -> ObjectId:
    try:
        return ObjectId(request_id)
    except (InvalidId, TypeError):
        raise RequestNotFound(f"Request {request_id} not found.", request_id=request_id)


async def review(
    request_id: str,
    action: ReviewAction,
    reviewer_id: str,
    notes: str = "",
    *,
    now: Optional[datetime] = None,
) -> ReviewResult:
    """Approve or reject a pending request, exactly once.

    The status change and the ledger batch commit together; if the debit
    fails the request stays pending. ``money_moved`` is true only for an
    approval whose ledger batch committed.
    """
    notes = (notes or "").strip()
    if action == ReviewAction.reject and not notes:
        raise ValidationFailed("A rejection needs admin notes.")

    now = now or utcnow()
    oid = _oid(request_id)
    to_status = RequestStatus.approved if action == ReviewAction.approve else RequestStatus.rejected
    set_fields = {
        "reviewed_by": reviewer_id,
        "reviewed_at": now,
        "admin_notes": notes or None,
    }
    if to_status == RequestStatus.rejected:
        set_fields["rejection_reason"] = notes

    async def _txn(session) -> tuple[dict, list[str]]:
        request = await transition_once(
            _db.db.financial_requests,
            {"_id": oid},
            from_status=RequestStatus.pending.value,
            to_status=to_status.value,
            set_fields=set_fields,
            session=session,
        )
        if request is None:
            existing = await _db.db.financial_requests.find_one({"_id": oid}, session=session)
            if existing is None:
                raise RequestNotFound(f"Request {request_id} not found.", request_id=request_id)
            raise AlreadyReviewed(
                f"Request {request_id} was already {existing['status']}.",
                request_id=request_id, status=existing["status"],
            )

        if to_status == RequestStatus.rejected:
            return request, []

        kind = RequestKind(request["kind"])
        entries = await LEDGER_EFFECTS[kind](request, session)
        applied = await ledger_service.apply_entries(
            str(oid), entries, causal_type=kind.value, session=session,
        )
        return request, applied.entry_ids

    request, entry_ids = await _db.run_in_transaction(_txn)
    logger.info(
        "Request %s (%s, %.2f) %s by %s",
        request_id, request["kind"], request["amount"], to_status.value, reviewer_id,
    )
    return ReviewResult(
        request=request_response(request),
        money_moved=bool(entry_ids),
        ledger_entry_ids=entry_ids,
    )


# ---------- Submission & queries ----------

async def submit_request(
    kind: RequestKind,
    user_id: str,
    amount: float,
    *,
    bank_details: Optional[dict] = None,
    payment_reference: Optional[str] = None,
    proof_url: Optional[str] = None,
    user_notes: Optional[str] = None,
) -> dict:
    """Create a pending request. Money only moves when an admin approves it."""
    amount = money(amount)
    if amount <= 0:
        raise ValidationFailed("Amount must be positive.")
    if kind == RequestKind.withdrawal:
        if not bank_details:
            raise ValidationFailed("Withdrawals need bank details.")
        wallet = await ledger_service.get_wallet(user_id)
        withdrawal_plan(wallet, amount)
    elif not payment_reference:
        raise ValidationFailed("Deposit requests need a payment reference.")

    doc = {
        "kind": kind.value,
        "user_id": user_id,
        "amount": amount,
        "status": RequestStatus.pending.value,
        "bank_details": bank_details,
        "payment_reference": payment_reference,
        "proof_url": proof_url,
        "user_notes": user_notes,
        "reviewed_by": None,
        "reviewed_at": None,
        "admin_notes": None,
        "rejection_reason": None,
        "created_at": utcnow(),
    }
    result = await _db.db.financial_requests.insert_one(doc)
    doc["_id"] = result.inserted_id
    logger.info("%s request submitted: user=%s amount=%.2f", kind.value, user_id, amount)
    return doc


async def list_requests(
    *,
    kind: Optional[RequestKind] = None,
    status: Optional[RequestStatus] = None,
    user_id: Optional[str] = None,
    limit: int = 50,
    skip: int = 0,
) -> list[dict]:
    query: dict = {}
    if kind:
        query["kind"] = kind.value
    if status:
        query["status"] = status.value
    if user_id:
        query["user_id"] = user_id
    return await _db.db.financial_requests.find(query).sort("created_at", -1).skip(skip).limit(limit).to_list(length=limit)


def request_response(doc: dict) -> FinancialRequestResponse:
    return FinancialRequestResponse(
        id=str(doc["_id"]),
        kind=doc["kind"],
        user_id=doc["user_id"],
        amount=doc["amount"],
        status=doc["status"],
        payment_reference=doc.get("payment_reference"),
        reviewed_by=doc.get("reviewed_by"),
        reviewed_at=doc.get("reviewed_at"),
        admin_notes=doc.get("admin_notes"),
        rejection_reason=doc.get("rejection_reason"),
        created_at=doc["created_at"],
    )

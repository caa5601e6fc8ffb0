"""Wallet endpoints: balance, ledger history, withdrawal and deposit requests."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from matka.models.financial_request import (
    DepositCreate,
    FinancialRequestResponse,
    RequestKind,
    WithdrawalCreate,
)
from matka.models.wallet import LedgerEntryResponse, WalletResponse
from matka.services import approval_service, ledger_service
from matka.services.auth_service import get_current_user

router = APIRouter(prefix="/api/wallet", tags=["wallet"])


# ---------- Wallet ----------

@router.get("", response_model=WalletResponse)
async def get_wallet(user=Depends(get_current_user)):
    """Current segment balances (all zero before the first ledger entry)."""
    wallet = await ledger_service.get_wallet(str(user["_id"]))
    return ledger_service.wallet_response(wallet)


@router.get("/ledger", response_model=list[LedgerEntryResponse])
async def get_ledger(
    limit: int = Query(50, le=200),
    skip: int = Query(0, ge=0),
    user=Depends(get_current_user),
):
    """Ledger history, newest first."""
    entries = await ledger_service.list_entries(str(user["_id"]), limit, skip)
    return [
        LedgerEntryResponse(
            id=str(e["_id"]),
            segment=e["segment"],
            amount=e["amount"],
            reason=e["reason"],
            causal_ref=e["causal_ref"],
            segment_balance_after=e["segment_balance_after"],
            description=e["description"],
            created_at=e["created_at"],
        )
        for e in entries
    ]


# ---------- Requests ----------

@router.post(
    "/withdrawals",
    response_model=FinancialRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def request_withdrawal(body: WithdrawalCreate, user=Depends(get_current_user)):
    """Ask for a payout. Nothing is debited until an admin approves."""
    doc = await approval_service.submit_request(
        RequestKind.withdrawal,
        str(user["_id"]),
        body.amount,
        bank_details=body.bank_details.model_dump(),
        user_notes=body.user_notes,
    )
    return approval_service.request_response(doc)


@router.post(
    "/deposits",
    response_model=FinancialRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def request_deposit(body: DepositCreate, user=Depends(get_current_user)):
    """Report a payment made outside the platform for an admin to verify."""
    doc = await approval_service.submit_request(
        RequestKind.deposit,
        str(user["_id"]),
        body.amount,
        payment_reference=body.payment_reference,
        proof_url=body.proof_url,
        user_notes=body.user_notes,
    )
    return approval_service.request_response(doc)


@router.get("/requests", response_model=list[FinancialRequestResponse])
async def my_requests(
    kind: Optional[RequestKind] = Query(None),
    limit: int = Query(50, le=200),
    skip: int = Query(0, ge=0),
    user=Depends(get_current_user),
):
    docs = await approval_service.list_requests(
        kind=kind, user_id=str(user["_id"]), limit=limit, skip=skip,
    )
    return [approval_service.request_response(d) for d in docs]

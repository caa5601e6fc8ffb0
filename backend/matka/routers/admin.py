"""
backend/matka/routers/admin.py

Purpose:
    Admin HTTP router: game registry, result declaration, financial request
    review and manual wallet credits. Every money command is audited.

Dependencies:
    - matka.services.auth_service
    - matka.services.audit_service
    - matka.services.settlement_service
    - matka.services.approval_service
"""

import logging
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

import matka.database as _db
from matka.models.financial_request import (
    FinancialRequestResponse,
    RequestKind,
    RequestStatus,
    ReviewRequest,
    ReviewResult,
)
from matka.models.game import ForceStatusRequest, GameCreate, GameResponse, GameUpdate
from matka.models.result import DeclareResultRequest, GameResultResponse, SettlementReport
from matka.models.wallet import AdminCreditRequest
from matka.services import approval_service, game_service, ledger_service, settlement_service
from matka.services.audit_service import log_audit
from matka.services.auth_service import get_admin_user
from matka.services.errors import DomainError
from matka.utils import utcnow

logger = logging.getLogger("matka.admin")
router = APIRouter(prefix="/api/admin", tags=["admin"])


# ---------- Games ----------

@router.get("/games", response_model=list[GameResponse])
async def list_games(
    game_date: Optional[str] = Query(None),
    admin=Depends(get_admin_user),
):
    """All games, inactive included."""
    return await game_service.list_games(utcnow(), game_date, include_inactive=True)


@router.post("/games", response_model=GameResponse, status_code=status.HTTP_201_CREATED)
async def create_game(body: GameCreate, request: Request, admin=Depends(get_admin_user)):
    admin_id = str(admin["_id"])
    game = await game_service.create_game(body, admin_id)
    await log_audit(
        actor_id=admin_id,
        target_id=f"game:{game['_id']}",
        action="GAME_CREATE",
        metadata={"name": game["name"], "type": game["type"]},
        request=request,
    )
    return await game_service.describe_game(game, utcnow())


@router.patch("/games/{game_id}", response_model=GameResponse)
async def update_game(
    game_id: str, body: GameUpdate, request: Request, admin=Depends(get_admin_user),
):
    game = await game_service.update_game(game_id, body)
    await log_audit(
        actor_id=str(admin["_id"]),
        target_id=f"game:{game_id}",
        action="GAME_UPDATE",
        metadata={"changed_fields": sorted(body.model_dump(exclude_none=True))},
        request=request,
    )
    return await game_service.describe_game(game, utcnow())


@router.post("/games/{game_id}/force-status", response_model=GameResponse)
async def force_game_status(
    game_id: str, body: ForceStatusRequest, request: Request, admin=Depends(get_admin_user),
):
    """Override the clock for the current game date; ``status: null`` clears it."""
    now = utcnow()
    game = await game_service.force_status(game_id, body.status, now=now)
    await log_audit(
        actor_id=str(admin["_id"]),
        target_id=f"game:{game_id}",
        action="GAME_FORCE_STATUS",
        metadata={"status": body.status.value if body.status else None},
        request=request,
    )
    return await game_service.describe_game(game, now)


# ---------- Results ----------

@router.post("/games/{game_id}/declare-result", response_model=SettlementReport)
async def declare_result(
    game_id: str, body: DeclareResultRequest, request: Request, admin=Depends(get_admin_user),
):
    """Declare the day's result and settle every pending bet atomically."""
    admin_id = str(admin["_id"])
    target = f"game:{game_id}:{body.result_date}"
    try:
        report = await settlement_service.declare_result(
            game_id,
            body.result_date,
            body.result_value,
            admin_id,
            jodi_result=body.jodi_result,
            haruf_result=body.haruf_result,
            crossing_result=body.crossing_result,
        )
    except DomainError as exc:
        await log_audit(
            actor_id=admin_id,
            target_id=target,
            action="RESULT_DECLARE",
            outcome=exc.code,
            metadata={"result_value": body.result_value, "error": exc.message},
            request=request,
        )
        raise

    await log_audit(
        actor_id=admin_id,
        target_id=target,
        action="RESULT_DECLARE",
        metadata={
            "result_id": report.result_id,
            "result_value": report.result_value,
            "total_bets": report.total_bets,
            "winners_count": report.winners_count,
            "total_winning_amount": report.total_winning_amount,
            "net_profit": report.net_profit,
        },
        request=request,
    )
    return report


@router.get("/results", response_model=list[GameResultResponse])
async def list_results(
    game_id: Optional[str] = Query(None),
    date_from: Optional[str] = Query(None),
    date_to: Optional[str] = Query(None),
    limit: int = Query(50, le=200),
    skip: int = Query(0, ge=0),
    admin=Depends(get_admin_user),
):
    results = await settlement_service.list_results(
        game_id=game_id, date_from=date_from, date_to=date_to, limit=limit, skip=skip,
    )
    return [settlement_service.result_response(r) for r in results]


# ---------- Financial requests ----------

@router.get("/financial-requests", response_model=list[FinancialRequestResponse])
async def list_financial_requests(
    kind: Optional[RequestKind] = Query(None),
    request_status: Optional[RequestStatus] = Query(RequestStatus.pending, alias="status"),
    limit: int = Query(50, le=200),
    skip: int = Query(0, ge=0),
    admin=Depends(get_admin_user),
):
    docs = await approval_service.list_requests(
        kind=kind, status=request_status, limit=limit, skip=skip,
    )
    return [approval_service.request_response(d) for d in docs]


@router.put("/financial-requests/{request_id}", response_model=ReviewResult)
async def review_financial_request(
    request_id: str, body: ReviewRequest, request: Request, admin=Depends(get_admin_user),
):
    """Approve or reject a pending withdrawal or deposit request."""
    admin_id = str(admin["_id"])
    target = f"financial_request:{request_id}"
    try:
        result = await approval_service.review(request_id, body.action, admin_id, body.notes)
    except DomainError as exc:
        await log_audit(
            actor_id=admin_id,
            target_id=target,
            action=f"REQUEST_{body.action.value.upper()}",
            outcome=exc.code,
            metadata={"error": exc.message},
            request=request,
        )
        raise

    await log_audit(
        actor_id=admin_id,
        target_id=target,
        action=f"REQUEST_{body.action.value.upper()}",
        metadata={
            "kind": result.request.kind,
            "amount": result.request.amount,
            "user_id": result.request.user_id,
            "money_moved": result.money_moved,
        },
        request=request,
    )
    return result


# ---------- Wallets ----------

async def _require_user(user_id: str) -> dict:
    try:
        oid = ObjectId(user_id)
    except InvalidId:
        raise HTTPException(status_code=404, detail="User not found.")
    user = await _db.db.users.find_one({"_id": oid}, {"_id": 1})
    if not user:
        raise HTTPException(status_code=404, detail="User not found.")
    return user


@router.get("/users/{user_id}/wallet")
async def user_wallet(user_id: str, admin=Depends(get_admin_user)):
    """Wallet snapshot next to the balances rebuilt from the ledger."""
    wallet = await ledger_service.get_wallet(user_id)
    snapshot = ledger_service.wallet_response(wallet)
    rebuilt = await ledger_service.rebuild_balances(user_id)
    drift = {
        seg: round(getattr(snapshot, seg) - amount, 2)
        for seg, amount in rebuilt.items()
        if round(getattr(snapshot, seg) - amount, 2) != 0
    }
    if drift:
        logger.error("Wallet drift for user %s: %s", user_id, drift)
    return {"wallet": snapshot, "ledger_balances": rebuilt, "drift": drift}


@router.post("/users/{user_id}/credit")
async def credit_user(
    user_id: str, body: AdminCreditRequest, request: Request, admin=Depends(get_admin_user),
):
    """Manual credit to one wallet segment. Retries with the same key are no-ops."""
    await _require_user(user_id)
    admin_id = str(admin["_id"])
    applied = await ledger_service.admin_credit(
        user_id=user_id,
        amount=body.amount,
        segment=body.segment,
        description=body.description,
        admin_id=admin_id,
        idempotency_key=body.idempotency_key,
    )
    if not applied.replayed:
        await log_audit(
            actor_id=admin_id,
            target_id=f"user:{user_id}",
            action="WALLET_CREDIT",
            metadata={
                "segment": body.segment.value,
                "amount": body.amount,
                "causal_ref": applied.causal_ref,
            },
            request=request,
        )
    return {
        "causal_ref": applied.causal_ref,
        "entry_ids": applied.entry_ids,
        "balances": applied.balances.get(user_id, {}),
        "replayed": applied.replayed,
    }

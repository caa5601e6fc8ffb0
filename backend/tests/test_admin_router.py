"""
backend/tests/test_admin_router.py

Purpose:
    Router-level tests for admin money commands: audit payloads on success and
    on rejection, idempotent manual credits, request review projection.

Dependencies:
    - pytest
    - matka.routers.admin
"""

from __future__ import annotations

import json
from types import SimpleNamespace

import pytest
from bson import ObjectId
from fastapi import HTTPException

from conftest import AFTER_CLOSE, DURING_OPEN, GAME_DATE
from matka import main
from matka.models.financial_request import ReviewRequest
from matka.models.game import ForceStatusRequest, GameCreate
from matka.models.result import DeclareResultRequest
from matka.models.wallet import AdminCreditRequest
from matka.routers import admin as admin_router
from matka.services import audit_service
from matka.services.errors import GameStillOpen, ValidationFailed


def _request() -> SimpleNamespace:
    return SimpleNamespace(headers={"x-forwarded-for": "203.0.113.42, 10.0.0.1"}, client=None)


_ADMIN = {"_id": ObjectId(), "is_admin": True}


@pytest.mark.asyncio
async def test_declare_result_is_audited(fake_db, make_game, make_bet, monkeypatch):
    game = await make_game()
    monkeypatch.setattr("matka.services.settlement_service.utcnow", lambda: AFTER_CLOSE)
    await make_bet(game, "u1", "56", 100)

    report = await admin_router.declare_result(
        str(game["_id"]),
        DeclareResultRequest(result_date=GAME_DATE, result_value="56"),
        _request(),
        admin=_ADMIN,
    )

    assert report.winners_count == 1
    audit = await fake_db.audit_logs.find_one({"action": "RESULT_DECLARE"})
    assert audit["outcome"] == "success"
    assert audit["actor_id"] == str(_ADMIN["_id"])
    assert audit["target_id"] == f"game:{game['_id']}:{GAME_DATE}"
    assert audit["metadata"]["total_winning_amount"] == 9500.0
    assert audit["ip_truncated"] == "203.0.113.xxx"


@pytest.mark.asyncio
async def test_rejected_declare_is_audited_and_reraised(fake_db, make_game, monkeypatch):
    game = await make_game()
    monkeypatch.setattr(
        "matka.services.settlement_service.utcnow", lambda: DURING_OPEN,
    )

    with pytest.raises(GameStillOpen):
        await admin_router.declare_result(
            str(game["_id"]),
            DeclareResultRequest(result_date=GAME_DATE, result_value="56"),
            _request(),
            admin=_ADMIN,
        )

    audit = await fake_db.audit_logs.find_one({"action": "RESULT_DECLARE"})
    assert audit["outcome"] == "game_still_open"
    assert await fake_db.game_results.count_documents({}) == 0


@pytest.mark.asyncio
async def test_review_returns_projection(fake_db, fund_wallet):
    await fund_wallet("u1", winning=400)
    request_id = ObjectId()
    await fake_db.financial_requests.insert_one({
        "_id": request_id,
        "kind": "withdrawal",
        "user_id": "u1",
        "amount": 250.0,
        "status": "pending",
        "created_at": DURING_OPEN,
    })

    result = await admin_router.review_financial_request(
        str(request_id), ReviewRequest(action="approve"), _request(), admin=_ADMIN,
    )

    assert result.money_moved is True
    assert result.request.status == "approved"
    audit = await fake_db.audit_logs.find_one({"action": "REQUEST_APPROVE"})
    assert audit["metadata"]["money_moved"] is True
    assert audit["metadata"]["amount"] == 250.0


@pytest.mark.asyncio
async def test_credit_user_replay_is_not_audited_twice(fake_db):
    user_id = ObjectId()
    await fake_db.users.insert_one({"_id": user_id, "email": "p@example.com"})
    body = AdminCreditRequest(amount=100, idempotency_key="ticket-42")

    first = await admin_router.credit_user(str(user_id), body, _request(), admin=_ADMIN)
    second = await admin_router.credit_user(str(user_id), body, _request(), admin=_ADMIN)

    assert first["replayed"] is False
    assert second["replayed"] is True
    assert second["balances"]["deposit"] == 100.0
    assert await fake_db.audit_logs.count_documents({"action": "WALLET_CREDIT"}) == 1


@pytest.mark.asyncio
async def test_credit_unknown_user(fake_db):
    with pytest.raises(HTTPException) as exc:
        await admin_router.credit_user(
            str(ObjectId()), AdminCreditRequest(amount=10), _request(), admin=_ADMIN,
        )
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_user_wallet_reports_drift(fake_db, fund_wallet):
    # Balance written without a ledger entry.
    await fund_wallet("u1", deposit=40)

    body = await admin_router.user_wallet("u1", admin=_ADMIN)

    assert body["ledger_balances"]["deposit"] == 0.0
    assert body["drift"] == {"deposit": 40.0}


@pytest.mark.asyncio
async def test_create_and_force_game(fake_db):
    created = await admin_router.create_game(
        GameCreate(name="Rajdhani", type="crossing", open_time="11:00", close_time="23:30",
                   result_time="23:45", crossing_policy="pairs"),
        _request(),
        admin=_ADMIN,
    )
    assert created.type == "crossing"
    assert created.crossing_payout == 95.0

    forced = await admin_router.force_game_status(
        created.id, ForceStatusRequest(status="closed"), _request(), admin=_ADMIN,
    )
    assert forced.status == "closed"
    assert forced.forced_status == "closed"
    actions = [a["action"] for a in await fake_db.audit_logs.find({}).to_list(length=None)]
    assert actions == ["GAME_CREATE", "GAME_FORCE_STATUS"]


@pytest.mark.asyncio
async def test_malformed_result_dates_are_validation_errors(fake_db):
    with pytest.raises(ValidationFailed) as exc_info:
        await admin_router.list_results(
            game_id=None, date_from="2026-13-45", date_to=None, limit=50, skip=0, admin=_ADMIN,
        )

    response = await main.domain_error_handler(
        SimpleNamespace(method="GET", url=SimpleNamespace(path="/api/admin/results")), exc_info.value,
    )
    assert response.status_code == 400
    assert json.loads(response.body) == {
        "detail": "Invalid date_from '2026-13-45'; expected YYYY-MM-DD.",
        "code": "validation_failed",
        "money_moved": False,
    }


def test_audit_ip_keeps_network_part_only():
    assert audit_service._masked_ip("203.0.113.42") == "203.0.113.xxx"
    assert audit_service._masked_ip("2001:db8::1") == "2001:db8::xxx"
    assert audit_service._masked_ip("testclient") == "testclient"
    assert audit_service._masked_ip("") == ""

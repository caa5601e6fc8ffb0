"""Wallet Ledger: the only code path that changes a user's money.

Every mutation is a batch of ledger entries sharing one causal reference (the
bet, request or admin action that caused it). A batch is applied at most once:
its ``ledger_batches`` record (``_id = causal_ref``) is written in the same
transaction as the wallet updates, and a replay returns the stored result.
"""

import logging
from typing import Optional

from bson import ObjectId
from pymongo import ReturnDocument

import matka.database as _db
from matka.models.wallet import (
    REASON_COUNTERS,
    SEGMENTS,
    AppliedResult,
    LedgerEntryIn,
    LedgerReason,
    Segment,
    WalletResponse,
)
from matka.services.errors import InsufficientFunds, ValidationFailed
from matka.utils import money, utcnow

logger = logging.getLogger("matka.ledger_service")

_COUNTERS = ["total_deposits", "total_withdrawals", "total_winnings", "total_bets"]


async def apply_entries(
    causal_ref: str,
    entries: list[LedgerEntryIn],
    *,
    causal_type: str,
    session=None,
) -> AppliedResult:
    """Apply a batch of entries atomically, at most once per ``causal_ref``.

    Pass ``session`` to join an enclosing transaction (settlement, approval);
    otherwise the batch runs in its own. Raises InsufficientFunds if any debit
    would take its segment below zero, in which case nothing is written.
    """
    if not causal_ref:
        raise ValidationFailed("Ledger batch needs a causal reference.")
    if not entries:
        raise ValidationFailed("Ledger batch must contain at least one entry.")

    async def _apply(s) -> AppliedResult:
        stored = await _db.db.ledger_batches.find_one({"_id": causal_ref}, session=s)
        if stored:
            logger.info("Ledger replay ignored: causal_ref=%s", causal_ref)
            return AppliedResult(**{**stored["result"], "replayed": True})

        now = utcnow()
        docs = []
        balances: dict[str, dict[str, float]] = {}
        for seq, entry in enumerate(entries):
            wallet = await _mutate_wallet(entry, now, s)
            balances[entry.user_id] = {seg: money(wallet.get(seg, 0.0)) for seg in SEGMENTS}
            docs.append({
                "user_id": entry.user_id,
                "segment": entry.segment.value,
                "amount": entry.amount,
                "reason": entry.reason.value,
                "causal_ref": causal_ref,
                "causal_type": causal_type,
                "seq": seq,
                "segment_balance_after": money(wallet[entry.segment.value]),
                "description": entry.description,
                "created_at": now,
            })

        inserted = await _db.db.ledger_entries.insert_many(docs, session=s)
        applied = AppliedResult(
            causal_ref=causal_ref,
            causal_type=causal_type,
            entry_ids=[str(i) for i in inserted.inserted_ids],
            balances=balances,
            applied_at=now,
        )
        await _db.db.ledger_batches.insert_one(
            {
                "_id": causal_ref,
                "causal_type": causal_type,
                "result": applied.model_dump(),
                "created_at": now,
            },
            session=s,
        )
        return applied

    return await _db.run_in_transaction(_apply, session)


async def _mutate_wallet(entry: LedgerEntryIn, now, session) -> dict:
    """Apply one entry to its wallet with a non-negativity guard on debits."""
    segment = entry.segment.value
    inc = {segment: entry.amount, "version": 1}
    counter = REASON_COUNTERS.get(entry.reason)
    if counter:
        inc[counter] = abs(entry.amount)

    if entry.amount > 0:
        on_insert = {
            field: 0.0 for field in SEGMENTS + _COUNTERS if field not in inc
        }
        on_insert["created_at"] = now
        return await _db.db.wallets.find_one_and_update(
            {"user_id": entry.user_id},
            {"$inc": inc, "$set": {"updated_at": now}, "$setOnInsert": on_insert},
            upsert=True,
            return_document=ReturnDocument.AFTER,
            session=session,
        )

    required = -entry.amount
    wallet = await _db.db.wallets.find_one_and_update(
        {"user_id": entry.user_id, segment: {"$gte": required}},
        {"$inc": inc, "$set": {"updated_at": now}},
        return_document=ReturnDocument.AFTER,
        session=session,
    )
    if wallet is None:
        current = await _db.db.wallets.find_one({"user_id": entry.user_id}, session=session)
        available = money((current or {}).get(segment, 0.0))
        raise InsufficientFunds(
            f"Insufficient {segment} balance: available {available:.2f}, required {required:.2f}.",
            user_id=entry.user_id,
            segment=segment,
            available=available,
            required=required,
        )
    return wallet


async def get_wallet(user_id: str, session=None) -> dict:
    """Current wallet snapshot; an all-zero wallet if the user has none yet."""
    wallet = await _db.db.wallets.find_one({"user_id": user_id}, session=session)
    if wallet:
        return wallet
    empty = {field: 0.0 for field in SEGMENTS + _COUNTERS}
    return {"user_id": user_id, **empty, "version": 0}


def wallet_response(wallet: dict) -> WalletResponse:
    segments = {seg: money(wallet.get(seg, 0.0)) for seg in SEGMENTS}
    return WalletResponse(
        user_id=wallet["user_id"],
        balance=money(sum(segments.values())),
        **segments,
        **{c: money(wallet.get(c, 0.0)) for c in _COUNTERS},
    )


async def list_entries(user_id: str, limit: int = 50, skip: int = 0) -> list[dict]:
    """Ledger history for a wallet, newest first."""
    return await _db.db.ledger_entries.find(
        {"user_id": user_id},
    ).sort("created_at", -1).skip(skip).limit(limit).to_list(length=limit)


async def rebuild_balances(user_id: str) -> dict[str, float]:
    """Recompute segment balances from the ledger alone.

    The ledger is the source of truth; comparing this with the wallet snapshot
    detects drift.
    """
    totals = {seg: 0.0 for seg in SEGMENTS}
    entries = await _db.db.ledger_entries.find(
        {"user_id": user_id}, {"segment": 1, "amount": 1},
    ).to_list(length=None)
    for entry in entries:
        totals[entry["segment"]] += entry["amount"]
    return {seg: money(v) for seg, v in totals.items()}


async def admin_credit(
    *,
    user_id: str,
    amount: float,
    segment: Segment,
    description: str,
    admin_id: str,
    idempotency_key: Optional[str] = None,
) -> AppliedResult:
    """Manual credit by an admin, booked as an ``admin_adjustment`` entry."""
    causal_ref = f"admin-credit:{idempotency_key}" if idempotency_key else f"admin-credit:{ObjectId()}"
    entry = LedgerEntryIn(
        user_id=user_id,
        segment=segment,
        amount=amount,
        reason=LedgerReason.admin_adjustment,
        description=description or f"Manual credit ({segment.value}) by admin {admin_id}",
    )
    applied = await apply_entries(causal_ref, [entry], causal_type="admin_credit")
    if not applied.replayed:
        logger.info(
            "Admin credit: user=%s segment=%s amount=%.2f admin=%s",
            user_id, segment.value, amount, admin_id,
        )
    return applied

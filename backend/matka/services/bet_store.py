"""
backend/matka/services/bet_store.py

Purpose:
    Bet records for a game day. Settlement is the only writer of bet status;
    every status write is conditional on the bet still being pending, so a
    repeated settle call is a no-op.

Dependencies:
    - matka.database
    - matka.services.ledger_service
    - matka.services.game_service
"""

import logging
from datetime import datetime
from typing import Optional

from bson import ObjectId

import matka.database as _db
from matka.models.bet import BetOutcome, BetResponse, BetStatus
from matka.models.game import GameStatus, GameType
from matka.models.wallet import LedgerEntryIn, LedgerReason, Segment
from matka.services import game_service, ledger_service
from matka.services.errors import GameNotOpen, ValidationFailed
from matka.services.matching import payout_for, validate_bet_number
from matka.services.state_machine import transition_once
from matka.utils import money, utcnow

logger = logging.getLogger("matka.bet_store")


async def find_pending_bets(game_id: str, game_date: str, session=None) -> list[dict]:
    """All pending bets of one game day, oldest first."""
    return await _db.db.bets.find(
        {"game_id": game_id, "game_date": game_date, "status": BetStatus.pending.value},
        session=session,
    ).sort("placed_at", 1).to_list(length=None)


async def mark_settled(
    outcomes: dict[str, BetOutcome],
    *,
    declared_result: str,
    game_result_id: str,
    now: Optional[datetime] = None,
    session=None,
) -> int:
    """Move each bet from pending to its outcome. Returns how many moved.

    Bets that are already terminal are skipped, never rewritten.
    """
    now = now or utcnow()
    settled = 0
    for bet_id, outcome in outcomes.items():
        if outcome.status == BetStatus.pending:
            raise ValueError(f"Outcome for bet {bet_id} must be terminal.")
        moved = await transition_once(
            _db.db.bets,
            {"_id": ObjectId(bet_id)},
            from_status=BetStatus.pending.value,
            to_status=outcome.status.value,
            set_fields={
                "winning_amount": outcome.winning_amount,
                "declared_result": declared_result,
                "game_result_id": game_result_id,
                "settled_at": now,
            },
            session=session,
        )
        if moved is not None:
            settled += 1
    return settled


async def place_bet(
    *,
    user_id: str,
    game_id: str,
    bet_type: GameType,
    number: str,
    amount: float,
    position: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict:
    """Place a wager on the current game day and debit the stake.

    The bet insert and the ``bet_stake`` ledger entry (deposit segment, causal
    reference = bet id) commit together.
    """
    now = now or utcnow()
    game = await game_service.get_game(game_id)
    game_date = game_service.game_date_for(game, now)
    day = await game_service.get_day(game_id, game_date)
    status = game_service.status_for(game, game_date, now, day)
    if status != GameStatus.open:
        raise GameNotOpen(
            f"Betting is {status.value} for {game['name']} on {game_date}.",
            game_id=game_id, status=status.value,
        )

    amount = money(amount)
    if amount < game["min_bet"] or amount > game["max_bet"]:
        raise ValidationFailed(
            f"Bet amount must be between {game['min_bet']:.0f} and {game['max_bet']:.0f}."
        )
    number = validate_bet_number(bet_type, number, position)

    bet_id = ObjectId()
    bet_doc = {
        "_id": bet_id,
        "user_id": user_id,
        "game_id": game_id,
        "game_name": game["name"],
        "game_date": game_date,
        "bet_type": bet_type.value,
        "number": number,
        "position": position if bet_type == GameType.haruf else None,
        "amount": amount,
        "potential_winning": money(amount * payout_for(game, bet_type)),
        "status": BetStatus.pending.value,
        "winning_amount": 0.0,
        "declared_result": None,
        "game_result_id": None,
        "placed_at": now,
        "settled_at": None,
    }

    async def _txn(session):
        # The open check above ran outside the transaction; a declare or an
        # admin close may have committed since.
        await game_service.hold_day_for_bet(game_id, game_date, now, session=session)
        current = await game_service.get_game(game_id, session=session)
        status = game_service.status_for(current, game_date, now)
        if status != GameStatus.open:
            raise GameNotOpen(
                f"Betting is {status.value} for {game['name']} on {game_date}.",
                game_id=game_id, status=status.value,
            )
        await _db.db.bets.insert_one(bet_doc, session=session)
        await ledger_service.apply_entries(
            str(bet_id),
            [LedgerEntryIn(
                user_id=user_id,
                segment=Segment.deposit,
                amount=-amount,
                reason=LedgerReason.bet_stake,
                description=f"Bet {bet_type.value} {number} on {game['name']} ({game_date})",
            )],
            causal_type="bet",
            session=session,
        )

    await _db.run_in_transaction(_txn)
    logger.info(
        "Bet placed: user=%s game=%s date=%s %s %s amount=%.2f",
        user_id, game["name"], game_date, bet_type.value, number, amount,
    )
    return bet_doc


async def list_bets(
    *,
    user_id: Optional[str] = None,
    game_id: Optional[str] = None,
    game_date: Optional[str] = None,
    status: Optional[BetStatus] = None,
    limit: int = 50,
    skip: int = 0,
) -> list[dict]:
    query: dict = {}
    if user_id:
        query["user_id"] = user_id
    if game_id:
        query["game_id"] = game_id
    if game_date:
        query["game_date"] = game_date
    if status:
        query["status"] = status.value
    return await _db.db.bets.find(query).sort("placed_at", -1).skip(skip).limit(limit).to_list(length=limit)


def bet_response(bet: dict) -> BetResponse:
    return BetResponse(
        id=str(bet["_id"]),
        game_id=bet["game_id"],
        game_name=bet["game_name"],
        game_date=bet["game_date"],
        bet_type=bet["bet_type"],
        number=bet["number"],
        position=bet.get("position"),
        amount=bet["amount"],
        potential_winning=bet["potential_winning"],
        status=bet["status"],
        winning_amount=bet.get("winning_amount", 0.0),
        declared_result=bet.get("declared_result"),
        placed_at=bet["placed_at"],
        settled_at=bet.get("settled_at"),
    )

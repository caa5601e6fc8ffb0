"""
backend/matka/services/settlement_service.py

Purpose:
    Result declaration and bet settlement for one (game, date). The result
    claim, bet verdicts, winner credits and the game-day transition commit in
    one MongoDB transaction; the unique (game_id, result_date) index decides
    which of two concurrent declares wins.

Dependencies:
    - matka.database
    - matka.services.bet_store
    - matka.services.game_service
    - matka.services.ledger_service
    - matka.services.matching
"""

import logging
from datetime import datetime
from typing import Optional

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

import matka.database as _db
from matka.config import settings
from matka.models.bet import BetOutcome, BetStatus
from matka.models.game import CrossingPolicy, GameStatus, GameType
from matka.models.result import (
    GameResultResponse,
    ResultStatus,
    SettlementReport,
    TypeDistribution,
)
from matka.models.wallet import LedgerEntryIn, LedgerReason, Segment
from matka.services import bet_store, game_service, ledger_service
from matka.services.errors import GameStillOpen, ResultAlreadyDeclared
from matka.services.matching import build_declared_result, evaluate_bet, platform_commission
from matka.utils import money, utcnow

logger = logging.getLogger("matka.settlement_service")


def _crossing_policy(game: dict) -> CrossingPolicy:
    return CrossingPolicy(game.get("crossing_policy") or settings.CROSSING_MATCH_POLICY)


async def declare_result(
    game_id: str,
    result_date: str,
    result_value: str,
    declared_by: str,
    *,
    jodi_result: Optional[str] = None,
    haruf_result: Optional[str] = None,
    crossing_result: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SettlementReport:
    """Declare the result of one game day and settle all its pending bets.

    Raises GameNotFound, InvalidResultShape, GameStillOpen,
    ResultAlreadyDeclared or InsufficientSystemState; in every one of those
    cases nothing was written.
    """
    now = now or utcnow()
    result_date = game_service.checked_game_date(result_date, "result date")

    game = await game_service.get_game(game_id)
    game_type = GameType(game["type"])
    declared = build_declared_result(
        game_type,
        result_value,
        jodi_result=jodi_result,
        haruf_result=haruf_result,
        crossing_result=crossing_result,
    )
    policy = _crossing_policy(game)

    async def _settle(session) -> SettlementReport:
        result_id = ObjectId()
        try:
            await _db.db.game_results.insert_one(
                {
                    "_id": result_id,
                    "game_id": game_id,
                    "game_name": game["name"],
                    "game_type": game_type.value,
                    "result_date": result_date,
                    "result_value": declared.primary,
                    "jodi_result": declared.jodi,
                    "haruf_result": declared.haruf,
                    "crossing_result": declared.crossing,
                    "status": ResultStatus.pending.value,
                    "declared_by": declared_by,
                    "declared_at": now,
                },
                session=session,
            )
        except DuplicateKeyError:
            raise ResultAlreadyDeclared(
                f"Result already declared for {game['name']} on {result_date}.",
                game_id=game_id, result_date=result_date,
            )

        day = await game_service.get_day(game_id, result_date, session=session)
        status = game_service.status_for(game, result_date, now, day)
        if status == GameStatus.result_declared:
            raise ResultAlreadyDeclared(
                f"Result already declared for {game['name']} on {result_date}.",
                game_id=game_id, result_date=result_date,
            )
        if status != GameStatus.closed:
            raise GameStillOpen(
                f"{game['name']} is {status.value} for {result_date}; betting has not closed.",
                game_id=game_id, result_date=result_date, status=status.value,
            )

        bets = await bet_store.find_pending_bets(game_id, result_date, session=session)

        distribution = {t.value: TypeDistribution() for t in GameType}
        outcomes: dict[str, BetOutcome] = {}
        winners: list[tuple[dict, float]] = []
        for bet in bets:
            won, winning_amount = evaluate_bet(bet, declared, game, policy)
            stats = distribution[bet["bet_type"]]
            stats.total_bets += 1
            stats.total_amount = money(stats.total_amount + bet["amount"])
            if won:
                stats.winning_bets += 1
                stats.winning_amount = money(stats.winning_amount + winning_amount)
                winners.append((bet, winning_amount))
                outcomes[str(bet["_id"])] = BetOutcome(status=BetStatus.won, winning_amount=winning_amount)
            else:
                outcomes[str(bet["_id"])] = BetOutcome(status=BetStatus.lost)

        total_bet_amount = money(sum(b["amount"] for b in bets))
        total_winning_amount = money(sum(amount for _, amount in winners))
        commission = platform_commission(total_bet_amount, game["commission_pct"])
        net_profit = money(total_bet_amount - total_winning_amount)

        for bet, winning_amount in winners:
            await ledger_service.apply_entries(
                str(bet["_id"]),
                [LedgerEntryIn(
                    user_id=bet["user_id"],
                    segment=Segment.winning,
                    amount=winning_amount,
                    reason=LedgerReason.bet_win,
                    description=(
                        f"Win: {game['name']} {result_date} {bet['bet_type']} "
                        f"{bet['number']} -> {declared.primary}"
                    ),
                )],
                causal_type="bet",
                session=session,
            )

        await bet_store.mark_settled(
            outcomes,
            declared_result=declared.primary,
            game_result_id=str(result_id),
            now=now,
            session=session,
        )

        await _db.db.game_results.update_one(
            {"_id": result_id},
            {"$set": {
                "status": ResultStatus.declared.value,
                "total_bets": len(bets),
                "total_bet_amount": total_bet_amount,
                "total_winning_amount": total_winning_amount,
                "platform_commission": commission,
                "net_profit": net_profit,
                "winners_count": len(winners),
                "bet_distribution": {k: v.model_dump() for k, v in distribution.items()},
            }},
            session=session,
        )

        await game_service.mark_result_declared(
            game_id, result_date, str(result_id), now, session=session,
        )

        return SettlementReport(
            result_id=str(result_id),
            game_id=game_id,
            result_date=result_date,
            result_value=declared.primary,
            winners_count=len(winners),
            losers_count=len(bets) - len(winners),
            total_bets=len(bets),
            total_bet_amount=total_bet_amount,
            total_winning_amount=total_winning_amount,
            platform_commission=commission,
            net_profit=net_profit,
            bet_distribution=distribution,
            declared_at=now,
        )

    report = await _db.run_in_transaction(_settle)
    logger.info(
        "Result declared: game=%s date=%s value=%s bets=%d winners=%d paid=%.2f net=%.2f",
        game["name"], result_date, report.result_value, report.total_bets,
        report.winners_count, report.total_winning_amount, report.net_profit,
    )
    return report


async def get_result(game_id: str, result_date: str) -> Optional[dict]:
    return await _db.db.game_results.find_one({
        "game_id": game_id,
        "result_date": game_service.checked_game_date(result_date, "result date"),
        "status": ResultStatus.declared.value,
    })


async def list_results(
    *,
    game_id: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    limit: int = 50,
    skip: int = 0,
) -> list[dict]:
    """Declared results, newest date first."""
    query: dict = {"status": ResultStatus.declared.value}
    if game_id:
        query["game_id"] = game_id
    date_range = {}
    if date_from:
        date_range["$gte"] = game_service.checked_game_date(date_from, "date_from")
    if date_to:
        date_range["$lte"] = game_service.checked_game_date(date_to, "date_to")
    if date_range:
        query["result_date"] = date_range
    return await _db.db.game_results.find(query).sort("result_date", -1).skip(skip).limit(limit).to_list(length=limit)


def result_response(doc: dict) -> GameResultResponse:
    return GameResultResponse(
        id=str(doc["_id"]),
        game_id=doc["game_id"],
        game_name=doc["game_name"],
        game_type=doc["game_type"],
        result_date=doc["result_date"],
        result_value=doc["result_value"],
        jodi_result=doc.get("jodi_result"),
        haruf_result=doc.get("haruf_result"),
        crossing_result=doc.get("crossing_result"),
        total_bets=doc.get("total_bets", 0),
        total_bet_amount=doc.get("total_bet_amount", 0.0),
        total_winning_amount=doc.get("total_winning_amount", 0.0),
        platform_commission=doc.get("platform_commission", 0.0),
        net_profit=doc.get("net_profit", 0.0),
        winners_count=doc.get("winners_count", 0),
        declared_at=doc["declared_at"],
    )

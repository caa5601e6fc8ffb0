"""Game endpoints: listing with live status, results history, bet placement."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from matka.models.bet import BetCreate, BetResponse, BetStatus
from matka.models.game import GameResponse
from matka.models.result import GameResultResponse
from matka.services import bet_store, game_service, settlement_service
from matka.services.auth_service import get_current_user
from matka.utils import utcnow

router = APIRouter(prefix="/api/games", tags=["games"])


@router.get("", response_model=list[GameResponse])
async def list_games(
    game_date: Optional[str] = Query(None, description="ISO date; defaults to each game's current day"),
):
    """Active games with their status for the current (or given) game date."""
    return await game_service.list_games(utcnow(), game_date)


# Declared before /{game_id} so "bets" is not taken for a game id.
@router.get("/bets/me", response_model=list[BetResponse])
async def my_bets(
    game_id: Optional[str] = Query(None),
    bet_status: Optional[BetStatus] = Query(None, alias="status"),
    limit: int = Query(50, le=200),
    skip: int = Query(0, ge=0),
    user=Depends(get_current_user),
):
    bets = await bet_store.list_bets(
        user_id=str(user["_id"]),
        game_id=game_id,
        status=bet_status,
        limit=limit,
        skip=skip,
    )
    return [bet_store.bet_response(b) for b in bets]


@router.get("/{game_id}", response_model=GameResponse)
async def get_game(game_id: str, game_date: Optional[str] = Query(None)):
    game = await game_service.get_game(game_id)
    return await game_service.describe_game(game, utcnow(), game_date)


@router.get("/{game_id}/results", response_model=list[GameResultResponse])
async def game_results(
    game_id: str,
    limit: int = Query(30, le=200),
    skip: int = Query(0, ge=0),
):
    """Declared results of one game, newest first."""
    await game_service.get_game(game_id)
    results = await settlement_service.list_results(game_id=game_id, limit=limit, skip=skip)
    return [settlement_service.result_response(r) for r in results]


@router.post("/{game_id}/bets", response_model=BetResponse, status_code=status.HTTP_201_CREATED)
async def place_bet(game_id: str, body: BetCreate, user=Depends(get_current_user)):
    """Place a bet on the game's open day; the stake is debited from the deposit balance."""
    bet = await bet_store.place_bet(
        user_id=str(user["_id"]),
        game_id=game_id,
        bet_type=body.bet_type,
        number=body.number,
        amount=body.amount,
        position=body.position.value if body.position else None,
    )
    return bet_store.bet_response(bet)

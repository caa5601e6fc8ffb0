"""Pure matching rules: result shapes, bet numbers, per-type win checks.

Nothing here touches the database. Settlement looks up a matcher by bet type
in ``MATCHERS``; crossing uses a pluggable combination strategy from
``CROSSING_STRATEGIES`` selected per game (or globally via settings).
"""

import re
from dataclasses import dataclass
from itertools import permutations
from typing import Callable, Optional

from matka.models.game import CrossingPolicy, GameType
from matka.services.errors import InsufficientSystemState, InvalidResultShape, ValidationFailed
from matka.utils import money

_TWO_DIGITS = re.compile(r"^\d{2}$")
_ONE_DIGIT = re.compile(r"^\d$")

# Shape of the primary declared value, by game type.
RESULT_SHAPES = {
    GameType.jodi: _TWO_DIGITS,
    GameType.haruf: _ONE_DIGIT,
    GameType.crossing: _TWO_DIGITS,
}

# Shape of a per-type value; haruf may also be read from a two-digit number.
_TYPE_VALUE_SHAPES = {
    GameType.jodi: _TWO_DIGITS,
    GameType.haruf: re.compile(r"^\d{1,2}$"),
    GameType.crossing: _TWO_DIGITS,
}

_BET_NUMBER_SHAPES = {
    GameType.jodi: _TWO_DIGITS,
    GameType.haruf: _ONE_DIGIT,
    GameType.crossing: _TWO_DIGITS,
}


@dataclass(frozen=True)
class DeclaredResult:
    """The values bets of each type are matched against."""
    primary: str
    jodi: Optional[str]
    haruf: Optional[str]
    crossing: Optional[str]

    def value_for(self, bet_type: GameType) -> Optional[str]:
        return getattr(self, bet_type.value)


def build_declared_result(
    game_type: GameType,
    result_value: str,
    *,
    jodi_result: Optional[str] = None,
    haruf_result: Optional[str] = None,
    crossing_result: Optional[str] = None,
) -> DeclaredResult:
    """Validate the admin's input and derive the value used for every bet type.

    Per-type values fall back to the primary value when its shape fits.
    """
    value = (result_value or "").strip()
    if not RESULT_SHAPES[game_type].match(value):
        raise InvalidResultShape(
            f"Invalid {game_type.value} result '{value}'.",
            game_type=game_type.value,
        )

    overrides = {
        GameType.jodi: jodi_result,
        GameType.haruf: haruf_result,
        GameType.crossing: crossing_result,
    }
    resolved: dict[GameType, Optional[str]] = {}
    for bet_type, override in overrides.items():
        shape = _TYPE_VALUE_SHAPES[bet_type]
        if override is not None and override.strip():
            override = override.strip()
            if not shape.match(override):
                raise InvalidResultShape(
                    f"Invalid {bet_type.value} result '{override}'.",
                    game_type=bet_type.value,
                )
            resolved[bet_type] = override
        else:
            resolved[bet_type] = value if shape.match(value) else None

    return DeclaredResult(
        primary=value,
        jodi=resolved[GameType.jodi],
        haruf=resolved[GameType.haruf],
        crossing=resolved[GameType.crossing],
    )


def validate_bet_number(bet_type: GameType, number: str, position: Optional[str]) -> str:
    number = (number or "").strip()
    if not _BET_NUMBER_SHAPES[bet_type].match(number):
        raise ValidationFailed(f"Invalid {bet_type.value} number '{number}'.")
    if bet_type == GameType.haruf and position not in ("first", "last"):
        raise ValidationFailed("Haruf bets need a position (first or last).")
    return number


# ---------- Crossing strategies ----------

def _permutation_combos(value: str) -> set[str]:
    return {"".join(p) for p in permutations(value)}


def _pair_combos(value: str) -> set[str]:
    digits = list(value)
    return {a + b for a in digits for b in digits}


CROSSING_STRATEGIES: dict[CrossingPolicy, Callable[[str], set[str]]] = {
    CrossingPolicy.permutation: _permutation_combos,
    CrossingPolicy.pairs: _pair_combos,
    CrossingPolicy.exact: lambda value: {value},
}


def crossing_combinations(value: str, policy: CrossingPolicy) -> set[str]:
    return CROSSING_STRATEGIES[policy](value)


# ---------- Matchers ----------

def _match_jodi(bet: dict, value: str, policy: CrossingPolicy) -> bool:
    return bet["number"] == value


def _match_haruf(bet: dict, value: str, policy: CrossingPolicy) -> bool:
    if len(value) == 1:
        return bet["number"] == value
    digit = value[0] if bet.get("position") == "first" else value[-1]
    return bet["number"] == digit


def _match_crossing(bet: dict, value: str, policy: CrossingPolicy) -> bool:
    return bet["number"] in crossing_combinations(value, policy)


MATCHERS: dict[GameType, Callable[[dict, str, CrossingPolicy], bool]] = {
    GameType.jodi: _match_jodi,
    GameType.haruf: _match_haruf,
    GameType.crossing: _match_crossing,
}


def evaluate_bet(
    bet: dict, declared: DeclaredResult, game: dict, policy: CrossingPolicy,
) -> tuple[bool, float]:
    """Return (won, winning_amount) for one pending bet.

    Raises InsufficientSystemState for a stored bet no matcher can evaluate,
    and InvalidResultShape when no value was declared for the bet's type.
    """
    try:
        bet_type = GameType(bet.get("bet_type"))
        validate_bet_number(bet_type, bet.get("number"), bet.get("position"))
    except (ValueError, ValidationFailed):
        raise InsufficientSystemState(
            f"Bet {bet.get('_id')} cannot be evaluated (type={bet.get('bet_type')!r}, "
            f"number={bet.get('number')!r}).",
            bet_id=str(bet.get("_id")),
        )
    if not bet.get("amount") or bet["amount"] <= 0:
        raise InsufficientSystemState(
            f"Bet {bet['_id']} has no stake.", bet_id=str(bet["_id"]),
        )

    value = declared.value_for(bet_type)
    if value is None:
        raise InvalidResultShape(
            f"A {bet_type.value}_result is required: the game has pending {bet_type.value} bets.",
            game_type=bet_type.value,
        )

    if not MATCHERS[bet_type](bet, value, policy):
        return False, 0.0
    return True, money(bet["amount"] * payout_for(game, bet_type))


def payout_for(game: dict, bet_type: GameType) -> float:
    return float(game[f"{bet_type.value}_payout"])


def platform_commission(total_bet_amount: float, commission_pct: float) -> float:
    """Platform's cut of the day's turnover."""
    return money(total_bet_amount * commission_pct / 100)

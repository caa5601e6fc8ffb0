"""
backend/tests/test_matching.py

Purpose:
    Result shape validation, per-type matchers and crossing strategies.
"""

from __future__ import annotations

import pytest

from matka.models.game import CrossingPolicy, GameType
from matka.services.errors import InsufficientSystemState, InvalidResultShape, ValidationFailed
from matka.services.matching import (
    build_declared_result,
    crossing_combinations,
    evaluate_bet,
    platform_commission,
    validate_bet_number,
)

_GAME = {"jodi_payout": 95.0, "haruf_payout": 9.0, "crossing_payout": 95.0}


def _bet(bet_type: str, number: str, amount: float = 100.0, position: str | None = None) -> dict:
    return {"_id": "b1", "bet_type": bet_type, "number": number, "amount": amount, "position": position}


def test_jodi_result_fills_every_type():
    declared = build_declared_result(GameType.jodi, "56")
    assert declared.primary == "56"
    assert declared.jodi == "56"
    assert declared.haruf == "56"
    assert declared.crossing == "56"


@pytest.mark.parametrize("value", ["5", "567", "5a", "", "  "])
def test_jodi_rejects_wrong_shape(value):
    with pytest.raises(InvalidResultShape):
        build_declared_result(GameType.jodi, value)


def test_haruf_result_has_no_jodi_value():
    declared = build_declared_result(GameType.haruf, "7")
    assert declared.haruf == "7"
    assert declared.jodi is None
    assert declared.crossing is None


def test_override_must_match_its_type_shape():
    with pytest.raises(InvalidResultShape):
        build_declared_result(GameType.jodi, "56", crossing_result="5")
    declared = build_declared_result(GameType.jodi, "56", haruf_result="3")
    assert declared.haruf == "3"


def test_crossing_strategies():
    assert crossing_combinations("56", CrossingPolicy.permutation) == {"56", "65"}
    assert crossing_combinations("56", CrossingPolicy.pairs) == {"55", "56", "65", "66"}
    assert crossing_combinations("56", CrossingPolicy.exact) == {"56"}


def test_jodi_win_pays_amount_times_multiplier():
    declared = build_declared_result(GameType.jodi, "56")
    assert evaluate_bet(_bet("jodi", "56"), declared, _GAME, CrossingPolicy.permutation) == (True, 9500.0)
    assert evaluate_bet(_bet("jodi", "65"), declared, _GAME, CrossingPolicy.permutation) == (False, 0.0)


def test_haruf_matches_by_position_on_two_digit_result():
    declared = build_declared_result(GameType.jodi, "56")
    first = _bet("haruf", "5", 10.0, "first")
    last = _bet("haruf", "6", 10.0, "last")
    wrong_side = _bet("haruf", "5", 10.0, "last")
    assert evaluate_bet(first, declared, _GAME, CrossingPolicy.permutation) == (True, 90.0)
    assert evaluate_bet(last, declared, _GAME, CrossingPolicy.permutation) == (True, 90.0)
    assert evaluate_bet(wrong_side, declared, _GAME, CrossingPolicy.permutation)[0] is False


def test_crossing_policy_changes_outcome():
    declared = build_declared_result(GameType.crossing, "56")
    reversed_bet = _bet("crossing", "65")
    assert evaluate_bet(reversed_bet, declared, _GAME, CrossingPolicy.permutation)[0] is True
    assert evaluate_bet(reversed_bet, declared, _GAME, CrossingPolicy.exact)[0] is False
    doubled = _bet("crossing", "66")
    assert evaluate_bet(doubled, declared, _GAME, CrossingPolicy.pairs)[0] is True


def test_unevaluable_bet_is_system_state_error():
    declared = build_declared_result(GameType.jodi, "56")
    with pytest.raises(InsufficientSystemState):
        evaluate_bet(_bet("satta", "56"), declared, _GAME, CrossingPolicy.permutation)
    with pytest.raises(InsufficientSystemState):
        evaluate_bet(_bet("jodi", "5x"), declared, _GAME, CrossingPolicy.permutation)
    with pytest.raises(InsufficientSystemState):
        evaluate_bet(_bet("jodi", "56", amount=0), declared, _GAME, CrossingPolicy.permutation)


def test_missing_value_for_bet_type():
    declared = build_declared_result(GameType.haruf, "7")
    with pytest.raises(InvalidResultShape):
        evaluate_bet(_bet("jodi", "77"), declared, _GAME, CrossingPolicy.permutation)


def test_bet_number_validation():
    assert validate_bet_number(GameType.jodi, " 07 ", None) == "07"
    with pytest.raises(ValidationFailed):
        validate_bet_number(GameType.haruf, "5", None)
    with pytest.raises(ValidationFailed):
        validate_bet_number(GameType.crossing, "123", None)


def test_platform_commission():
    assert platform_commission(350.0, 5.0) == 17.5
    assert platform_commission(0.0, 5.0) == 0.0

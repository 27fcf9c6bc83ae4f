"""Edge and Kelly weight tests."""

from __future__ import annotations

import math

import pytest

from stakelab.betting.edge import calculate_edge, kelly_stake, kelly_weight
from stakelab.betting.errors import InvalidOddsError, OutOfRangeError


def test_edge_is_signed_difference() -> None:
    assert calculate_edge(55.0, 50.0) == pytest.approx(5.0)
    assert calculate_edge(40.0, 50.0) == pytest.approx(-10.0)
    assert calculate_edge(0.0, 100.0) == pytest.approx(-100.0)


@pytest.mark.parametrize(("estimated", "implied"), [(-1, 50), (101, 50), (50, -0.1), (50, 100.5), (math.nan, 50), (None, 50)])
def test_edge_rejects_out_of_range_inputs(estimated, implied) -> None:
    with pytest.raises(OutOfRangeError):
        calculate_edge(estimated, implied)


def test_kelly_weight_matches_formula() -> None:
    # p = 0.6, d = 2 -> (1.2 - 0.4) / 2 = 0.4
    assert kelly_weight(60.0, 2.0, 0.5) == pytest.approx(0.2)
    # p = 0.4, d = 3 -> (1.2 - 0.6) / 3 = 0.2
    assert kelly_weight(40.0, 3.0, 0.25) == pytest.approx(0.05)


def test_kelly_weight_zero_without_edge() -> None:
    assert kelly_weight(40.0, 2.0, 0.25) == 0.0
    # implied 47.6%: slightly below it is still no bet
    assert kelly_weight(45.0, 2.1, 1.0) == 0.0


def test_kelly_stake_uses_net_odds() -> None:
    # b = 1, p = 0.6 -> full Kelly 0.2
    assert kelly_stake(60.0, 2.0, 0.5) == pytest.approx(0.1)
    # b = 2, p = 0.4 -> full Kelly (0.8 - 0.6) / 2 = 0.1
    assert kelly_stake(40.0, 3.0, 0.25) == pytest.approx(0.025)
    assert kelly_stake(45.0, 2.1, 1.0) == 0.0


@pytest.mark.parametrize("fraction", [0.0, -0.1, 1.5, math.nan])
def test_kelly_weight_rejects_bad_fraction(fraction: float) -> None:
    with pytest.raises(OutOfRangeError):
        kelly_weight(60.0, 2.0, fraction)


def test_kelly_weight_rejects_bad_odds() -> None:
    with pytest.raises(InvalidOddsError):
        kelly_weight(60.0, 1.0, 0.25)

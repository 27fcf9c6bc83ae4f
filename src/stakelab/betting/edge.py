"""Edge and fractional Kelly weight calculations."""

from __future__ import annotations

import math

from stakelab.betting.errors import OutOfRangeError
from stakelab.betting.odds import check_decimal_odds


def check_percent(value: float | None, label: str) -> float:
    if value is None or not math.isfinite(value) or not 0.0 <= value <= 100.0:
        raise OutOfRangeError(f"{label} must be within [0, 100], got {value}")
    return value


def check_kelly_fraction(fraction: float) -> float:
    if not math.isfinite(fraction) or not 0.0 < fraction <= 1.0:
        raise OutOfRangeError(f"Kelly fraction must be within (0, 1], got {fraction}")
    return fraction


def calculate_edge(estimated_probability: float, implied: float) -> float:
    """Signed edge in percentage points. Never clamped."""

    estimated = check_percent(estimated_probability, "Estimated probability")
    implied = check_percent(implied, "Implied probability")
    return estimated - implied


def kelly_weight(estimated_probability: float, decimal_odds: float, fraction: float) -> float:
    """Raw fractional Kelly weight used to rank options before normalization.

    ``fraction * (p*d - (1 - p)) / d`` with ``d`` the decimal odds. Options
    without a positive edge (``p*d <= 1``) weigh 0.
    """

    check_kelly_fraction(fraction)
    p = check_percent(estimated_probability, "Estimated probability") / 100.0
    check_decimal_odds(decimal_odds)
    if p * decimal_odds <= 1.0:
        return 0.0
    return max(fraction * (p * decimal_odds - (1.0 - p)) / decimal_odds, 0.0)


def kelly_stake(estimated_probability: float, decimal_odds: float, fraction: float) -> float:
    """Fraction of bankroll for one standalone bet.

    Classic Kelly on net odds: ``fraction * (p*b - (1 - p)) / b`` with
    ``b = decimal - 1``, clamped to >= 0.
    """

    check_kelly_fraction(fraction)
    p = check_percent(estimated_probability, "Estimated probability") / 100.0
    check_decimal_odds(decimal_odds)
    b = decimal_odds - 1.0
    return max(fraction * (p * b - (1.0 - p)) / b, 0.0)

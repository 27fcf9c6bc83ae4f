"""Conversions between odds formats and implied probability.

Decimal odds are the canonical representation. American, fractional and
percent inputs are converted once, when a request is ingested.
"""

from __future__ import annotations

import math
import re

from stakelab.betting.errors import InvalidOddsError, OutOfRangeError
from stakelab.betting.types import ODDS_FLOOR

_AMERICAN_RE = re.compile(r"^[+-]\d+(\.\d+)?$")
_FRACTIONAL_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*/\s*(\d+(?:\.\d+)?)$")
_PERCENT_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*%$")
_DECIMAL_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*x?$", re.IGNORECASE)


def check_decimal_odds(decimal: float) -> float:
    if not math.isfinite(decimal) or decimal <= ODDS_FLOOR:
        raise InvalidOddsError(f"Decimal odds must be finite and greater than 1.0, got {decimal}")
    return decimal


def decimal_from_american(american: float) -> float:
    """Convert American odds to decimal. +150 -> 2.5, -200 -> 1.5."""

    if not math.isfinite(american) or -100 < american < 100:
        raise InvalidOddsError(f"American odds must be >= +100 or <= -100, got {american}")
    if american >= 100:
        return american / 100 + 1
    return 100 / abs(american) + 1


def american_from_decimal(decimal: float) -> float:
    """Convert decimal odds to American. 2.5 -> +150, 1.5 -> -200."""

    check_decimal_odds(decimal)
    if decimal >= 2.0:
        return (decimal - 1) * 100
    return -100 / (decimal - 1)


def decimal_from_fractional(numerator: float, denominator: float) -> float:
    """Convert fractional odds to decimal. 5/2 -> 3.5."""

    if not (math.isfinite(numerator) and math.isfinite(denominator)):
        raise InvalidOddsError(f"Fractional odds must be finite, got {numerator}/{denominator}")
    if numerator <= 0 or denominator <= 0:
        raise InvalidOddsError(f"Fractional odds must be positive, got {numerator}/{denominator}")
    return 1 + numerator / denominator


def implied_probability(decimal: float) -> float:
    """Implied probability (percent) for decimal odds, assuming no bookmaker margin."""

    return 100.0 / check_decimal_odds(decimal)


def decimal_from_probability(percent: float) -> float:
    if not math.isfinite(percent) or percent <= 0 or percent >= 100:
        raise OutOfRangeError(f"Probability must be strictly between 0 and 100, got {percent}")
    return 100.0 / percent


def parse_odds(text: str) -> float:
    """Parse an odds string into decimal odds.

    Accepted forms: ``+150`` / ``-200`` (American, sign required), ``5/2``
    (fractional), ``45%`` (probability) and ``2.5`` or ``2.5x`` (decimal).
    """

    value = text.strip().replace(",", "")
    if not value:
        raise InvalidOddsError("Odds value is empty")
    if _AMERICAN_RE.match(value):
        return decimal_from_american(float(value))
    match = _FRACTIONAL_RE.match(value)
    if match:
        return decimal_from_fractional(float(match.group(1)), float(match.group(2)))
    match = _PERCENT_RE.match(value)
    if match:
        try:
            return decimal_from_probability(float(match.group(1)))
        except OutOfRangeError as exc:
            raise InvalidOddsError(str(exc)) from exc
    match = _DECIMAL_RE.match(value)
    if match:
        return check_decimal_odds(float(match.group(1)))
    raise InvalidOddsError(f"Unrecognised odds format: {text!r}")

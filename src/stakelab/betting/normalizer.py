"""Stake normalization: turn edge-weighted Kelly stakes into a full bankroll split."""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence

from stakelab.betting.edge import calculate_edge, check_kelly_fraction, kelly_weight
from stakelab.betting.errors import DuplicateOptionError, EmptyOptionSetError, OutOfRangeError
from stakelab.betting.odds import implied_probability
from stakelab.betting.types import (
    STAKE_TOTAL,
    Allocation,
    FallbackPolicy,
    Option,
    StakeLine,
    StakeWeight,
)

logger = logging.getLogger(__name__)


def _check_unique(names: Sequence[str]) -> None:
    seen: set[str] = set()
    for name in names:
        if name in seen:
            raise DuplicateOptionError(f"Option names must be unique within a request: {name!r}")
        seen.add(name)


def _fallback_stakes(weights: Sequence[StakeWeight], policy: FallbackPolicy) -> list[float]:
    if policy is FallbackPolicy.BEST_AVAILABLE:
        best_edge = max(w.edge for w in weights)
        best = [w.edge == best_edge for w in weights]
        share = STAKE_TOTAL / sum(best)
        return [share if is_best else 0.0 for is_best in best]
    share = STAKE_TOTAL / len(weights)
    return [share] * len(weights)


def _settle_residual(stakes: list[float]) -> list[float]:
    """Push floating-point drift onto the single largest stake."""

    residual = STAKE_TOTAL - math.fsum(stakes)
    if residual:
        largest = max(range(len(stakes)), key=stakes.__getitem__)
        stakes[largest] = max(stakes[largest] + residual, 0.0)
    return stakes


def normalize_weights(
    weights: Sequence[StakeWeight],
    fallback: FallbackPolicy = FallbackPolicy.EQUAL_SPLIT,
) -> Allocation:
    """Normalize raw weights so the stakes sum to 100.

    Only options with a positive edge and a positive weight share the bankroll.
    When there are none, ``fallback`` decides the split and the allocation is
    flagged ``non_positive_edge``. A single option always gets 100.
    """

    if not weights:
        raise EmptyOptionSetError("Cannot allocate a bankroll across zero options")
    _check_unique([w.name for w in weights])
    for w in weights:
        if not math.isfinite(w.weight) or w.weight < 0:
            raise OutOfRangeError(f"Weight for {w.name!r} must be a finite value >= 0, got {w.weight}")
        if not math.isfinite(w.edge):
            raise OutOfRangeError(f"Edge for {w.name!r} must be finite, got {w.edge}")

    positive = [w.weight if w.edge > 0 and w.weight > 0 else 0.0 for w in weights]
    total_weight = math.fsum(positive)
    non_positive_edge = total_weight <= 0

    if len(weights) == 1:
        stakes = [STAKE_TOTAL]
    elif non_positive_edge:
        stakes = _fallback_stakes(weights, fallback)
    else:
        stakes = [STAKE_TOTAL * weight / total_weight for weight in positive]
    stakes = _settle_residual(stakes)

    if non_positive_edge:
        logger.info("No positive edge across %d option(s); applying %s", len(weights), fallback.value)

    return Allocation(
        lines=tuple(StakeLine(name=w.name, edge=w.edge, stake=stake) for w, stake in zip(weights, stakes)),
        non_positive_edge=non_positive_edge,
        fallback=fallback if non_positive_edge else None,
    )


def stake_weights(options: Sequence[Option], kelly_fraction: float) -> list[StakeWeight]:
    """Edge and raw fractional Kelly weight for every option."""

    check_kelly_fraction(kelly_fraction)
    weights: list[StakeWeight] = []
    for option in options:
        if option.estimated_probability is None:
            raise OutOfRangeError(f"Option {option.name!r} has no estimated probability")
        implied = implied_probability(option.decimal_odds)
        edge = calculate_edge(option.estimated_probability, implied)
        weight = kelly_weight(option.estimated_probability, option.decimal_odds, kelly_fraction) if edge > 0 else 0.0
        weights.append(StakeWeight(name=option.name, edge=edge, weight=weight))
    return weights


def normalize_stakes(
    options: Sequence[Option],
    kelly_fraction: float,
    fallback: FallbackPolicy = FallbackPolicy.EQUAL_SPLIT,
) -> Allocation:
    """Compute edges and Kelly weights for ``options`` and normalize them."""

    if not options:
        raise EmptyOptionSetError("Cannot allocate a bankroll across zero options")
    return normalize_weights(stake_weights(options, kelly_fraction), fallback)

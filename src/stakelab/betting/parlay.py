"""Parlay combination logic.

Legs are treated as statistically independent events, so combined odds and
probabilities are plain products. This is an approximation: correlated legs
(same game, same player) make the true hit rate differ from the product.
"""

from __future__ import annotations

from collections.abc import Sequence

from stakelab.betting.edge import calculate_edge, check_percent, kelly_stake
from stakelab.betting.errors import InvalidParlayError
from stakelab.betting.odds import implied_probability
from stakelab.betting.types import ParlayBundle, ParlayLeg

MIN_LEGS = 2


def combine_odds(legs: Sequence[ParlayLeg]) -> float:
    decimal = 1.0
    for leg in legs:
        decimal *= leg.decimal_odds
    return decimal


def combined_probability(legs: Sequence[ParlayLeg]) -> float:
    """Hit probability (percent) implied by the leg odds."""

    prob = 1.0
    for leg in legs:
        prob *= implied_probability(leg.decimal_odds) / 100.0
    return prob * 100.0


def estimated_parlay_probability(legs: Sequence[ParlayLeg]) -> float | None:
    """Product of the legs' estimated probabilities, or None if any is missing."""

    if any(leg.estimated_probability is None for leg in legs):
        return None
    prob = 1.0
    for leg in legs:
        prob *= check_percent(leg.estimated_probability, f"Estimated probability of {leg.name}") / 100.0
    return prob * 100.0


def combine_parlay(legs: Sequence[ParlayLeg], kelly_fraction: float = 0.25) -> ParlayBundle:
    """Combine an ordered sequence of legs into a single bundle.

    The recommended stake is the fractional Kelly percent of bankroll for the
    combined bet; it stays 0 when leg estimates are missing or the combined
    edge is not positive.
    """

    if len(legs) < MIN_LEGS:
        raise InvalidParlayError(f"A parlay needs at least {MIN_LEGS} legs, got {len(legs)}")

    implied = combined_probability(legs)
    odds = combine_odds(legs)
    estimated = estimated_parlay_probability(legs)

    edge: float | None = None
    stake = 0.0
    if estimated is not None:
        edge = calculate_edge(estimated, implied)
        if edge > 0:
            stake = min(kelly_stake(estimated, odds, kelly_fraction) * 100.0, 100.0)

    return ParlayBundle(
        legs=tuple(legs),
        combined_odds=odds,
        combined_probability=implied,
        potential_payout=odds,
        recommended_stake=stake,
        estimated_probability=estimated,
        edge=edge,
    )

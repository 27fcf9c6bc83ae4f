"""Dataclasses for options, parlays and allocations."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

ODDS_FLOOR = 1.0
STAKE_TOTAL = 100.0
SUM_TOLERANCE = 1e-9


class FallbackPolicy(str, Enum):
    """How to split the bankroll when no option has a positive edge."""

    EQUAL_SPLIT = "equal_split"
    BEST_AVAILABLE = "best_available"


@dataclass(frozen=True)
class Option:
    name: str
    decimal_odds: float
    estimated_probability: float | None = None

    @property
    def implied_probability(self) -> float:
        return 100.0 / self.decimal_odds


@dataclass(frozen=True)
class ParlayLeg:
    name: str
    decimal_odds: float
    estimated_probability: float | None = None

    @property
    def implied_probability(self) -> float:
        return 100.0 / self.decimal_odds


@dataclass(frozen=True)
class ParlayBundle:
    legs: tuple[ParlayLeg, ...]
    combined_odds: float
    combined_probability: float
    potential_payout: float
    recommended_stake: float = 0.0
    estimated_probability: float | None = None
    edge: float | None = None

    def payout_for(self, stake: float, bankroll: float) -> float:
        """Dollar payout if every leg wins, for a stake percent of bankroll."""

        return self.potential_payout * (stake / 100.0) * bankroll

    def recommended_amount(self, bankroll: float) -> float:
        return self.recommended_stake / 100.0 * bankroll


@dataclass(frozen=True)
class StakeWeight:
    """Input to normalization: an option's edge and its raw Kelly weight."""

    name: str
    edge: float
    weight: float


@dataclass(frozen=True)
class StakeLine:
    name: str
    edge: float
    stake: float

    def amount(self, bankroll: float) -> float:
        return self.stake / 100.0 * bankroll


@dataclass(frozen=True)
class Allocation:
    """Immutable snapshot of a bankroll split across options."""

    lines: tuple[StakeLine, ...]
    non_positive_edge: bool = False
    fallback: FallbackPolicy | None = None

    @property
    def total(self) -> float:
        return math.fsum(line.stake for line in self.lines)

    @property
    def names(self) -> list[str]:
        return [line.name for line in self.lines]

    def stake_of(self, name: str) -> float:
        for line in self.lines:
            if line.name == name:
                return line.stake
        raise KeyError(name)

    def amounts(self, bankroll: float) -> dict[str, float]:
        return {line.name: line.amount(bankroll) for line in self.lines}

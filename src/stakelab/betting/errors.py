"""Error taxonomy for the allocation engine."""

from __future__ import annotations


class AllocationError(ValueError):
    """Base class for rejected inputs to the allocation engine."""


class InvalidOddsError(AllocationError):
    """Odds value outside the valid domain (decimal <= 1.0, American in (-100, 100))."""


class InvalidParlayError(AllocationError):
    """Parlay with too few legs."""


class OutOfRangeError(AllocationError):
    """Probability, stake or multiplier outside the range a component requires."""


class EmptyOptionSetError(AllocationError):
    """Normalization attempted over zero options."""


class DuplicateOptionError(AllocationError):
    """Two options in one request share a name."""


class UnknownOptionError(AllocationError, KeyError):
    """Rebalance target is not part of the allocation."""

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return str(self.args[0]) if self.args else ""

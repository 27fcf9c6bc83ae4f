"""Interactive rebalancing of an existing allocation after a manual override."""

from __future__ import annotations

import math
from dataclasses import replace

from stakelab.betting.errors import DuplicateOptionError, OutOfRangeError, UnknownOptionError
from stakelab.betting.types import STAKE_TOTAL, SUM_TOLERANCE, Allocation

MAX_PASSES = 50


def _absorb_excess(others: dict[str, float], excess: float) -> float:
    """Take ``excess`` out of ``others`` in place, proportionally to each stake.

    Returns the part of the excess that could not be absorbed.
    """

    for _ in range(MAX_PASSES):
        active = {name: stake for name, stake in others.items() if stake > 0}
        if excess <= SUM_TOLERANCE or not active:
            break
        active_total = math.fsum(active.values())
        absorbed = 0.0
        for name, stake in active.items():
            cut = min(stake / active_total * excess, stake)
            others[name] = stake - cut
            absorbed += cut
        excess -= absorbed
    return max(excess, 0.0)


def rebalance(allocation: Allocation, target: str, new_stake: float) -> Allocation:
    """Set ``target`` to ``new_stake`` and shrink the others if the total passes 100.

    A total under 100 is left alone; the gap is uncommitted bankroll.
    """

    if not math.isfinite(new_stake) or not 0.0 <= new_stake <= STAKE_TOTAL:
        raise OutOfRangeError(f"Stake must be within [0, 100], got {new_stake}")
    if len(set(allocation.names)) != len(allocation.lines):
        raise DuplicateOptionError("Option names must be unique within an allocation")
    if target not in allocation.names:
        raise UnknownOptionError(f"Unknown option {target!r}")

    others = {line.name: line.stake for line in allocation.lines if line.name != target}
    total = new_stake + math.fsum(others.values())

    if total > STAKE_TOTAL:
        remaining = _absorb_excess(others, total - STAKE_TOTAL)
        if remaining > 0:
            new_stake = max(STAKE_TOTAL - math.fsum(others.values()), 0.0)
        overshoot = new_stake + math.fsum(others.values()) - STAKE_TOTAL
        if overshoot > 0:
            # float drift from the proportional cuts
            largest = max(others, key=others.__getitem__, default=None)
            if largest is not None and others[largest] >= overshoot:
                others[largest] -= overshoot
            else:
                new_stake -= overshoot

    stakes = {**others, target: new_stake}
    return replace(
        allocation,
        lines=tuple(replace(line, stake=stakes[line.name]) for line in allocation.lines),
    )

"""Price intervals and the relation between an agent's and a factory's range."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from .errors import InvariantViolation


class IntervalRelation(str, Enum):
    OVERLAPPING = "Overlapping"
    AGENT_BELOW_FACTORY = "AgentBelowFactory"
    AGENT_ABOVE_FACTORY = "AgentAboveFactory"


class TradeResult(str, Enum):
    SUCCESS = "Success"
    FAILED = "Failed"
    NOT_MATCHED = "NotMatched"
    NOT_YET = "NotYet"


@dataclass(frozen=True)
class PriceRange:
    """Closed price interval [lower, upper] with 0 <= lower <= upper."""

    lower: float
    upper: float

    def __post_init__(self) -> None:
        if not (math.isfinite(self.lower) and math.isfinite(self.upper)):
            raise InvariantViolation(f"Non-finite price range [{self.lower}, {self.upper}]")
        if self.lower < 0:
            raise InvariantViolation(f"Negative lower bound in range [{self.lower}, {self.upper}]")
        if self.lower > self.upper:
            raise InvariantViolation(f"Inverted price range [{self.lower}, {self.upper}]")

    @classmethod
    def normalized(cls, lower: float, upper: float) -> PriceRange:
        """Clamp raw bounds into a valid range instead of failing.

        Bounds are floored at zero and an inverted pair collapses onto its lower bound.
        """
        if not (math.isfinite(lower) and math.isfinite(upper)):
            raise InvariantViolation(f"Non-finite price range [{lower}, {upper}]")
        lower = max(0.0, lower)
        upper = max(lower, upper)
        return cls(lower, upper)

    @property
    def width(self) -> float:
        return self.upper - self.lower

    @property
    def center(self) -> float:
        return (self.lower + self.upper) / 2.0

    def as_tuple(self) -> tuple[float, float]:
        return (self.lower, self.upper)

    def clamp(self, price: float) -> float:
        return min(max(price, self.lower), self.upper)

    def shifted_by_ratio(self, ratio: float, floor: float = 0.0) -> PriceRange:
        """Scale both bounds by (1 + ratio); a lower bound under `floor` is lifted,
        keeping the width."""
        lower = self.lower * (1.0 + ratio)
        upper = self.upper * (1.0 + ratio)
        if lower < floor:
            width = upper - lower
            lower, upper = floor, floor + width
        return PriceRange.normalized(lower, upper)


def overlap(first: PriceRange, second: PriceRange) -> PriceRange | None:
    lower = max(first.lower, second.lower)
    upper = min(first.upper, second.upper)
    if lower <= upper:
        return PriceRange(lower, upper)
    return None


def interval_relation(agent_range: PriceRange, factory_range: PriceRange) -> IntervalRelation:
    """Classify how an agent's range sits relative to a factory's range.

    Pure in its two arguments; callers evaluate it afresh every round.
    """
    if max(agent_range.lower, factory_range.lower) <= min(agent_range.upper, factory_range.upper):
        return IntervalRelation.OVERLAPPING
    if agent_range.upper < factory_range.lower:
        return IntervalRelation.AGENT_BELOW_FACTORY
    return IntervalRelation.AGENT_ABOVE_FACTORY


@dataclass(frozen=True)
class RangeChange:
    """Deltas between two ranges, as written to the adjustment/optimization logs.

    Ratios are percentages of the old bound: a bound that moves down yields a
    negative ratio, whichever side it is on.
    """

    lower_change: float
    upper_change: float
    total_change: float
    min_change_ratio: float
    max_change_ratio: float

    @classmethod
    def between(cls, old: PriceRange, new: PriceRange) -> RangeChange:
        lower_change = new.lower - old.lower
        upper_change = new.upper - old.upper
        return cls(
            lower_change=lower_change,
            upper_change=upper_change,
            total_change=(new.lower + new.upper) - (old.lower + old.upper),
            min_change_ratio=_percent(lower_change, old.lower),
            max_change_ratio=_percent(upper_change, old.upper),
        )


def _percent(change: float, base: float) -> float:
    if base <= 0:
        return 0.0
    return change / base * 100.0


class RangeHolder(Protocol):
    def current_range(self, product_id: int) -> PriceRange: ...


def current_range(entity: RangeHolder, product_id: int) -> tuple[float, float]:
    """Current acceptable interval of an Agent or Factory for one product."""
    return entity.current_range(product_id).as_tuple()

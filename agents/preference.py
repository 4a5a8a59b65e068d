"""Per-product preference of a demand-side agent (the agent half of the Range Model)."""

from __future__ import annotations

from market.errors import InvariantViolation
from market.ranges import PriceRange

from .protocols import PreferenceSnapshot


class Preference:
    """Original preference (fixed at creation) plus the mutable current range.

    `original_price` and `original_elasticity` are read-only; only Range
    Negotiation moves `current_price` and `current_range`.
    """

    __slots__ = ("_original_price", "_original_elasticity", "current_price", "_current_range")

    def __init__(
        self,
        original_price: float,
        original_elasticity: float,
        current_range: PriceRange,
        current_price: float | None = None,
    ) -> None:
        if original_price <= 0:
            raise InvariantViolation(f"original_price must be positive, got {original_price}")
        if not 0 < original_elasticity <= 1:
            raise InvariantViolation(
                f"original_elasticity must be in (0, 1], got {original_elasticity}"
            )
        self._original_price = float(original_price)
        self._original_elasticity = float(original_elasticity)
        self.current_price = float(original_price if current_price is None else current_price)
        self._current_range = current_range

    @property
    def original_price(self) -> float:
        return self._original_price

    @property
    def original_elasticity(self) -> float:
        return self._original_elasticity

    @property
    def current_range(self) -> PriceRange:
        return self._current_range

    def set_range(self, lower: float, upper: float) -> PriceRange:
        """Apply a new range, clamped so that 0 <= lower <= upper."""
        self._current_range = PriceRange.normalized(lower, upper)
        return self._current_range

    def snapshot(self) -> PreferenceSnapshot:
        return {
            "original_price": self._original_price,
            "original_elasticity": self._original_elasticity,
            "current_price": self.current_price,
            "current_range_lower": self._current_range.lower,
            "current_range_upper": self._current_range.upper,
        }

    def __repr__(self) -> str:
        return (
            f"Preference(original_price={self._original_price:.2f}, "
            f"elasticity={self._original_elasticity:.2f}, current_price={self.current_price:.2f}, "
            f"range=[{self._current_range.lower:.2f}, {self._current_range.upper:.2f}])"
        )

"""Record shapes shared across the market engine."""

from typing_extensions import TypedDict


class PreferenceSnapshot(TypedDict):
    """Last known preference state, as recorded on removal."""
    original_price: float
    original_elasticity: float
    current_price: float
    current_range_lower: float
    current_range_upper: float

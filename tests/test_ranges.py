import math

import pytest

from agents.preference import Preference
from market.errors import InvariantViolation
from market.ranges import (
    IntervalRelation,
    PriceRange,
    RangeChange,
    current_range,
    interval_relation,
    overlap,
)


def test_price_range_rejects_inverted_negative_and_non_finite_bounds() -> None:
    with pytest.raises(InvariantViolation):
        PriceRange(10.0, 5.0)
    with pytest.raises(InvariantViolation):
        PriceRange(-1.0, 5.0)
    with pytest.raises(InvariantViolation):
        PriceRange(1.0, math.inf)


def test_normalized_clamps_instead_of_failing() -> None:
    r = PriceRange.normalized(-3.0, 4.0)
    assert r.as_tuple() == (0.0, 4.0)

    collapsed = PriceRange.normalized(7.0, 2.0)
    assert collapsed.as_tuple() == (7.0, 7.0)
    assert collapsed.width == 0.0


def test_interval_relation_classifies_all_three_cases() -> None:
    factory = PriceRange(100.0, 200.0)
    below = interval_relation(PriceRange(50.0, 90.0), factory)
    assert below is IntervalRelation.AGENT_BELOW_FACTORY
    above = interval_relation(PriceRange(210.0, 250.0), factory)
    assert above is IntervalRelation.AGENT_ABOVE_FACTORY
    assert interval_relation(PriceRange(150.0, 250.0), factory) is IntervalRelation.OVERLAPPING
    # touching bounds overlap in a single point
    assert interval_relation(PriceRange(50.0, 100.0), factory) is IntervalRelation.OVERLAPPING


def test_interval_relation_is_deterministic_for_given_ranges() -> None:
    a = PriceRange(120.0, 180.0)
    f = PriceRange(150.0, 300.0)
    results = {interval_relation(a, f) for _ in range(10)}
    assert results == {IntervalRelation.OVERLAPPING}


def test_overlap_returns_common_interval_or_none() -> None:
    assert overlap(PriceRange(120.0, 180.0), PriceRange(150.0, 300.0)) == PriceRange(150.0, 180.0)
    assert overlap(PriceRange(50.0, 90.0), PriceRange(100.0, 200.0)) is None


def test_clamp_bid_into_overlap() -> None:
    common = PriceRange(150.0, 180.0)
    assert common.clamp(200.0) == 180.0
    assert common.clamp(120.0) == 150.0
    assert common.clamp(160.0) == 160.0


def test_range_change_ratio_sign_convention() -> None:
    old = PriceRange(100.0, 200.0)
    widened = PriceRange(90.0, 220.0)
    change = RangeChange.between(old, widened)
    # a widening lower bound is negative, a widening upper bound positive
    assert change.min_change_ratio == pytest.approx(-10.0)
    assert change.max_change_ratio == pytest.approx(10.0)

    narrowed = PriceRange(110.0, 180.0)
    change = RangeChange.between(old, narrowed)
    assert change.min_change_ratio == pytest.approx(10.0)
    assert change.max_change_ratio == pytest.approx(-10.0)
    assert change.total_change == pytest.approx(-10.0)


def test_range_change_ratio_is_zero_for_zero_base() -> None:
    change = RangeChange.between(PriceRange(0.0, 10.0), PriceRange(5.0, 10.0))
    assert change.lower_change == pytest.approx(5.0)
    assert change.min_change_ratio == 0.0


def test_shifted_by_ratio_keeps_width_when_floor_lifts_lower_bound() -> None:
    shifted = PriceRange(10.0, 20.0).shifted_by_ratio(-0.5, floor=8.0)
    assert shifted.lower == pytest.approx(8.0)
    assert shifted.width == pytest.approx(5.0)


def test_current_range_reads_agent_and_factory_ranges(make_agent_factory_pair) -> None:
    agent, factory = make_agent_factory_pair
    assert current_range(agent, 1) == (120.0, 180.0)
    assert current_range(factory, 1) == (150.0, 300.0)


def test_preference_original_values_are_read_only() -> None:
    pref = Preference(150.0, 0.5, PriceRange(120.0, 180.0))
    with pytest.raises(AttributeError):
        pref.original_price = 10.0  # type: ignore[misc]
    with pytest.raises(InvariantViolation):
        Preference(150.0, 1.5, PriceRange(120.0, 180.0))
    assert pref.current_price == 150.0


@pytest.fixture
def make_agent_factory_pair():
    from builders import add_agent, add_factory, make_context

    ctx = make_context()
    agent = add_agent(ctx, 1, 120.0, 180.0)
    factory = add_factory(ctx, 1, 150.0, 300.0, stock=1)
    return agent, factory

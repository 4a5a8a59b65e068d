from dataclasses import replace

import pytest

from agents.preference import Preference
from builders import add_agent, add_factory, make_context, open_round
from config import NegotiationConfig
from market.errors import InvariantViolation
from market.matching import MatchingEngine
from market.negotiation import FAILURE_ADJUSTMENT, SUCCESS_ADJUSTMENT, RangeNegotiator
from market.ranges import PriceRange, TradeResult


def test_success_converges_range_around_settled_price() -> None:
    negotiator = RangeNegotiator(NegotiationConfig(shrink_factor=0.5))
    pref = Preference(150.0, 0.5, PriceRange(120.0, 180.0))

    new = negotiator.on_success(pref, 150.5)

    assert new.lower == pytest.approx(135.5)
    assert new.upper == pytest.approx(165.5)
    assert new.center == pytest.approx(150.5)
    assert pref.current_price == pytest.approx(150.5)
    assert pref.original_price == pytest.approx(150.0)


def test_inelastic_agents_shrink_faster() -> None:
    negotiator = RangeNegotiator(NegotiationConfig(shrink_factor=0.8))
    assert negotiator.effective_shrink(0.5) == pytest.approx(0.8)
    assert negotiator.effective_shrink(0.25) < negotiator.effective_shrink(0.5)
    assert negotiator.effective_shrink(1.0) > negotiator.effective_shrink(0.5)


def test_success_width_never_drops_below_minimum() -> None:
    negotiator = RangeNegotiator(NegotiationConfig(shrink_factor=0.1))
    pref = Preference(100.0, 0.5, PriceRange(99.0, 101.0))

    new = negotiator.on_success(pref, 100.0)

    assert new.width == pytest.approx(5.0)  # 5% of the price


def test_success_range_is_clamped_non_negative() -> None:
    negotiator = RangeNegotiator(NegotiationConfig(shrink_factor=0.9))
    pref = Preference(1.0, 0.5, PriceRange(0.0, 10.0))

    new = negotiator.on_success(pref, 1.0)

    assert new.lower == 0.0
    assert new.lower <= new.upper


def test_failure_widens_and_moves_toward_factory_range() -> None:
    negotiator = RangeNegotiator(NegotiationConfig(expand_step=0.1))
    pref = Preference(150.0, 0.5, PriceRange(100.0, 200.0))

    new = negotiator.on_failure(pref, PriceRange(300.0, 400.0), "stock_exhausted", 1000.0)

    # step = 0.1 * 100 * (0.5 / 0.5) = 10; widen by 10 then shift up by 10
    assert new.lower == pytest.approx(100.0)
    assert new.upper == pytest.approx(220.0)


def test_failure_step_is_capped() -> None:
    negotiator = RangeNegotiator(NegotiationConfig(expand_step=2.0, max_step_ratio=0.25))
    pref = Preference(150.0, 1.0, PriceRange(100.0, 200.0))

    assert negotiator.failure_step(pref) == pytest.approx(25.0)


def test_insufficient_cash_failure_moves_toward_affordable_prices() -> None:
    negotiator = RangeNegotiator(NegotiationConfig(expand_step=0.1))
    pref = Preference(150.0, 0.5, PriceRange(100.0, 200.0))

    new = negotiator.on_failure(pref, PriceRange(140.0, 200.0), "insufficient_cash", 50.0)

    # target is the agent's cash (50), below the current center: shift down by one step
    assert new.lower == pytest.approx(80.0)
    assert new.upper == pytest.approx(200.0)


def test_adjust_emits_one_event_per_success_or_failure_only() -> None:
    ctx = make_context(negotiation={"shrink_factor": 0.5})
    add_agent(ctx, 1, 100.0, 200.0, price=160.0)
    add_agent(ctx, 2, 100.0, 200.0, price=170.0)
    add_agent(ctx, 3, 10.0, 20.0)
    add_factory(ctx, 10, 100.0, 200.0, stock=1)
    open_round(ctx)
    engine = MatchingEngine(ctx.config.matching)
    trades = engine.settle(ctx, engine.evaluate(ctx))

    applied = RangeNegotiator(ctx.config.negotiation).adjust(ctx, trades)

    assert applied == 2
    events = ctx.sink.of_kind("agent_range_adjustment_logs")
    assert [(e.agent_id, e.adjustment_type) for e in events] == [
        (2, "trade_success"),
        (1, "trade_failed"),
    ]
    winner, loser = events
    assert winner.price == pytest.approx(170.0)
    assert winner.center == pytest.approx(170.0)
    assert loser.price is None
    assert loser.new_range_upper > loser.old_range_upper
    assert loser.min_change_ratio < 0.0
    # the non-overlapping agent keeps its range
    assert ctx.agents[3].current_range(1).as_tuple() == (10.0, 20.0)
    assert ctx.sink.of_kind("factory_range_optimization_logs") == []


def test_per_trade_factory_adjustment_nudges_supply_range() -> None:
    ctx = make_context(negotiation={"factory_adjustment": "per_trade", "per_trade_shift": 0.1})
    add_agent(ctx, 1, 100.0, 200.0, price=150.0)
    add_agent(ctx, 2, 100.0, 200.0, price=150.0, cash=10.0)
    factory = add_factory(ctx, 10, 100.0, 200.0, stock=5)
    open_round(ctx)
    engine = MatchingEngine(ctx.config.matching)
    trades = engine.settle(ctx, engine.evaluate(ctx))
    assert [t.result for t in trades] == [TradeResult.SUCCESS, TradeResult.FAILED]

    RangeNegotiator(ctx.config.negotiation).adjust(ctx, trades)

    events = ctx.sink.of_kind("factory_range_optimization_logs")
    assert [e.trigger for e in events] == ["trade_success", "trade_failed"]
    assert events[0].new_range_lower == pytest.approx(110.0)
    assert events[1].new_range_lower == pytest.approx(99.0)
    assert factory.current_range(1).as_tuple() == pytest.approx((99.0, 198.0))


def test_adjustment_types_match_factory_trade_triggers() -> None:
    assert SUCCESS_ADJUSTMENT == "trade_success"
    assert FAILURE_ADJUSTMENT == "trade_failed"


def test_successful_trade_without_price_is_an_invariant_violation() -> None:
    ctx = make_context()
    add_agent(ctx, 1, 100.0, 200.0, price=150.0)
    add_factory(ctx, 10, 100.0, 200.0, stock=1)
    open_round(ctx)
    engine = MatchingEngine(ctx.config.matching)
    (trade,) = engine.settle(ctx, engine.evaluate(ctx))

    with pytest.raises(InvariantViolation) as exc:
        RangeNegotiator(ctx.config.negotiation).adjust(ctx, [replace(trade, price=None)])

    assert exc.value.entity == "agent:1"
    assert ctx.sink.of_kind("agent_range_adjustment_logs") == []

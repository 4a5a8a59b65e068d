from collections import Counter

import numpy as np
import pytest

from builders import add_agent, add_factory, make_config, make_context
from market.errors import InvariantViolation
from metrics.sink import MemorySink
from simulation.context import SimulationContext
from simulation.engine import RoundPhase, RoundScheduler, run_simulation
from simulation.population import seed_population


def _small_config(**overrides):
    data = {
        "rounds": 6,
        "seed": 7,
        "population": {"num_agents": 12, "factories_per_product": 2, "initial_agent_cash": 500.0},
        "production": {"initial_stock": 4},
        "matching": {"max_workers": 2},
    }
    data.update(overrides)
    return make_config(**data)


def test_phase_transitions_follow_the_round_cycle() -> None:
    ctx = make_context()
    scheduler = RoundScheduler(ctx)
    assert scheduler.phase is RoundPhase.INIT

    for phase in (
        RoundPhase.MATCH,
        RoundPhase.SETTLE,
        RoundPhase.ADJUST,
        RoundPhase.PRUNE,
        RoundPhase.SNAPSHOT,
        RoundPhase.MATCH,
    ):
        scheduler.transition(phase)
    assert scheduler.phase is RoundPhase.MATCH


def test_skipping_or_reordering_a_phase_is_an_invariant_violation() -> None:
    scheduler = RoundScheduler(make_context())
    scheduler.transition(RoundPhase.MATCH)
    with pytest.raises(InvariantViolation):
        scheduler.transition(RoundPhase.ADJUST)
    with pytest.raises(InvariantViolation):
        scheduler.transition(RoundPhase.TERMINATED)


def test_run_emits_dense_snapshots_per_round() -> None:
    result = run_simulation(_small_config(max_idle_rounds=None), MemorySink())
    sink = result.context.sink

    assert result.termination_reason == "rounds_completed"
    assert result.rounds_completed == 6

    removed_in: dict[int, int] = {}
    for removal in sink.of_kind("agent_demand_removal_logs"):
        removed_in.setdefault(removal.agent_id, removal.round)
    cash_logs = sink.of_kind("agent_cash_logs")
    per_round = Counter(log.round for log in cash_logs)
    for report in result.reports:
        expected = [
            agent_id
            for agent_id in result.context.agents
            if removed_in.get(agent_id, report.round_index + 1) > report.round_index
        ]
        assert per_round[report.round_index] == len(expected)

    lines = sum(len(f.lines) for f in result.context.factories.values())
    assert len(sink.of_kind("factory_end_of_round_logs")) == lines * 6
    assert len(sink.of_kind("factory_range_optimization_logs")) == lines * 6


def test_run_preserves_ledger_and_range_invariants() -> None:
    result = run_simulation(_small_config(max_idle_rounds=None), MemorySink())
    ctx = result.context
    sink = ctx.sink

    assert all(log.cash >= 0 for log in sink.of_kind("agent_cash_logs"))
    for log in sink.of_kind("factory_end_of_round_logs"):
        assert 0 <= log.remaining_stock <= log.initial_stock
        assert log.units_sold <= log.initial_stock
        assert log.supply_range_lower <= log.supply_range_upper
    for log in sink.of_kind("agent_range_adjustment_logs"):
        assert 0 <= log.new_range_lower <= log.new_range_upper
    for agent in ctx.agents.values():
        for preference in agent.preferences.values():
            assert preference.current_range.lower <= preference.current_range.upper


def test_removed_agents_stop_trading_and_get_no_cash_snapshot() -> None:
    result = run_simulation(
        _small_config(
            population={"num_agents": 12, "factories_per_product": 2, "initial_agent_cash": 5.0},
            removal={"cash_floor": 5.0},
        ),
        MemorySink(),
    )
    sink = result.context.sink
    assert result.termination_reason == "no_active_agents"
    removal_round: dict[int, int] = {}
    for log in sink.of_kind("agent_demand_removal_logs"):
        removal_round.setdefault(log.agent_id, log.round)
    assert set(removal_round) == set(result.context.agents)

    for agent_id, removed_in in removal_round.items():
        later_trades = [
            t for t in sink.of_kind("trade_logs") if t.agent_id == agent_id and t.round > removed_in
        ]
        assert later_trades == []
        snapshots = [
            c
            for c in sink.of_kind("agent_cash_logs")
            if c.agent_id == agent_id and c.round >= removed_in
        ]
        assert snapshots == []


def test_same_seed_reproduces_the_same_trades() -> None:
    def trades(workers: int):
        result = run_simulation(_small_config(matching={"max_workers": workers}), MemorySink())
        return [
            (t.round, t.trade_id, t.agent_id, t.factory_id, t.trade_result, t.price)
            for t in result.context.sink.of_kind("trade_logs")
        ]

    assert trades(1) == trades(4)


def test_no_overlap_market_goes_idle_and_terminates() -> None:
    ctx = make_context(
        rounds=50,
        max_idle_rounds=3,
        production={"enabled": False},
        factory_optimization={"optimization_step": 0.0},
    )
    agent = add_agent(ctx, 1, 50.0, 90.0)
    add_factory(ctx, 10, 100.0, 200.0, stock=5)

    result = RoundScheduler(ctx).run()

    assert result.termination_reason == "idle_market"
    assert result.rounds_completed == 3
    assert {t.trade_result for t in ctx.sink.of_kind("trade_logs")} == {"NotMatched"}
    assert {t.interval_relation for t in ctx.sink.of_kind("trade_logs")} == {"AgentBelowFactory"}
    assert agent.current_range(1).as_tuple() == (50.0, 90.0)
    assert ctx.sink.of_kind("agent_range_adjustment_logs") == []


def test_no_active_agents_terminates_the_run() -> None:
    ctx = make_context(rounds=50, production={"enabled": False})
    add_agent(ctx, 1, 100.0, 200.0, price=150.0, cash=150.0)
    add_factory(ctx, 10, 100.0, 200.0, stock=5)

    result = RoundScheduler(ctx).run()

    assert result.termination_reason == "no_active_agents"
    assert result.rounds_completed == 1
    assert result.summary()["removed_agents"] == 1


def test_cancel_is_observed_between_rounds() -> None:
    ctx = make_context(rounds=50, production={"enabled": False})
    add_agent(ctx, 1, 50.0, 90.0)
    add_factory(ctx, 10, 100.0, 200.0, stock=5)
    scheduler = RoundScheduler(ctx)

    scheduler.run_round()
    scheduler.cancel()
    result = scheduler.run()

    assert result.termination_reason == "cancelled"
    assert ctx.round_index == 1
    assert scheduler.phase is RoundPhase.TERMINATED


def test_production_restocks_sold_out_factory() -> None:
    ctx = make_context(rounds=3)
    add_agent(ctx, 1, 100.0, 200.0, price=150.0)
    add_agent(ctx, 2, 100.0, 200.0, price=150.0)
    add_factory(ctx, 10, 100.0, 200.0, stock=1, cash=1000.0, product_cost=10.0)
    scheduler = RoundScheduler(ctx)

    scheduler.run_round()
    scheduler.run_round()

    bills = [log for log in ctx.sink.of_kind("factory_end_of_round_logs")]
    assert bills[0].units_sold == 1
    assert bills[1].total_production >= 1
    assert bills[1].production_cost == pytest.approx(bills[1].total_production * 10.0)


def test_income_is_credited_when_enabled() -> None:
    ctx = make_context(
        income={"enabled": True, "range": [100.0, 100.0]}, production={"enabled": False}
    )
    add_agent(ctx, 1, 1.0, 2.0, cash=10.0)
    add_factory(ctx, 10, 100.0, 200.0, stock=1)

    RoundScheduler(ctx, np.random.default_rng(0)).run_round()

    (cash_log,) = ctx.sink.of_kind("agent_cash_logs")
    assert cash_log.cash == pytest.approx(110.0)


def test_seed_population_builds_agents_and_factories() -> None:
    config = _small_config()
    ctx = SimulationContext.create(config)
    seed_population(ctx, np.random.default_rng(config.seed))

    assert len(ctx.agents) == 12
    assert len(ctx.factories) == 2 * len(config.products)
    for factory in ctx.factories.values():
        for product_id, line in factory.lines.items():
            assert line.supply_range.lower >= line.product_cost
            assert ctx.ledger.remaining_stock(factory.unique_id, product_id) == 4
    for agent in ctx.agents.values():
        assert agent.name.startswith(config.AGENT_NAME_PREFIX)
        assert set(agent.preferences) == {p.id for p in config.products}


def test_factories_without_stock_end_the_run() -> None:
    ctx = make_context(rounds=5, production={"enabled": False})
    add_agent(ctx, 1, 100.0, 200.0)
    add_factory(ctx, 10, 100.0, 200.0, stock=0)

    result = RoundScheduler(ctx).run()

    assert result.termination_reason == "no_active_factories"
    assert result.rounds_completed == 0


def test_selling_out_without_production_ends_the_run_after_that_round() -> None:
    ctx = make_context(rounds=5, production={"enabled": False})
    add_agent(ctx, 1, 100.0, 200.0, price=150.0)
    add_agent(ctx, 2, 100.0, 200.0, price=150.0)
    add_factory(ctx, 10, 100.0, 200.0, stock=1)

    result = RoundScheduler(ctx).run()

    assert result.termination_reason == "no_active_factories"
    assert result.rounds_completed == 1


def test_factory_able_to_produce_stays_active() -> None:
    ctx = make_context()
    funded = add_factory(ctx, 10, 100.0, 200.0, stock=0, cash=100.0, product_cost=10.0)
    broke = add_factory(ctx, 11, 100.0, 200.0, stock=0, cash=0.0, product_cost=10.0)

    assert ctx.is_factory_active(funded) is True
    assert ctx.is_factory_active(broke) is False
    assert ctx.has_active_factories() is True


def test_per_trade_mode_moves_supply_range_once_per_trade() -> None:
    ctx = make_context(
        rounds=5,
        production={"enabled": False},
        negotiation={"factory_adjustment": "per_trade", "per_trade_shift": 0.1},
        factory_optimization={"optimization_step": 0.2},
    )
    add_agent(ctx, 1, 100.0, 200.0, price=150.0)
    factory = add_factory(ctx, 10, 100.0, 200.0, stock=1)

    RoundScheduler(ctx).run_round()

    # one success nudge of 10%, no extra round-end shift for the sold-out line
    assert factory.current_range(1).as_tuple() == pytest.approx((110.0, 220.0))
    triggers = [e.trigger for e in ctx.sink.of_kind("factory_range_optimization_logs")]
    assert triggers == ["trade_success", "scarcity"]

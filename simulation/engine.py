from __future__ import annotations

import os
import sys
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np

from agents.logging_utils import create_system_logger
from config import SimulationConfig
from logger import log
from market.errors import InvariantViolation
from market.lifecycle import LifecycleManager
from market.matching import MatchingEngine, Trade
from market.negotiation import RangeNegotiator
from market.ranges import TradeResult
from metrics.events import AgentCashLog, FactoryEndOfRoundLog
from metrics.sink import MemorySink, TelemetrySink

from .context import SimulationContext
from .population import seed_population


def _format_duration(seconds: float) -> str:
    if seconds < 0 or seconds != seconds:  # NaN guard
        return "?"
    seconds_int = int(seconds)
    mins, secs = divmod(seconds_int, 60)
    hours, mins = divmod(mins, 60)
    if hours:
        return f"{hours:d}h{mins:02d}m{secs:02d}s"
    if mins:
        return f"{mins:d}m{secs:02d}s"
    return f"{secs:d}s"


def _progress_bar(done: int, total: int, width: int = 30) -> str:
    if total <= 0:
        return "[" + ("?" * width) + "]"
    ratio = max(0.0, min(1.0, done / total))
    filled = int(round(ratio * width))
    return "[" + ("#" * filled) + ("-" * (width - filled)) + "]"


class RoundPhase(str, Enum):
    INIT = "Init"
    MATCH = "Match"
    SETTLE = "Settle"
    ADJUST = "Adjust"
    PRUNE = "Prune"
    SNAPSHOT = "Snapshot"
    TERMINATED = "Terminated"


# Init -> {Match -> Settle -> Adjust -> Prune -> Snapshot}* -> Terminated
PHASE_TRANSITIONS: dict[RoundPhase, frozenset[RoundPhase]] = {
    RoundPhase.INIT: frozenset({RoundPhase.MATCH, RoundPhase.TERMINATED}),
    RoundPhase.MATCH: frozenset({RoundPhase.SETTLE}),
    RoundPhase.SETTLE: frozenset({RoundPhase.ADJUST}),
    RoundPhase.ADJUST: frozenset({RoundPhase.PRUNE}),
    RoundPhase.PRUNE: frozenset({RoundPhase.SNAPSHOT}),
    RoundPhase.SNAPSHOT: frozenset({RoundPhase.MATCH, RoundPhase.TERMINATED}),
    RoundPhase.TERMINATED: frozenset(),
}


@dataclass
class RoundReport:
    round_index: int
    trades: int = 0
    successes: int = 0
    failures: int = 0
    not_matched: int = 0
    not_yet: int = 0
    removed_agents: int = 0
    duration_seconds: float = 0.0


@dataclass
class SimulationResult:
    context: SimulationContext
    termination_reason: str
    reports: list[RoundReport] = field(default_factory=list)

    @property
    def task_id(self) -> str:
        return self.context.task_id

    @property
    def rounds_completed(self) -> int:
        return len(self.reports)

    def summary(self) -> dict[str, Any]:
        ctx = self.context
        summary: dict[str, Any] = {
            "task_id": ctx.task_id,
            "rounds_completed": self.rounds_completed,
            "termination_reason": self.termination_reason,
            "active_agents": len(ctx.active_agents()),
            "removed_agents": sum(1 for agent in ctx.agents.values() if not agent.active),
            "factories": len(ctx.factories),
            "total_trades": sum(report.trades for report in self.reports),
            "successful_trades": sum(report.successes for report in self.reports),
            "failed_trades": sum(report.failures for report in self.reports),
        }
        if isinstance(ctx.sink, MemorySink):
            summary["events"] = {kind: len(events) for kind, events in ctx.sink.by_kind.items()}
        return summary


class RoundScheduler:
    """
    Drives rounds through Match, Settle, Adjust, Prune and Snapshot.

    Phases can only advance along PHASE_TRANSITIONS; anything else is an
    InvariantViolation. `cancel()` may be called from any thread and takes
    effect before the next round opens.
    """

    def __init__(self, ctx: SimulationContext, rng: np.random.Generator | None = None) -> None:
        self.ctx = ctx
        self.config = ctx.config
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)
        self.matching = MatchingEngine(self.config.matching)
        self.negotiator = RangeNegotiator(self.config.negotiation)
        self.lifecycle = LifecycleManager(
            self.config.factory_optimization,
            self.config.removal,
            shift_ranges=self.config.negotiation.factory_adjustment == "round_end",
        )
        self.phase = RoundPhase.INIT
        self.reports: list[RoundReport] = []
        self.termination_reason: str | None = None
        self._cancelled = threading.Event()
        self._logger = create_system_logger("RoundScheduler")

        # Progress tracking state
        self.progress_enabled = os.getenv("SIM_PROGRESS", "0") in {"1", "true", "True"}
        self.start_ts = time.time()
        self.log_every_rounds = max(1, self.config.rounds // 10)

    # --- State machine ---
    def transition(self, phase: RoundPhase) -> None:
        if phase not in PHASE_TRANSITIONS[self.phase]:
            raise InvariantViolation(
                f"Illegal phase transition {self.phase.value} -> {phase.value}",
                round_index=self.ctx.round_index,
            )
        self.phase = phase

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def check_termination(self) -> str | None:
        if self.cancelled:
            return "cancelled"
        if self.ctx.clock.is_final_round():
            return "rounds_completed"
        if not self.ctx.active_agents():
            return "no_active_agents"
        if not self.ctx.has_active_factories():
            return "no_active_factories"
        if self.ctx.clock.is_idle():
            return "idle_market"
        return None

    # --- Round ---
    def open_round(self) -> None:
        """Start the round: fresh bills, production and income."""
        ctx = self.ctx
        round_index = ctx.clock.advance()
        ctx.ledger.begin_round(round_index)
        production = self.config.production
        if production.enabled and round_index > 1:
            for factory in ctx.factories.values():
                for product_id, line in factory.lines.items():
                    position = ctx.ledger.position(factory.unique_id, product_id)
                    last = position.last_bill
                    if last is None:
                        continue
                    units = line.plan_production(
                        last_initial_stock=last.initial_stock,
                        last_remaining_stock=last.initial_stock - last.units_sold,
                        last_production=last.production,
                        cash=ctx.ledger.factory_cash(factory.unique_id),
                        growth_base=production.growth_base,
                        growth_risk_weight=production.growth_risk_weight,
                    )
                    ctx.ledger.produce(factory.unique_id, product_id, units, line.product_cost)
        if self.config.income.enabled:
            low, high = self.config.income.range
            for agent in ctx.active_agents():
                ctx.ledger.credit_agent(agent.unique_id, float(self.rng.uniform(low, high)))

    def snapshot(self) -> None:
        """Close the books and emit the per-round cash and factory snapshots."""
        ctx = self.ctx
        durability: dict[tuple[int, int], float] = {}
        unit_costs: dict[tuple[int, int], float] = {}
        for factory in ctx.factories.values():
            for product_id, line in factory.lines.items():
                key = (factory.unique_id, product_id)
                durability[key] = line.durability if self.config.production.enabled else 1.0
                unit_costs[key] = line.product_cost
        ctx.ledger.close_round(durability, unit_costs)

        for agent in ctx.active_agents():
            ctx.emit(
                AgentCashLog(
                    timestamp=ctx.timestamp,
                    round=ctx.round_index,
                    task_id=ctx.task_id,
                    agent_id=agent.unique_id,
                    agent_name=agent.name,
                    cash=ctx.ledger.agent_cash(agent.unique_id),
                    total_trades=ctx.ledger.total_trades(agent.unique_id),
                )
            )
        for factory_id in sorted(ctx.factories):
            factory = ctx.factories[factory_id]
            for product_id in sorted(factory.lines):
                position = ctx.ledger.position(factory_id, product_id)
                bill = position.bill
                supply_range = factory.current_range(product_id)
                ctx.emit(
                    FactoryEndOfRoundLog(
                        timestamp=ctx.timestamp,
                        round=ctx.round_index,
                        task_id=ctx.task_id,
                        factory_id=factory_id,
                        factory_name=factory.name,
                        product_id=product_id,
                        product_category=factory.line(product_id).category.value,
                        cash=ctx.ledger.factory_cash(factory_id),
                        initial_stock=position.initial_stock,
                        remaining_stock=position.remaining_stock,
                        supply_range_lower=supply_range.lower,
                        supply_range_upper=supply_range.upper,
                        units_sold=bill.units_sold,
                        revenue=bill.revenue,
                        total_production=bill.production,
                        rot_stock=bill.rot_stock,
                        production_cost=bill.production_cost,
                        profit=bill.profit,
                    )
                )

    def run_round(self) -> RoundReport:
        started = time.perf_counter()

        self.transition(RoundPhase.MATCH)
        self.open_round()
        evaluations = self.matching.evaluate(self.ctx)

        self.transition(RoundPhase.SETTLE)
        trades = self.matching.settle(self.ctx, evaluations)

        self.transition(RoundPhase.ADJUST)
        self.negotiator.adjust(self.ctx, trades)
        self.lifecycle.optimize_factories(self.ctx)

        self.transition(RoundPhase.PRUNE)
        removed = self.lifecycle.prune_agents(self.ctx)

        self.transition(RoundPhase.SNAPSHOT)
        self.snapshot()

        report = self._report(trades, len(removed), time.perf_counter() - started)
        self.ctx.clock.record_activity(report.successes)
        self.reports.append(report)
        self._logger.log_performance(
            "round", report.duration_seconds, {"round": report.round_index, "trades": report.trades}
        )
        self._logger.log_system_metric("active_agents", len(self.ctx.active_agents()), "agents")
        return report

    def _report(self, trades: list[Trade], removed: int, duration: float) -> RoundReport:
        def count(result: TradeResult) -> int:
            return sum(1 for trade in trades if trade.result is result)

        return RoundReport(
            round_index=self.ctx.round_index,
            trades=len(trades),
            successes=count(TradeResult.SUCCESS),
            failures=count(TradeResult.FAILED),
            not_matched=count(TradeResult.NOT_MATCHED),
            not_yet=count(TradeResult.NOT_YET),
            removed_agents=removed,
            duration_seconds=duration,
        )

    def run(self) -> SimulationResult:
        """Run rounds until a termination condition holds."""
        log(
            f"Starting task {self.ctx.task_id} for up to {self.config.rounds} rounds...",
            level="INFO",
        )
        reason = self.check_termination()
        while reason is None:
            report = self.run_round()
            self._progress(report)
            reason = self.check_termination()
        if self.progress_enabled:
            sys.stdout.write("\n")
            sys.stdout.flush()

        self.transition(RoundPhase.TERMINATED)
        self.termination_reason = reason
        log(
            f"Task {self.ctx.task_id} finished after {self.ctx.round_index} rounds ({reason}).",
            level="INFO",
        )
        return SimulationResult(self.ctx, reason, list(self.reports))

    def _progress(self, report: RoundReport) -> None:
        done = report.round_index
        if done % self.log_every_rounds == 0:
            log(
                f"Round {done}: {report.successes} successes, {report.failures} failures, "
                f"{len(self.ctx.active_agents())} active agents.",
                level="INFO",
            )
        if self.progress_enabled:
            elapsed = time.time() - self.start_ts
            rate = done / elapsed if elapsed > 0 else 0.0
            remaining = (self.config.rounds - done) / rate if rate > 0 else float("nan")
            bar = _progress_bar(done, self.config.rounds, width=22)
            sys.stdout.write(
                f"\r{bar} round {done}/{self.config.rounds}  "
                f"elapsed {_format_duration(elapsed)}  eta {_format_duration(remaining)}"
            )
            sys.stdout.flush()


def _resolve_seed(config: SimulationConfig) -> int | None:
    env_seed = os.getenv("SIM_SEED")
    if env_seed is not None and env_seed != "":
        return int(env_seed)
    return config.seed


def run_simulation(
    config: SimulationConfig, sink: TelemetrySink | None = None
) -> SimulationResult:
    """Seed a population from `config` and run it to termination."""
    ctx = SimulationContext.create(config, sink)
    rng = np.random.default_rng(_resolve_seed(config))
    seed_population(ctx, rng)
    return RoundScheduler(ctx, rng).run()

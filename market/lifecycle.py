"""Lifecycle Manager: round-end factory optimization and agent removal."""

from __future__ import annotations

from typing import TYPE_CHECKING

from agents.consumer_agent import Agent
from agents.logging_utils import create_agent_logger, create_system_logger
from config import FactoryOptimizationConfig, RemovalConfig
from metrics.events import AgentDemandRemovalLog, FactoryRangeOptimizationLog

from .ranges import RangeChange

if TYPE_CHECKING:
    from simulation.context import SimulationContext

INSOLVENCY = "insolvency"
STAGNATION = "stagnation"

SCARCITY = "scarcity"
EXCESS_INVENTORY = "excess_inventory"
WITHIN_BAND = "within_band"
NO_STOCK = "no_stock"


def sell_through(units_sold: int, available_stock: int) -> float | None:
    """Share of the round's available stock that was sold; None without stock."""
    if available_stock <= 0:
        return None
    return units_sold / available_stock


class LifecycleManager:
    """
    Aggregates each round's outcome per factory/product into a supply range
    move, and retires agents that ran out of cash or stopped trading.
    """

    def __init__(
        self,
        optimization: FactoryOptimizationConfig,
        removal: RemovalConfig,
        shift_ranges: bool = True,
    ) -> None:
        self.optimization = optimization
        self.removal = removal
        # False when supply ranges already moved per trade during Adjust
        self.shift_ranges = shift_ranges
        self._logger = create_system_logger("LifecycleManager")

    def optimization_ratio(self, ratio: float | None) -> tuple[float, str]:
        """Relative supply range shift for a sell-through ratio, and its trigger."""
        if ratio is None:
            return 0.0, NO_STOCK
        high = self.optimization.sellthrough_high
        low = self.optimization.sellthrough_low
        step = self.optimization.optimization_step
        if ratio > high:
            return step * (ratio - high) / (1.0 - high), SCARCITY
        if ratio < low:
            return -step * (low - ratio) / low, EXCESS_INVENTORY
        return 0.0, WITHIN_BAND

    def optimize_factories(self, ctx: SimulationContext) -> int:
        """Emit one optimization event per product line, moving the supply range
        unless ranges are adjusted per trade."""
        emitted = 0
        for factory in sorted(ctx.factories.values(), key=lambda f: f.unique_id):
            for product_id in sorted(factory.lines):
                bill = ctx.ledger.position(factory.unique_id, product_id).bill
                ratio = sell_through(bill.units_sold, bill.initial_stock)
                shift, trigger = self.optimization_ratio(ratio)

                old = factory.current_range(product_id)
                if shift and self.shift_ranges:
                    factory.set_supply_range(product_id, old.shifted_by_ratio(shift))
                new = factory.current_range(product_id)
                change = RangeChange.between(old, new)
                ctx.emit(
                    FactoryRangeOptimizationLog(
                        timestamp=ctx.timestamp,
                        round=ctx.round_index,
                        task_id=ctx.task_id,
                        factory_id=factory.unique_id,
                        factory_name=factory.name,
                        product_id=product_id,
                        product_category=ctx.product_category(product_id),
                        trade_result="Success" if bill.units_sold > 0 else "Failed",
                        trigger=trigger,
                        sell_through=ratio,
                        old_range_lower=old.lower,
                        old_range_upper=old.upper,
                        new_range_lower=new.lower,
                        new_range_upper=new.upper,
                        lower_change=change.lower_change,
                        upper_change=change.upper_change,
                        total_change=change.total_change,
                        lower_change_ratio=change.min_change_ratio,
                        upper_change_ratio=change.max_change_ratio,
                    )
                )
                emitted += 1
        return emitted

    def removal_reason(self, ctx: SimulationContext, agent: Agent) -> str | None:
        if ctx.ledger.agent_cash(agent.unique_id) <= self.removal.cash_floor:
            return INSOLVENCY
        if ctx.ledger.rounds_without_trade(agent.unique_id) >= self.removal.stagnation_rounds:
            return STAGNATION
        return None

    def prune_agents(self, ctx: SimulationContext) -> list[Agent]:
        """Retire insolvent and stagnant agents, recording each removal once per preference."""
        ctx.ledger.record_trade_streaks()
        removed: list[Agent] = []
        for agent in ctx.active_agents():
            reason = self.removal_reason(ctx, agent)
            if reason is None:
                continue
            cash = ctx.ledger.agent_cash(agent.unique_id)
            for product_id in sorted(agent.preferences):
                snapshot = agent.preferences[product_id].snapshot()
                ctx.emit(
                    AgentDemandRemovalLog(
                        timestamp=ctx.timestamp,
                        round=ctx.round_index,
                        task_id=ctx.task_id,
                        agent_id=agent.unique_id,
                        agent_name=agent.name,
                        product_id=product_id,
                        agent_cash=cash,
                        agent_pref_original_price=snapshot["original_price"],
                        agent_pref_original_elastic=snapshot["original_elasticity"],
                        agent_pref_current_price=snapshot["current_price"],
                        agent_pref_current_range_lower=snapshot["current_range_lower"],
                        agent_pref_current_range_upper=snapshot["current_range_upper"],
                        removal_reason=reason,
                    )
                )
            agent.retire(reason)
            create_agent_logger(str(agent.unique_id), "Agent").log_state_change(
                "active", "removed", reason
            )
            removed.append(agent)

        if removed:
            self._logger.info(
                f"Round {ctx.round_index}: removed {len(removed)} agents "
                f"({sum(a.removal_reason == INSOLVENCY for a in removed)} insolvent)."
            )
        return removed

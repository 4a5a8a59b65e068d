"""Range Negotiation: how a settled trade moves the agent's (and optionally the factory's) range."""

from __future__ import annotations

from typing import TYPE_CHECKING

from agents.factory_agent import Factory
from agents.logging_utils import create_system_logger
from agents.preference import Preference
from config import NegotiationConfig
from metrics.events import AgentRangeAdjustmentLog, FactoryRangeOptimizationLog

from .errors import InvariantViolation
from .matching import INSUFFICIENT_CASH, Trade
from .ranges import PriceRange, RangeChange, TradeResult

if TYPE_CHECKING:
    from simulation.context import SimulationContext

SUCCESS_ADJUSTMENT = "trade_success"
FAILURE_ADJUSTMENT = "trade_failed"


class RangeNegotiator:
    """
    Applies per-trade range adjustments in trade-id order.

    Success pulls the agent's range around the settled price and narrows it;
    a failure widens it and moves it toward the factory it failed with.
    `NotMatched` and `NotYet` trades leave every range untouched.
    """

    def __init__(self, config: NegotiationConfig) -> None:
        self.config = config
        self._logger = create_system_logger("RangeNegotiator")

    # --- Agent side ---
    def min_width(self, price: float) -> float:
        return max(self.config.min_width_abs, price * self.config.min_width_ratio)

    def effective_shrink(self, elasticity: float) -> float:
        """Shrink factor scaled by elasticity; inelastic agents get a smaller factor."""
        return self.config.shrink_factor ** (self.config.reference_elasticity / elasticity)

    def on_success(self, preference: Preference, price: float) -> PriceRange:
        old = preference.current_range
        width = max(old.width * self.effective_shrink(preference.original_elasticity),
                    self.min_width(price))
        preference.current_price = price
        return preference.set_range(price - width / 2.0, price + width / 2.0)

    def failure_step(self, preference: Preference) -> float:
        base = max(preference.current_range.width, self.config.min_width_abs)
        scaled = (
            self.config.expand_step
            * base
            * (preference.original_elasticity / self.config.reference_elasticity)
        )
        return min(scaled, self.config.max_step_ratio * base)

    def on_failure(
        self,
        preference: Preference,
        counterpart: PriceRange,
        reason: str | None,
        agent_cash: float,
    ) -> PriceRange:
        old = preference.current_range
        step = self.failure_step(preference)
        target = counterpart.center
        if reason == INSUFFICIENT_CASH:
            target = min(target, agent_cash)
        shift = min(max(target - old.center, -step), step)
        return preference.set_range(old.lower - step + shift, old.upper + step + shift)

    # --- Factory side (per-trade mode) ---
    def nudge_factory(self, factory: Factory, trade: Trade) -> tuple[PriceRange, PriceRange]:
        old = factory.current_range(trade.product_id)
        ratio = self.config.per_trade_shift
        if trade.result is TradeResult.FAILED and trade.failure_reason == INSUFFICIENT_CASH:
            ratio = -ratio
        factory.set_supply_range(trade.product_id, old.shifted_by_ratio(ratio))
        return old, factory.current_range(trade.product_id)

    # --- Round driver ---
    def adjust(self, ctx: SimulationContext, trades: list[Trade]) -> int:
        """Apply every adjustment the round's trades call for; returns the number applied."""
        applied = 0
        per_trade = self.config.factory_adjustment == "per_trade"
        for trade in sorted(trades, key=lambda t: t.trade_id):
            if trade.result not in (TradeResult.SUCCESS, TradeResult.FAILED):
                continue
            self._adjust_agent(ctx, trade)
            applied += 1
            if per_trade:
                self._adjust_factory(ctx, trade)
        self._logger.debug(f"Round {ctx.round_index}: applied {applied} agent range adjustments.")
        return applied

    def _adjust_agent(self, ctx: SimulationContext, trade: Trade) -> None:
        agent = ctx.agents[trade.agent_id]
        preference = agent.preference(trade.product_id)
        old = preference.current_range
        if trade.result is TradeResult.SUCCESS:
            if trade.price is None:
                raise InvariantViolation(
                    f"Successful trade {trade.trade_id} has no price",
                    entity=f"agent:{trade.agent_id}",
                    round_index=trade.round_index,
                )
            new = self.on_success(preference, trade.price)
            adjustment_type = SUCCESS_ADJUSTMENT
        else:
            new = self.on_failure(
                preference,
                trade.factory_range,
                trade.failure_reason,
                ctx.ledger.agent_cash(trade.agent_id),
            )
            adjustment_type = FAILURE_ADJUSTMENT
        change = RangeChange.between(old, new)
        ctx.emit(
            AgentRangeAdjustmentLog(
                timestamp=ctx.timestamp,
                round=ctx.round_index,
                task_id=ctx.task_id,
                agent_id=agent.unique_id,
                agent_name=agent.name,
                product_id=trade.product_id,
                product_category=ctx.product_category(trade.product_id),
                adjustment_type=adjustment_type,
                old_range_lower=old.lower,
                old_range_upper=old.upper,
                new_range_lower=new.lower,
                new_range_upper=new.upper,
                lower_change=change.lower_change,
                upper_change=change.upper_change,
                min_change_ratio=change.min_change_ratio,
                max_change_ratio=change.max_change_ratio,
                center=new.center,
                price=trade.price,
            )
        )

    def _adjust_factory(self, ctx: SimulationContext, trade: Trade) -> None:
        factory = ctx.factories[trade.factory_id]
        succeeded = trade.result is TradeResult.SUCCESS
        old, new = self.nudge_factory(factory, trade)
        change = RangeChange.between(old, new)
        ctx.emit(
            FactoryRangeOptimizationLog(
                timestamp=ctx.timestamp,
                round=ctx.round_index,
                task_id=ctx.task_id,
                factory_id=factory.unique_id,
                factory_name=factory.name,
                product_id=trade.product_id,
                product_category=ctx.product_category(trade.product_id),
                trade_result=trade.result.value,
                trigger=SUCCESS_ADJUSTMENT if succeeded else FAILURE_ADJUSTMENT,
                sell_through=None,
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

"""Matching Engine: pairwise interval evaluation and stock-contention arbitration.

The Match phase evaluates every eligible (agent, factory, product) pair. It only
reads state, so independent factory/product groups are evaluated on a thread
pool. The Settle phase is a single-writer pass over the groups in a fixed order:
candidates are allocated greedily by rank until the factory's stock runs out.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from agents.consumer_agent import Agent
from agents.factory_agent import Factory
from agents.logging_utils import create_agent_logger, create_system_logger
from config import MatchingConfig
from metrics.events import TradeLog

from .errors import InsufficientResource, InvariantViolation
from .ranges import IntervalRelation, PriceRange, TradeResult, interval_relation, overlap

if TYPE_CHECKING:
    from simulation.context import SimulationContext

PairKey = tuple[int, int, int]  # (agent_id, factory_id, product_id)

STOCK_EXHAUSTED = "stock_exhausted"
INSUFFICIENT_CASH = "insufficient_cash"
EVALUATION_BUDGET = "evaluation_budget"
ALREADY_SERVED = "already_served"


@dataclass(frozen=True)
class PairEvaluation:
    agent_id: int
    factory_id: int
    product_id: int
    relation: IntervalRelation
    agent_range: PriceRange
    factory_range: PriceRange
    overlap: PriceRange | None = None
    bid: float | None = None

    @property
    def rank_key(self) -> tuple[float, int]:
        return (-(self.bid or 0.0), self.agent_id)


@dataclass
class GroupEvaluation:
    """Outcome of the Match phase for one factory/product group."""

    factory_id: int
    product_id: int
    candidates: list[PairEvaluation] = field(default_factory=list)
    not_matched: list[PairEvaluation] = field(default_factory=list)
    deferred: list[PairEvaluation] = field(default_factory=list)


@dataclass(frozen=True)
class Trade:
    trade_id: int
    round_index: int
    agent_id: int
    factory_id: int
    product_id: int
    interval_relation: IntervalRelation
    result: TradeResult
    agent_range: PriceRange
    factory_range: PriceRange
    agent_cash: float
    factory_stock: int
    price: float | None = None
    failure_reason: str | None = None
    deferral_reason: str | None = None

    @property
    def pair(self) -> PairKey:
        return (self.agent_id, self.factory_id, self.product_id)


def evaluate_pair(
    agent: Agent, factory: Factory, product_id: int
) -> PairEvaluation:
    """Relation, overlap and bid of one pair, computed from the ranges as they are now."""
    preference = agent.preference(product_id)
    agent_range = preference.current_range
    factory_range = factory.current_range(product_id)
    relation = interval_relation(agent_range, factory_range)
    if relation is not IntervalRelation.OVERLAPPING:
        return PairEvaluation(
            agent.unique_id, factory.unique_id, product_id, relation, agent_range, factory_range
        )
    common = overlap(agent_range, factory_range)
    if common is None:
        raise InvariantViolation(
            f"Overlapping ranges {agent_range.as_tuple()} and {factory_range.as_tuple()} "
            "have no common interval",
            entity=f"agent:{agent.unique_id}",
        )
    return PairEvaluation(
        agent.unique_id,
        factory.unique_id,
        product_id,
        relation,
        agent_range,
        factory_range,
        overlap=common,
        bid=common.clamp(preference.current_price),
    )


class MatchingEngine:
    """
    Computes interval relations for every active pair and resolves which trades
    execute given finite factory stock.

    Pairs left `NotYet` are remembered and evaluated ahead of fresh pairs of the
    same group next round.
    """

    def __init__(self, config: MatchingConfig) -> None:
        self.max_workers: int = config.max_workers
        self.evaluation_budget: int | None = config.evaluation_budget
        self.pending: set[PairKey] = set()
        self._logger = create_system_logger("MatchingEngine")

    # --- Match phase ---
    def groups(self, ctx: SimulationContext) -> list[tuple[Factory, int]]:
        """Factory/product groups with stock to offer, in settlement order."""
        groups = [
            (factory, product_id)
            for factory in ctx.factories.values()
            for product_id in factory.lines
            if ctx.ledger.remaining_stock(factory.unique_id, product_id) > 0
        ]
        groups.sort(key=lambda item: (item[1], item[0].unique_id))
        return groups

    def evaluate(self, ctx: SimulationContext) -> list[GroupEvaluation]:
        groups = self.groups(ctx)
        agents = [
            agent for agent in ctx.active_agents() if ctx.ledger.agent_cash(agent.unique_id) > 0
        ]

        def _evaluate(group: tuple[Factory, int]) -> GroupEvaluation:
            factory, product_id = group
            return self.evaluate_group(factory, product_id, agents)

        if self.max_workers > 1 and len(groups) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                evaluations = list(executor.map(_evaluate, groups))
        else:
            evaluations = [_evaluate(group) for group in groups]

        self._logger.debug(
            f"Round {ctx.round_index}: evaluated {len(evaluations)} groups "
            f"for {len(agents)} agents."
        )
        return evaluations

    def evaluate_group(
        self, factory: Factory, product_id: int, agents: list[Agent]
    ) -> GroupEvaluation:
        interested = [agent for agent in agents if agent.has_preference(product_id)]
        # carried-over pairs first, then by agent id
        interested.sort(
            key=lambda a: (
                (a.unique_id, factory.unique_id, product_id) not in self.pending,
                a.unique_id,
            )
        )
        group = GroupEvaluation(factory.unique_id, product_id)
        for position, agent in enumerate(interested):
            evaluation = evaluate_pair(agent, factory, product_id)
            if self.evaluation_budget is not None and position >= self.evaluation_budget:
                group.deferred.append(evaluation)
            elif evaluation.relation is IntervalRelation.OVERLAPPING:
                group.candidates.append(evaluation)
            else:
                group.not_matched.append(evaluation)
        group.candidates.sort(key=lambda evaluation: evaluation.rank_key)
        return group

    # --- Settle phase ---
    def settle(self, ctx: SimulationContext, evaluations: list[GroupEvaluation]) -> list[Trade]:
        """Allocate stock group by group and record one Trade per evaluated pair."""
        trades: list[Trade] = []
        served: set[tuple[int, int]] = set()
        for group in evaluations:
            trades.extend(self._settle_group(ctx, group, served))
        for group in evaluations:
            for evaluation in group.not_matched:
                trades.append(self._record(ctx, evaluation, TradeResult.NOT_MATCHED))
            for evaluation in group.deferred:
                trades.append(
                    self._record(
                        ctx, evaluation, TradeResult.NOT_YET, deferral_reason=EVALUATION_BUDGET
                    )
                )

        self.pending = {trade.pair for trade in trades if trade.result is TradeResult.NOT_YET}
        successes = sum(1 for trade in trades if trade.result is TradeResult.SUCCESS)
        self._logger.info(
            f"Round {ctx.round_index}: {successes} successful trades out of {len(trades)} pairs."
        )
        return trades

    def _settle_group(
        self, ctx: SimulationContext, group: GroupEvaluation, served: set[tuple[int, int]]
    ) -> list[Trade]:
        trades: list[Trade] = []
        for evaluation in group.candidates:
            agent_key = (evaluation.agent_id, evaluation.product_id)
            if agent_key in served:
                trades.append(
                    self._record(
                        ctx, evaluation, TradeResult.NOT_YET, deferral_reason=ALREADY_SERVED
                    )
                )
                continue
            if ctx.ledger.remaining_stock(group.factory_id, group.product_id) <= 0:
                trades.append(
                    self._record(
                        ctx, evaluation, TradeResult.FAILED, failure_reason=STOCK_EXHAUSTED
                    )
                )
                continue
            price = evaluation.bid if evaluation.bid is not None else evaluation.factory_range.lower
            try:
                settlement = ctx.ledger.settle(
                    evaluation.agent_id, group.factory_id, group.product_id, price
                )
            except InsufficientResource as exc:
                reason = (
                    STOCK_EXHAUSTED
                    if exc.entity is not None and exc.entity.startswith("factory:")
                    else INSUFFICIENT_CASH
                )
                trades.append(
                    self._record(ctx, evaluation, TradeResult.FAILED, failure_reason=reason)
                )
                continue
            served.add(agent_key)
            create_agent_logger(str(evaluation.agent_id), "Agent").log_financial_transaction(
                "purchase", settlement.price, settlement.agent_cash_after
            )
            trades.append(
                self._record(ctx, evaluation, TradeResult.SUCCESS, price=settlement.price)
            )
        return trades

    def _record(
        self,
        ctx: SimulationContext,
        evaluation: PairEvaluation,
        result: TradeResult,
        price: float | None = None,
        failure_reason: str | None = None,
        deferral_reason: str | None = None,
    ) -> Trade:
        trade = Trade(
            trade_id=ctx.next_trade_id(),
            round_index=ctx.round_index,
            agent_id=evaluation.agent_id,
            factory_id=evaluation.factory_id,
            product_id=evaluation.product_id,
            interval_relation=evaluation.relation,
            result=result,
            agent_range=evaluation.agent_range,
            factory_range=evaluation.factory_range,
            agent_cash=ctx.ledger.agent_cash(evaluation.agent_id),
            factory_stock=ctx.ledger.remaining_stock(evaluation.factory_id, evaluation.product_id),
            price=price,
            failure_reason=failure_reason,
            deferral_reason=deferral_reason,
        )
        ctx.emit(trade_log(ctx, trade))
        return trade


def trade_log(ctx: SimulationContext, trade: Trade) -> TradeLog:
    agent = ctx.agents[trade.agent_id]
    factory = ctx.factories[trade.factory_id]
    preference = agent.preference(trade.product_id)
    return TradeLog(
        timestamp=ctx.timestamp,
        round=trade.round_index,
        task_id=ctx.task_id,
        trade_id=trade.trade_id,
        agent_id=agent.unique_id,
        agent_name=agent.name,
        factory_id=factory.unique_id,
        factory_name=factory.name,
        product_id=trade.product_id,
        product_name=ctx.product_name(trade.product_id),
        trade_result=trade.result.value,
        interval_relation=trade.interval_relation.value,
        agent_cash=trade.agent_cash,
        price=trade.price,
        factory_supply_range_lower=trade.factory_range.lower,
        factory_supply_range_upper=trade.factory_range.upper,
        factory_stock=trade.factory_stock,
        agent_pref_original_price=preference.original_price,
        agent_pref_original_elastic=preference.original_elasticity,
        agent_pref_current_price=preference.current_price,
        agent_pref_current_range_lower=preference.current_range.lower,
        agent_pref_current_range_upper=preference.current_range.upper,
    )

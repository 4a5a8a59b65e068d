"""Round events emitted to the telemetry sink.

One frozen record type per table of the analytics store. Every record carries
`timestamp` (epoch milliseconds), `round` and `task_id`; `RoundEvent` is the
union a sink has to accept.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, ClassVar, Union


@dataclass(frozen=True)
class _EventBase:
    kind: ClassVar[str] = ""

    def to_record(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TradeLog(_EventBase):
    kind: ClassVar[str] = "trade_logs"

    timestamp: int
    round: int
    task_id: str
    trade_id: int
    agent_id: int
    agent_name: str
    factory_id: int
    factory_name: str
    product_id: int
    product_name: str
    trade_result: str
    interval_relation: str
    agent_cash: float
    price: float | None
    factory_supply_range_lower: float
    factory_supply_range_upper: float
    factory_stock: int
    agent_pref_original_price: float
    agent_pref_original_elastic: float
    agent_pref_current_price: float
    agent_pref_current_range_lower: float
    agent_pref_current_range_upper: float


@dataclass(frozen=True)
class AgentRangeAdjustmentLog(_EventBase):
    kind: ClassVar[str] = "agent_range_adjustment_logs"

    timestamp: int
    round: int
    task_id: str
    agent_id: int
    agent_name: str
    product_id: int
    product_category: str
    adjustment_type: str
    old_range_lower: float
    old_range_upper: float
    new_range_lower: float
    new_range_upper: float
    lower_change: float
    upper_change: float
    min_change_ratio: float
    max_change_ratio: float
    center: float
    price: float | None


@dataclass(frozen=True)
class FactoryRangeOptimizationLog(_EventBase):
    kind: ClassVar[str] = "factory_range_optimization_logs"

    timestamp: int
    round: int
    task_id: str
    factory_id: int
    factory_name: str
    product_id: int
    product_category: str
    trade_result: str
    trigger: str
    sell_through: float | None
    old_range_lower: float
    old_range_upper: float
    new_range_lower: float
    new_range_upper: float
    lower_change: float
    upper_change: float
    total_change: float
    lower_change_ratio: float
    upper_change_ratio: float


@dataclass(frozen=True)
class AgentCashLog(_EventBase):
    kind: ClassVar[str] = "agent_cash_logs"

    timestamp: int
    round: int
    task_id: str
    agent_id: int
    agent_name: str
    cash: float
    total_trades: int


@dataclass(frozen=True)
class AgentDemandRemovalLog(_EventBase):
    kind: ClassVar[str] = "agent_demand_removal_logs"

    timestamp: int
    round: int
    task_id: str
    agent_id: int
    agent_name: str
    product_id: int
    agent_cash: float
    agent_pref_original_price: float | None
    agent_pref_original_elastic: float | None
    agent_pref_current_price: float | None
    agent_pref_current_range_lower: float | None
    agent_pref_current_range_upper: float | None
    removal_reason: str


@dataclass(frozen=True)
class FactoryEndOfRoundLog(_EventBase):
    kind: ClassVar[str] = "factory_end_of_round_logs"

    timestamp: int
    round: int
    task_id: str
    factory_id: int
    factory_name: str
    product_id: int
    product_category: str
    cash: float
    initial_stock: int
    remaining_stock: int
    supply_range_lower: float
    supply_range_upper: float
    units_sold: int
    revenue: float
    total_production: int
    rot_stock: int
    production_cost: float
    profit: float


RoundEvent = Union[
    TradeLog,
    AgentRangeAdjustmentLog,
    FactoryRangeOptimizationLog,
    AgentCashLog,
    AgentDemandRemovalLog,
    FactoryEndOfRoundLog,
]

EVENT_TYPES: tuple[type[_EventBase], ...] = (
    TradeLog,
    AgentRangeAdjustmentLog,
    FactoryRangeOptimizationLog,
    AgentCashLog,
    AgentDemandRemovalLog,
    FactoryEndOfRoundLog,
)

EVENT_KINDS: tuple[str, ...] = tuple(event_type.kind for event_type in EVENT_TYPES)

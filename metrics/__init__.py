"""Metrics package: round events, telemetry sinks and event table analysis."""

from .base import MIN_ROUNDS_FOR_TREND, EventRecord, RecordTable
from .events import (
    EVENT_KINDS,
    EVENT_TYPES,
    AgentCashLog,
    AgentDemandRemovalLog,
    AgentRangeAdjustmentLog,
    FactoryEndOfRoundLog,
    FactoryRangeOptimizationLog,
    RoundEvent,
    TradeLog,
)
from .sink import FanOutSink, LoggingSink, MemorySink, TelemetrySink

__all__ = [
    "EVENT_KINDS",
    "EVENT_TYPES",
    "AgentCashLog",
    "AgentDemandRemovalLog",
    "AgentRangeAdjustmentLog",
    "FactoryEndOfRoundLog",
    "FactoryRangeOptimizationLog",
    "RoundEvent",
    "TradeLog",
    "TelemetrySink",
    "MemorySink",
    "LoggingSink",
    "FanOutSink",
    "MIN_ROUNDS_FOR_TREND",
    "EventRecord",
    "RecordTable",
]

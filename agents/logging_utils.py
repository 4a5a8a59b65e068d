"""Standardized logging utilities for the simulation."""

import json
from typing import Any, Dict, Literal, Optional

from logger import log

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class SimulationLogger:
    """
    Standardized logger for simulation components.

    Prefixes every message with the component (and entity) it comes from and
    appends structured payloads as a JSON `DATA:` line.
    """

    def __init__(self, component_name: str, entity_id: Optional[str] = None):
        """
        Initialize simulation logger.

        Args:
            component_name: Name of the component (e.g., "MatchingEngine", "Agent")
            entity_id: Optional entity identifier for context
        """
        self.component_name = component_name
        self.entity_id = entity_id

    def _format_message(self, message: str) -> str:
        if self.entity_id:
            return f"[{self.component_name}:{self.entity_id}] {message}"
        return f"[{self.component_name}] {message}"

    def debug(self, message: str, data: Optional[Dict] = None) -> None:
        self._log("DEBUG", message, data)

    def info(self, message: str, data: Optional[Dict] = None) -> None:
        self._log("INFO", message, data)

    def warning(self, message: str, data: Optional[Dict] = None) -> None:
        self._log("WARNING", message, data)

    def error(self, message: str, data: Optional[Dict] = None) -> None:
        self._log("ERROR", message, data)

    def critical(self, message: str, data: Optional[Dict] = None) -> None:
        self._log("CRITICAL", message, data)

    def _log(self, level: LogLevel, message: str, data: Optional[Dict] = None) -> None:
        log(self._format_message(message), level=level)

        if data:
            log(f"DATA: {json.dumps(data, default=str)}", level=level)

    def log_event(self, event_type: str, data: Dict[str, Any], level: LogLevel = "DEBUG") -> None:
        """
        Log a structured event.

        Args:
            event_type: Type of event (telemetry table name)
            data: Event payload
            level: Level to log at
        """
        self._log(level, f"EVENT: {event_type}", data)

    def log_performance(
        self, operation: str, duration: float, details: Optional[Dict] = None
    ) -> None:
        perf_data = {
            "operation": operation,
            "duration_seconds": duration,
            "component": self.component_name,
        }
        if details:
            perf_data.update(details)

        self.debug(f"PERF: {operation} took {duration:.4f}s", perf_data)


class AgentLogger(SimulationLogger):
    """Logger bound to one market participant."""

    def __init__(self, entity_id: str, entity_type: str):
        super().__init__(entity_type, entity_id)
        self.entity_type = entity_type

    def log_state_change(
        self, old_state: str, new_state: str, reason: Optional[str] = None
    ) -> None:
        data = {"old_state": old_state, "new_state": new_state, "reason": reason}
        self.info(f"State change: {old_state} -> {new_state}", data)

    def log_financial_transaction(
        self, transaction_type: str, amount: float, balance: float
    ) -> None:
        data = {"transaction_type": transaction_type, "amount": amount, "balance": balance}
        self.debug(f"Financial transaction: {transaction_type} {amount:.2f}", data)


class SystemLogger(SimulationLogger):
    """Logger for engine components (matching, lifecycle, scheduler)."""

    def __init__(self, system_name: str):
        super().__init__(system_name)

    def log_system_metric(self, metric_name: str, value: Any, unit: Optional[str] = None) -> None:
        data = {"metric": metric_name, "value": value, "unit": unit}
        self.debug(f"System metric: {metric_name} = {value}{f' {unit}' if unit else ''}", data)


def create_agent_logger(entity_id: str, entity_type: str) -> AgentLogger:
    return AgentLogger(entity_id, entity_type)


def create_system_logger(system_name: str) -> SystemLogger:
    return SystemLogger(system_name)

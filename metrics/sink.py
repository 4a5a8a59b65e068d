"""Telemetry sink contract and the sinks shipped with the simulator."""

from __future__ import annotations

from collections import defaultdict
from typing import Protocol, runtime_checkable

from agents.logging_utils import create_system_logger

from .events import EVENT_KINDS, RoundEvent


@runtime_checkable
class TelemetrySink(Protocol):
    """Consumer of round events. Persistence lives behind this boundary."""

    def emit(self, event: RoundEvent) -> None: ...


class MemorySink:
    """Keeps every event in memory, grouped by kind, in emission order."""

    def __init__(self) -> None:
        self.events: list[RoundEvent] = []
        self.by_kind: dict[str, list[RoundEvent]] = defaultdict(list)

    def emit(self, event: RoundEvent) -> None:
        self.events.append(event)
        self.by_kind[event.kind].append(event)

    def of_kind(self, kind: str) -> list[RoundEvent]:
        if kind not in EVENT_KINDS:
            raise KeyError(f"Unknown event kind {kind!r}")
        return list(self.by_kind.get(kind, []))

    def __len__(self) -> int:
        return len(self.events)


class LoggingSink:
    """Writes each event as a structured DEBUG line through the simulation logger."""

    def __init__(self) -> None:
        self._logger = create_system_logger("Telemetry")

    def emit(self, event: RoundEvent) -> None:
        self._logger.log_event(event.kind, event.to_record())


class FanOutSink:
    def __init__(self, *sinks: TelemetrySink) -> None:
        self.sinks: tuple[TelemetrySink, ...] = sinks

    def emit(self, event: RoundEvent) -> None:
        for sink in self.sinks:
            sink.emit(event)

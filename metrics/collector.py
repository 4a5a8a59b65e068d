"""EventCollector - keeps round events as rows and serves them as DataFrames."""

from dataclasses import fields
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from config import CONFIG_MODEL, SimulationConfig
from logger import log

from .base import RecordTable
from .events import EVENT_KINDS, EVENT_TYPES, RoundEvent

EVENT_COLUMNS: Dict[str, List[str]] = {
    event_type.kind: [f.name for f in fields(event_type)] for event_type in EVENT_TYPES
}

SORT_KEYS: Dict[str, List[str]] = {
    "trade_logs": ["round", "trade_id"],
    "agent_range_adjustment_logs": ["round", "agent_id", "product_id"],
    "factory_range_optimization_logs": ["round", "factory_id", "product_id"],
    "agent_cash_logs": ["round", "agent_id"],
    "agent_demand_removal_logs": ["round", "agent_id", "product_id"],
    "factory_end_of_round_logs": ["round", "factory_id", "product_id"],
}


class EventCollector:
    """
    Telemetry sink that turns every round event into a table row.

    One table per event kind; `frame(kind)` builds a pandas DataFrame with the
    event's columns (empty tables still carry their columns).
    """

    def __init__(self, config: Optional[SimulationConfig] = None):
        self.config = config or CONFIG_MODEL
        self.tables: Dict[str, RecordTable] = {kind: [] for kind in EVENT_KINDS}
        self.export_path = Path(self.config.metrics_export_path)
        self._frames: Dict[str, pd.DataFrame] = {}

    def emit(self, event: RoundEvent) -> None:
        self.tables[event.kind].append(event.to_record())
        self._frames.pop(event.kind, None)

    def count(self, kind: str) -> int:
        return len(self._table(kind))

    def frame(self, kind: str) -> pd.DataFrame:
        if kind not in self._frames:
            rows = self._table(kind)
            df = pd.DataFrame.from_records(rows, columns=EVENT_COLUMNS[kind])
            if not df.empty:
                df = df.sort_values(SORT_KEYS[kind], kind="stable").reset_index(drop=True)
            self._frames[kind] = df
        return self._frames[kind]

    def frames(self) -> Dict[str, pd.DataFrame]:
        return {kind: self.frame(kind) for kind in EVENT_KINDS}

    def export_metrics(self) -> List[Path]:
        from .exporter import export_metrics

        written = export_metrics(self)
        log(f"EventCollector: exported {len(written)} tables to {self.export_path}", level="INFO")
        return written

    def _table(self, kind: str) -> RecordTable:
        try:
            return self.tables[kind]
        except KeyError:
            raise KeyError(f"Unknown event kind {kind!r}") from None

"""Exporter module - CSV export of the collected event tables."""

import warnings
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Protocol

import pandas as pd

from logger import log

from .events import EVENT_KINDS


class EventCollectorProtocol(Protocol):
    """Protocol for event collectors to allow duck typing"""

    export_path: Path

    def frame(self, kind: str) -> pd.DataFrame: ...


def export_metrics(collector: EventCollectorProtocol) -> List[Path]:
    """Persist every non-empty event table to CSV."""
    return export_event_tables_to_csv(collector)


def export_event_tables_to_csv(collector: EventCollectorProtocol) -> List[Path]:
    """Write one timestamped CSV per event kind using pandas."""
    collector.export_path.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

    exports = [_export_event_frame(collector, kind, timestamp) for kind in EVENT_KINDS]

    written = [path for path in exports if path is not None]
    if written:
        log(
            "EventCollector: Exported CSV tables: " + ", ".join(str(p.name) for p in written),
            level="INFO",
        )
    else:
        log("EventCollector: No events available for CSV export", level="WARNING")
    return written


def _export_event_frame(
    collector: EventCollectorProtocol, kind: str, timestamp: str
) -> Optional[Path]:
    df = collector.frame(kind)
    if df.empty:
        return None

    output_file = collector.export_path / f"{kind}_{timestamp}.csv"
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", RuntimeWarning)
        df.to_csv(output_file, index=False)
    return output_file

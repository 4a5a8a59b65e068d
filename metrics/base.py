"""Base types and constants for the metrics package."""

from typing import Any, Dict, List

# Type aliases
EventRecord = Dict[str, Any]
RecordTable = List[EventRecord]

# Constants
MIN_ROUNDS_FOR_TREND = 5

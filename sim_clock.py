"""Round clock.

Global convention (used everywhere in this project):

- 1 simulation step == 1 market round
- rounds are 1-based; round 0 is the Init phase before the first Match
- every event emitted during a round carries that round's wall-clock timestamp
  (epoch milliseconds), taken once when the round opens

Termination checks that depend only on round counting live here so the
scheduler does not scatter them across its phases.
"""

from __future__ import annotations

import time
from dataclasses import dataclass


@dataclass
class RoundClock:
    """A small deterministic round counter.

    `advance()` opens the next round and stamps it; the timestamp stays fixed
    for the whole round so that all its events share one time key.
    """

    total_rounds: int
    max_idle_rounds: int | None = None
    round_index: int = 0
    timestamp_ms: int = 0
    idle_rounds: int = 0

    def advance(self) -> int:
        if self.is_final_round():
            raise ValueError(f"Round limit {self.total_rounds} already reached")
        self.round_index += 1
        self.timestamp_ms = int(time.time() * 1000)
        return self.round_index

    def record_activity(self, successes: int) -> None:
        """Count consecutive rounds that settled nothing."""
        if successes > 0:
            self.idle_rounds = 0
        else:
            self.idle_rounds += 1

    # --- Termination ---
    def is_final_round(self) -> bool:
        return self.round_index >= self.total_rounds

    def is_idle(self) -> bool:
        if self.max_idle_rounds is None:
            return False
        return self.idle_rounds >= self.max_idle_rounds

    @property
    def rounds_left(self) -> int:
        return max(0, self.total_rounds - self.round_index)

"""Error taxonomy for the market engine."""

from __future__ import annotations


class SimulationError(Exception):
    """Base class for all simulation failures.

    Carries the offending entity and round (when known) so a fatal abort can be
    reported precisely.
    """

    def __init__(
        self, message: str, entity: str | None = None, round_index: int | None = None
    ) -> None:
        self.entity = entity
        self.round_index = round_index
        context = []
        if entity is not None:
            context.append(f"entity={entity}")
        if round_index is not None:
            context.append(f"round={round_index}")
        suffix = f" ({', '.join(context)})" if context else ""
        super().__init__(f"{message}{suffix}")
        self.message = message


class InvariantViolation(SimulationError):
    """A logic defect: inverted range, negative stock or cash. Fatal to the run."""


class InsufficientResource(SimulationError):
    """Settlement would drive cash or stock negative. Recovered by failing the trade."""


class ConfigurationError(SimulationError):
    """Missing or out-of-range tunables. Fatal before the first round."""

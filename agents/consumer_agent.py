# consumer_agent.py
from __future__ import annotations

from market.errors import InvariantViolation
from market.ranges import PriceRange

from .base_agent import BaseAgent
from .preference import Preference


class Agent(BaseAgent):
    """
    Demand-side market participant.

    Holds one Preference per product it is interested in. Cash and trade
    counters are owned by the Ledger, so an Agent is pure range state plus
    identity.
    """

    def __init__(
        self,
        unique_id: int,
        name: str,
        preferences: dict[int, Preference] | None = None,
    ) -> None:
        super().__init__(unique_id, name)
        self.preferences: dict[int, Preference] = dict(preferences or {})
        self.active: bool = True
        self.removal_reason: str | None = None

    def has_preference(self, product_id: int) -> bool:
        return product_id in self.preferences

    def preference(self, product_id: int) -> Preference:
        try:
            return self.preferences[product_id]
        except KeyError:
            raise InvariantViolation(
                f"Agent has no preference for product {product_id}",
                entity=f"agent:{self.unique_id}",
            ) from None

    def current_range(self, product_id: int) -> PriceRange:
        return self.preference(product_id).current_range

    def retire(self, reason: str) -> None:
        """Terminal transition: the agent never re-enters matching."""
        if not self.active:
            raise InvariantViolation(
                f"Agent already removed ({self.removal_reason})", entity=f"agent:{self.unique_id}"
            )
        self.active = False
        self.removal_reason = reason

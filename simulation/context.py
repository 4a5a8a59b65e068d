"""Shared state of one simulation run (one task)."""

from __future__ import annotations

import itertools
import secrets
import string
from dataclasses import dataclass, field

from agents.consumer_agent import Agent
from agents.factory_agent import Factory
from agents.product import Product
from config import SimulationConfig
from market.errors import InvariantViolation
from market.ledger import Ledger
from metrics.events import RoundEvent
from metrics.sink import MemorySink, TelemetrySink
from sim_clock import RoundClock

TASK_ID_LENGTH = 16


def generate_task_id(length: int = TASK_ID_LENGTH) -> str:
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


@dataclass
class SimulationContext:
    """
    Everything a round phase reads or writes.

    Agents and factories hold ranges; the Ledger holds cash and stock. All
    events leave through `emit`, stamped by the caller with `timestamp`,
    `round_index` and `task_id`.
    """

    config: SimulationConfig
    task_id: str
    clock: RoundClock
    ledger: Ledger = field(default_factory=Ledger)
    sink: TelemetrySink = field(default_factory=MemorySink)
    products: dict[int, Product] = field(default_factory=dict)
    agents: dict[int, Agent] = field(default_factory=dict)
    factories: dict[int, Factory] = field(default_factory=dict)
    _trade_ids: itertools.count[int] = field(
        default_factory=lambda: itertools.count(1), init=False, repr=False
    )

    @classmethod
    def create(
        cls, config: SimulationConfig, sink: TelemetrySink | None = None
    ) -> SimulationContext:
        return cls(
            config=config,
            task_id=config.task_id or generate_task_id(),
            clock=RoundClock(config.rounds, config.max_idle_rounds),
            sink=sink if sink is not None else MemorySink(),
        )

    # --- Registration ---
    def add_product(self, product: Product) -> None:
        self.products[product.product_id] = product

    def add_agent(self, agent: Agent, cash: float) -> None:
        if agent.unique_id in self.agents:
            raise InvariantViolation("Duplicate agent id", entity=f"agent:{agent.unique_id}")
        self.agents[agent.unique_id] = agent
        self.ledger.open_agent(agent.unique_id, cash)

    def add_factory(self, factory: Factory, cash: float, stock: dict[int, int]) -> None:
        if factory.unique_id in self.factories:
            raise InvariantViolation("Duplicate factory id", entity=f"factory:{factory.unique_id}")
        self.factories[factory.unique_id] = factory
        self.ledger.open_factory(factory.unique_id, cash)
        for product_id in factory.lines:
            self.ledger.open_stock(factory.unique_id, product_id, stock.get(product_id, 0))

    # --- Round state ---
    @property
    def round_index(self) -> int:
        return self.clock.round_index

    @property
    def timestamp(self) -> int:
        return self.clock.timestamp_ms

    def next_trade_id(self) -> int:
        return next(self._trade_ids)

    def emit(self, event: RoundEvent) -> None:
        self.sink.emit(event)

    def active_agents(self) -> list[Agent]:
        return [self.agents[key] for key in sorted(self.agents) if self.agents[key].active]

    def is_factory_active(self, factory: Factory) -> bool:
        """A factory stays in the market while it holds stock or can still produce."""
        producing = self.config.production.enabled
        cash = self.ledger.factory_cash(factory.unique_id)
        for product_id, line in factory.lines.items():
            if self.ledger.remaining_stock(factory.unique_id, product_id) > 0:
                return True
            if producing and line.can_produce(cash):
                return True
        return False

    def has_active_factories(self) -> bool:
        return any(self.is_factory_active(factory) for factory in self.factories.values())

    # --- Lookups for event payloads ---
    def product_name(self, product_id: int) -> str:
        product = self.products.get(product_id)
        return product.name if product is not None else str(product_id)

    def product_category(self, product_id: int) -> str:
        product = self.products.get(product_id)
        if product is not None:
            return product.category.value
        for factory in self.factories.values():
            if factory.supplies(product_id):
                return factory.line(product_id).category.value
        return "Other"

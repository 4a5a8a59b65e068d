"""Cash, stock and trade counters for every participant of a run."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from logger import log

from .errors import InsufficientResource, InvariantViolation


@dataclass
class AgentAccount:
    cash: float
    total_trades: int = 0
    round_trades: int = 0
    rounds_without_trade: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


@dataclass
class FactoryAccount:
    cash: float
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


@dataclass
class RoundBill:
    """Financial bill of one factory product line for one round."""

    initial_stock: int = 0
    remaining_stock: int = 0
    production: int = 0
    production_cost: float = 0.0
    units_sold: int = 0
    revenue: float = 0.0
    rot_stock: int = 0
    profit: float = 0.0


@dataclass
class StockPosition:
    initial_stock: int
    remaining_stock: int
    bill: RoundBill = field(default_factory=RoundBill)
    last_bill: RoundBill | None = None


@dataclass(frozen=True)
class Settlement:
    agent_id: int
    factory_id: int
    product_id: int
    price: float
    agent_cash_after: float
    remaining_stock_after: int


class Ledger:
    """
    Owns per-agent cash and trade counters, per-factory cash, and per
    factory/product stock.

    Every settlement is atomic: the agent lock and then the factory lock are
    held while both sides are checked and mutated, so concurrently evaluated
    candidates can neither oversell stock nor double-spend cash.
    """

    def __init__(self) -> None:
        self.agents: dict[int, AgentAccount] = {}
        self.factories: dict[int, FactoryAccount] = {}
        self.stock: dict[tuple[int, int], StockPosition] = {}
        self._round: int = 0

    # --- Registration ---
    def open_agent(self, agent_id: int, cash: float) -> None:
        if cash < 0:
            raise InvariantViolation(
                "Initial cash must be non-negative", entity=f"agent:{agent_id}"
            )
        self.agents[agent_id] = AgentAccount(cash=float(cash))

    def open_factory(self, factory_id: int, cash: float) -> None:
        if cash < 0:
            raise InvariantViolation(
                "Initial cash must be non-negative", entity=f"factory:{factory_id}"
            )
        self.factories[factory_id] = FactoryAccount(cash=float(cash))

    def open_stock(self, factory_id: int, product_id: int, initial_stock: int) -> None:
        if initial_stock < 0:
            raise InvariantViolation(
                "Initial stock must be non-negative", entity=f"factory:{factory_id}/{product_id}"
            )
        self.stock[(factory_id, product_id)] = StockPosition(
            initial_stock=int(initial_stock), remaining_stock=int(initial_stock)
        )

    # --- Queries ---
    def agent_cash(self, agent_id: int) -> float:
        return self._agent(agent_id).cash

    def factory_cash(self, factory_id: int) -> float:
        return self._factory(factory_id).cash

    def position(self, factory_id: int, product_id: int) -> StockPosition:
        try:
            return self.stock[(factory_id, product_id)]
        except KeyError:
            raise InvariantViolation(
                "Unknown stock position", entity=f"factory:{factory_id}/{product_id}"
            ) from None

    def remaining_stock(self, factory_id: int, product_id: int) -> int:
        return self.position(factory_id, product_id).remaining_stock

    # --- Round bookkeeping ---
    def begin_round(self, round_index: int) -> None:
        """Reset per-round counters and open a fresh bill on every stock position."""
        self._round = round_index
        for account in self.agents.values():
            account.round_trades = 0
        for position in self.stock.values():
            position.last_bill = position.bill
            position.initial_stock = position.remaining_stock
            position.bill = RoundBill(
                initial_stock=position.remaining_stock,
                remaining_stock=position.remaining_stock,
            )

    def produce(self, factory_id: int, product_id: int, units: int, unit_cost: float) -> int:
        """Add produced units to the round's stock, paying for them from factory cash.

        Returns the units actually produced (capped by available cash).
        """
        if units <= 0:
            return 0
        account = self._factory(factory_id)
        position = self.position(factory_id, product_id)
        with account.lock:
            if unit_cost > 0:
                units = min(units, int(account.cash // unit_cost))
            if units <= 0:
                return 0
            cost = units * unit_cost
            account.cash -= cost
            position.initial_stock += units
            position.remaining_stock += units
            position.bill.initial_stock = position.initial_stock
            position.bill.remaining_stock = position.remaining_stock
            position.bill.production += units
            position.bill.production_cost += cost
        return units

    def credit_agent(self, agent_id: int, amount: float) -> float:
        if amount < 0:
            raise InvariantViolation(
                f"Cannot credit a negative amount {amount}", entity=f"agent:{agent_id}",
                round_index=self._round,
            )
        account = self._agent(agent_id)
        with account.lock:
            account.cash += amount
            return account.cash

    def settle(self, agent_id: int, factory_id: int, product_id: int, price: float) -> Settlement:
        """Transfer one unit from factory to agent at `price`.

        Raises InsufficientResource (and mutates nothing) when the agent cannot
        pay or the factory has no stock left.
        """
        if price < 0:
            raise InvariantViolation(
                f"Negative settlement price {price}",
                entity=f"agent:{agent_id}->factory:{factory_id}",
                round_index=self._round,
            )
        agent = self._agent(agent_id)
        factory = self._factory(factory_id)
        position = self.position(factory_id, product_id)
        with agent.lock, factory.lock:
            if position.remaining_stock <= 0:
                raise InsufficientResource(
                    "Stock exhausted",
                    entity=f"factory:{factory_id}/{product_id}",
                    round_index=self._round,
                )
            if agent.cash - price < 0:
                raise InsufficientResource(
                    f"Cash {agent.cash:.2f} below price {price:.2f}",
                    entity=f"agent:{agent_id}",
                    round_index=self._round,
                )
            agent.cash -= price
            agent.total_trades += 1
            agent.round_trades += 1
            factory.cash += price
            position.remaining_stock -= 1
            position.bill.remaining_stock = position.remaining_stock
            position.bill.units_sold += 1
            position.bill.revenue += price
            self._check_position(factory_id, product_id, position)
            return Settlement(
                agent_id=agent_id,
                factory_id=factory_id,
                product_id=product_id,
                price=price,
                agent_cash_after=agent.cash,
                remaining_stock_after=position.remaining_stock,
            )

    def record_trade_streaks(self) -> None:
        """Advance or reset every agent's count of consecutive rounds without a trade."""
        for account in self.agents.values():
            if account.round_trades == 0:
                account.rounds_without_trade += 1
            else:
                account.rounds_without_trade = 0

    def rounds_without_trade(self, agent_id: int) -> int:
        return self._agent(agent_id).rounds_without_trade

    def total_trades(self, agent_id: int) -> int:
        return self._agent(agent_id).total_trades

    def close_round(
        self,
        durability: dict[tuple[int, int], float],
        unit_costs: dict[tuple[int, int], float] | None = None,
    ) -> None:
        """Finish the round: rot and profit on every bill."""
        unit_costs = unit_costs or {}
        for key, position in self.stock.items():
            bill = position.bill
            rot = int(position.remaining_stock * (1.0 - durability.get(key, 1.0)))
            rot = min(rot, position.remaining_stock)
            position.remaining_stock -= rot
            bill.rot_stock = rot
            bill.remaining_stock = position.remaining_stock
            unit_cost = unit_costs.get(key, 0.0)
            bill.profit = bill.revenue - (bill.units_sold + rot) * unit_cost
            self._check_position(*key, position)
        log(f"Ledger: closed round {self._round}.", level="DEBUG")

    # --- Internals ---
    def _agent(self, agent_id: int) -> AgentAccount:
        try:
            return self.agents[agent_id]
        except KeyError:
            raise InvariantViolation("Unknown agent account", entity=f"agent:{agent_id}") from None

    def _factory(self, factory_id: int) -> FactoryAccount:
        try:
            return self.factories[factory_id]
        except KeyError:
            raise InvariantViolation(
                "Unknown factory account", entity=f"factory:{factory_id}"
            ) from None

    def _check_position(self, factory_id: int, product_id: int, position: StockPosition) -> None:
        if not 0 <= position.remaining_stock <= position.initial_stock:
            raise InvariantViolation(
                f"Stock out of bounds: remaining={position.remaining_stock}, "
                f"initial={position.initial_stock}",
                entity=f"factory:{factory_id}/{product_id}",
                round_index=self._round,
            )

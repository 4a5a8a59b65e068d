# factory_agent.py
from __future__ import annotations

from dataclasses import dataclass

from market.errors import InvariantViolation
from market.ranges import PriceRange

from .base_agent import BaseAgent
from .product import ProductCategory


@dataclass
class ProductLine:
    """One product a factory supplies, with its current supply range."""

    product_id: int
    category: ProductCategory
    supply_range: PriceRange
    product_cost: float
    durability: float = 1.0
    risk_appetite: float = 0.5

    def plan_production(
        self,
        last_initial_stock: int,
        last_remaining_stock: int,
        last_production: int,
        cash: float,
        growth_base: float = 1.1,
        growth_risk_weight: float = 0.4,
    ) -> int:
        """Units to produce at round open.

        A sold-out round grows output by (growth_base + growth_risk_weight * risk);
        otherwise the previous production is repeated. Output never exceeds what
        `cash * risk_appetite` can pay for.
        """
        if last_initial_stock == 0:
            predicted = 1
        elif last_remaining_stock == 0:
            rate = growth_base + growth_risk_weight * self.risk_appetite
            predicted = int(last_initial_stock * rate)
        else:
            predicted = max(last_production, 1)

        if self.product_cost <= 0:
            return predicted
        return max(0, min(predicted, self.affordable_units(cash)))

    def affordable_units(self, cash: float) -> int:
        return int(max(cash, 0.0) * self.risk_appetite / self.product_cost)

    def can_produce(self, cash: float) -> bool:
        return self.product_cost <= 0 or self.affordable_units(cash) >= 1


class Factory(BaseAgent):
    """
    Supply-side market participant.

    Owns one ProductLine per supplied product. Cash and stock are kept in the
    Ledger; the supply range is moved only by the Lifecycle Manager (or by
    per-trade nudges when that mode is configured).
    """

    def __init__(self, unique_id: int, name: str, lines: list[ProductLine] | None = None) -> None:
        super().__init__(unique_id, name)
        self.lines: dict[int, ProductLine] = {line.product_id: line for line in lines or []}

    def supplies(self, product_id: int) -> bool:
        return product_id in self.lines

    def line(self, product_id: int) -> ProductLine:
        try:
            return self.lines[product_id]
        except KeyError:
            raise InvariantViolation(
                f"Factory does not supply product {product_id}",
                entity=f"factory:{self.unique_id}",
            ) from None

    def current_range(self, product_id: int) -> PriceRange:
        return self.line(product_id).supply_range

    def set_supply_range(self, product_id: int, new_range: PriceRange) -> None:
        line = self.line(product_id)
        # lower bound stays at or above unit cost
        if new_range.lower < line.product_cost:
            width = new_range.width
            new_range = PriceRange.normalized(line.product_cost, line.product_cost + width)
        line.supply_range = new_range

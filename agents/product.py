# product.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np

from config import ProductConfig


class ProductCategory(str, Enum):
    FOOD = "Food"
    CLOTHING = "Clothing"
    TRANSPORT = "Transport"
    WATER = "Water"
    ENTERTAINMENT = "Entertainment"
    OTHER = "Other"


@dataclass(frozen=True)
class NormalDistribution:
    """Population-level distribution, only sampled while seeding a run."""

    mean: float
    std_dev: float

    def sample(
        self,
        rng: np.random.Generator,
        bounds: tuple[float, float] | None = None,
        max_attempts: int = 1000,
    ) -> float:
        """Draw a non-negative sample, redrawing until it falls inside `bounds`.

        After `max_attempts` misses the last draw is clipped into the bounds.
        """
        value = max(0.0, float(rng.normal(self.mean, self.std_dev)))
        if bounds is None:
            return value
        low, high = bounds
        for _ in range(max_attempts):
            if low <= value <= high:
                return value
            value = max(0.0, float(rng.normal(self.mean, self.std_dev)))
        return float(np.clip(value, low, high))


@dataclass(frozen=True)
class Product:
    product_id: int
    name: str
    category: ProductCategory
    durability: float
    price_distribution: NormalDistribution
    elasticity_distribution: NormalDistribution
    cost_distribution: NormalDistribution

    @classmethod
    def from_config(cls, cfg: ProductConfig) -> Product:
        return cls(
            product_id=cfg.id,
            name=cfg.name,
            category=ProductCategory(cfg.category),
            durability=cfg.durability,
            price_distribution=NormalDistribution(cfg.price.mean, cfg.price.std_dev),
            elasticity_distribution=NormalDistribution(cfg.elasticity.mean, cfg.elasticity.std_dev),
            cost_distribution=NormalDistribution(cfg.product_cost.mean, cfg.product_cost.std_dev),
        )

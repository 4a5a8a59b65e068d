"""Initial population: products, demand-side agents and factories.

All randomness comes from the numpy Generator passed in, so a fixed seed
reproduces the same market.
"""

from __future__ import annotations

import numpy as np

from agents.consumer_agent import Agent
from agents.factory_agent import Factory, ProductLine
from agents.preference import Preference
from agents.product import Product
from logger import log
from market.ranges import PriceRange

from .context import SimulationContext

PRICE_BOUNDS = (0.01, 1_000_000.0)
ELASTICITY_BOUNDS = (0.01, 1.0)
COST_BOUNDS = (0.0, 1_000_000.0)
RISK_APPETITE_BOUNDS = (0.1, 0.9)
MIN_FACTORY_CASH_BASE = 10.0


def create_products(ctx: SimulationContext) -> list[Product]:
    products = [Product.from_config(cfg) for cfg in ctx.config.products]
    for product in products:
        ctx.add_product(product)
    return products


def create_preference(product: Product, rng: np.random.Generator) -> Preference:
    price = product.price_distribution.sample(rng, PRICE_BOUNDS)
    elasticity = product.elasticity_distribution.sample(rng, ELASTICITY_BOUNDS)
    lower = float(rng.uniform(0.0, 0.75 * price))
    upper = float(rng.uniform(lower, 1.5 * price))
    return Preference(price, elasticity, PriceRange(lower, upper))


def create_agents(
    ctx: SimulationContext, products: list[Product], rng: np.random.Generator
) -> list[Agent]:
    population = ctx.config.population
    agents: list[Agent] = []
    for agent_id in range(1, population.num_agents + 1):
        preferences = {
            product.product_id: create_preference(product, rng) for product in products
        }
        agent = Agent(agent_id, f"{ctx.config.AGENT_NAME_PREFIX}{agent_id}", preferences)
        ctx.add_agent(agent, population.initial_agent_cash)
        agents.append(agent)
    return agents


def create_factories(
    ctx: SimulationContext, products: list[Product], rng: np.random.Generator
) -> list[Factory]:
    population = ctx.config.population
    initial_stock = ctx.config.production.initial_stock
    factories: list[Factory] = []
    factory_id = 0
    for product in products:
        for index in range(population.factories_per_product):
            factory_id += 1
            reference_price = product.price_distribution.sample(rng, PRICE_BOUNDS)
            lower = float(rng.uniform(0.0, reference_price))
            upper = float(rng.uniform(lower, 1.5 * reference_price))
            line = ProductLine(
                product_id=product.product_id,
                category=product.category,
                supply_range=PriceRange(lower, upper),
                product_cost=product.cost_distribution.sample(rng, COST_BOUNDS),
                durability=product.durability,
                risk_appetite=float(rng.uniform(*RISK_APPETITE_BOUNDS)),
            )
            factory = Factory(factory_id, f"{product.name}_{index}", [line])
            # lifts the lower bound to the unit cost where needed
            factory.set_supply_range(product.product_id, line.supply_range)
            cash = max(reference_price, MIN_FACTORY_CASH_BASE) * population.factory_cash_multiplier
            ctx.add_factory(factory, cash, {product.product_id: initial_stock})
            factories.append(factory)
    return factories


def seed_population(ctx: SimulationContext, rng: np.random.Generator) -> None:
    """Create every product, agent and factory of the run."""
    products = create_products(ctx)
    agents = create_agents(ctx, products, rng)
    factories = create_factories(ctx, products, rng)
    log(
        f"Population: {len(products)} products, {len(agents)} agents, "
        f"{len(factories)} factories.",
        level="INFO",
    )

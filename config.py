from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Literal, cast

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PositiveInt,
    ValidationError,
    field_validator,
    model_validator,
)

from market.errors import ConfigurationError

output_dir = "output/"


ConfigScalar = bool | int | float | str | None
ConfigValue = ConfigScalar | list["ConfigValue"] | dict[str, "ConfigValue"]


def _coerce_value(value: object) -> ConfigValue:
    if isinstance(value, (bool, int, float, str)) or value is None:
        return value
    if isinstance(value, (list, tuple)):
        return [_coerce_value(item) for item in value]
    if isinstance(value, Mapping):
        coerced: dict[str, ConfigValue] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                msg = "CONFIG keys must be strings"
                raise ConfigurationError(msg)
            coerced[key] = _coerce_value(item)
        return coerced
    msg = f"Unsupported CONFIG value type: {type(value)!r}"
    raise ConfigurationError(msg)


def _coerce_config_dict(data: Mapping[str, object]) -> dict[str, ConfigValue]:
    return {key: _coerce_value(value) for key, value in data.items()}


class BaseConfigModel(BaseModel):
    model_config = ConfigDict(validate_default=True, frozen=True, extra="forbid")


class DistributionConfig(BaseConfigModel):
    mean: float = Field(ge=0)
    std_dev: float = Field(0.0, ge=0)


class ProductConfig(BaseConfigModel):
    id: int = Field(ge=0)
    name: str
    category: Literal["Food", "Clothing", "Transport", "Water", "Entertainment", "Other"] = "Other"
    durability: float = Field(0.8, ge=0, le=1)
    price: DistributionConfig
    elasticity: DistributionConfig
    product_cost: DistributionConfig


def _default_products() -> list[dict[str, object]]:
    return [
        {
            "id": 1,
            "name": "bread",
            "category": "Food",
            "durability": 0.5,
            "price": {"mean": 5.0, "std_dev": 1.0},
            "elasticity": {"mean": 0.3, "std_dev": 0.1},
            "product_cost": {"mean": 2.0, "std_dev": 0.5},
        },
        {
            "id": 2,
            "name": "jacket",
            "category": "Clothing",
            "durability": 0.95,
            "price": {"mean": 120.0, "std_dev": 20.0},
            "elasticity": {"mean": 0.6, "std_dev": 0.15},
            "product_cost": {"mean": 60.0, "std_dev": 10.0},
        },
    ]


class NegotiationConfig(BaseConfigModel):
    """`factory_adjustment` picks what moves supply ranges: the round-end optimizer
    (`round_end`) or each settled trade (`per_trade`). In `per_trade` mode the
    round-end pass still reports sell-through but leaves the ranges alone."""

    shrink_factor: float = Field(0.9, gt=0, lt=1)
    expand_step: float = Field(0.05, gt=0)
    max_step_ratio: float = Field(0.25, gt=0)
    reference_elasticity: float = Field(0.5, gt=0, le=1)
    min_width_abs: float = Field(0.1, gt=0)
    min_width_ratio: float = Field(0.05, ge=0, lt=1)
    factory_adjustment: Literal["round_end", "per_trade"] = "round_end"
    per_trade_shift: float = Field(0.01, ge=0, lt=1)


class FactoryOptimizationConfig(BaseConfigModel):
    sellthrough_high: float = Field(0.9, gt=0, le=1)
    sellthrough_low: float = Field(0.3, gt=0, le=1)
    optimization_step: float = Field(0.05, ge=0, lt=1)

    @model_validator(mode="after")
    def _validate_band(self) -> FactoryOptimizationConfig:
        if self.sellthrough_low >= self.sellthrough_high:
            msg = "sellthrough_low must be below sellthrough_high"
            raise ValueError(msg)
        return self


class RemovalConfig(BaseConfigModel):
    cash_floor: float = Field(0.0, ge=0)
    stagnation_rounds: PositiveInt = 50


class MatchingConfig(BaseConfigModel):
    max_workers: PositiveInt = 4
    evaluation_budget: PositiveInt | None = None


class ProductionConfig(BaseConfigModel):
    enabled: bool = True
    initial_stock: int = Field(10, ge=0)
    growth_base: float = Field(1.1, ge=1)
    growth_risk_weight: float = Field(0.4, ge=0)


class IncomeConfig(BaseConfigModel):
    enabled: bool = False
    range: tuple[float, float] = (800.0, 1200.0)

    @field_validator("range")
    @classmethod
    def _validate_range(cls, value: tuple[float, float]) -> tuple[float, float]:
        low, high = value
        if low < 0 or high < low:
            msg = "income range must satisfy 0 <= low <= high"
            raise ValueError(msg)
        return value


class PopulationConfig(BaseConfigModel):
    num_agents: PositiveInt = 100
    initial_agent_cash: float = Field(10_000.0, ge=0)
    factories_per_product: PositiveInt = 3
    factory_cash_multiplier: float = Field(10.0, gt=0)


class SimulationConfig(BaseConfigModel):
    rounds: PositiveInt = 8000
    max_idle_rounds: PositiveInt | None = 20
    seed: int | None = None
    task_id: str | None = None
    negotiation: NegotiationConfig = Field(default_factory=NegotiationConfig)
    factory_optimization: FactoryOptimizationConfig = Field(
        default_factory=FactoryOptimizationConfig
    )
    removal: RemovalConfig = Field(default_factory=RemovalConfig)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    production: ProductionConfig = Field(default_factory=ProductionConfig)
    income: IncomeConfig = Field(default_factory=IncomeConfig)
    population: PopulationConfig = Field(default_factory=PopulationConfig)
    products: list[ProductConfig] = Field(default_factory=_default_products)
    logging_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_file: str | None = output_dir + "simulation.log"
    log_format: str = "%(asctime)s - %(levelname)s - %(message)s"
    SUMMARY_FILE: str = output_dir + "simulation_summary.json"
    JSON_INDENT: PositiveInt = 4
    metrics_export_path: str = output_dir + "metrics"
    AGENT_NAME_PREFIX: str = "Consumer_"

    @field_validator("products")
    @classmethod
    def _validate_products(cls, value: list[ProductConfig]) -> list[ProductConfig]:
        ids = [product.id for product in value]
        if len(ids) != len(set(ids)):
            msg = "product ids must be unique"
            raise ValueError(msg)
        return value

    @property
    def summary_file(self) -> str:
        return self.SUMMARY_FILE

    @property
    def json_indent(self) -> PositiveInt:
        return self.JSON_INDENT


def load_simulation_config(data: Mapping[str, ConfigValue] | None = None) -> SimulationConfig:
    """Build a validated configuration, raising ConfigurationError on bad input."""
    if data is None:
        return SimulationConfig()
    coerced = _coerce_config_dict(cast(Mapping[str, object], data))
    try:
        return SimulationConfig(**coerced)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid simulation config: {exc}") from exc


def load_simulation_config_from_yaml(path: str | Path) -> SimulationConfig:
    config_path = Path(path)
    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigurationError(f"Cannot read config file {config_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Cannot parse config file {config_path}: {exc}") from exc
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")
    return load_simulation_config(cast(Mapping[str, ConfigValue], raw))


CONFIG_MODEL: SimulationConfig = load_simulation_config()

"""Calculator module - per-round aggregates over the event tables."""

from typing import Any

import numpy as np
import pandas as pd

from market.ranges import TradeResult


def _trade_metrics(trades: pd.DataFrame) -> pd.DataFrame:
    """Outcome counts, mean settled price and success rate per round."""
    if trades.empty:
        return pd.DataFrame(columns=["round"])

    counts = trades.groupby(["round", "trade_result"]).size().unstack(fill_value=0)
    for result in TradeResult:
        if result.value not in counts.columns:
            counts[result.value] = 0
    counts = counts.rename(
        columns={
            TradeResult.SUCCESS.value: "successes",
            TradeResult.FAILED.value: "failures",
            TradeResult.NOT_MATCHED.value: "not_matched",
            TradeResult.NOT_YET.value: "not_yet",
        }
    )
    settled = trades[trades["trade_result"] == TradeResult.SUCCESS.value]
    settled = settled.assign(price=settled["price"].astype(float))
    prices = settled.groupby("round")["price"].agg(["mean", "std"])
    prices.columns = ["mean_price", "price_std"]

    out = counts.join(prices, how="left")
    candidates = out["successes"] + out["failures"]
    out["success_rate"] = (out["successes"] / candidates.replace(0, np.nan)).fillna(0.0)
    return out.reset_index()


def _range_metrics(adjustments: pd.DataFrame) -> pd.DataFrame:
    """Mean agent range width after adjustment and mean bound ratios per round."""
    if adjustments.empty:
        return pd.DataFrame(columns=["round"])

    df = adjustments.assign(
        new_width=adjustments["new_range_upper"] - adjustments["new_range_lower"]
    )
    out = df.groupby("round").agg(
        adjustments=("agent_id", "size"),
        mean_range_width=("new_width", "mean"),
        mean_min_change_ratio=("min_change_ratio", "mean"),
        mean_max_change_ratio=("max_change_ratio", "mean"),
    )
    return out.reset_index()


def _cash_metrics(cash: pd.DataFrame) -> pd.DataFrame:
    """Active agent count and cash distribution per round."""
    if cash.empty:
        return pd.DataFrame(columns=["round"])

    out = cash.groupby("round").agg(
        active_agents=("agent_id", "size"),
        total_cash=("cash", "sum"),
        mean_cash=("cash", "mean"),
        median_cash=("cash", "median"),
    )
    out["cash_gini"] = cash.groupby("round")["cash"].apply(lambda s: _gini(s.to_numpy()))
    return out.reset_index()


def _factory_metrics(factories: pd.DataFrame) -> pd.DataFrame:
    """Supply side totals per round."""
    if factories.empty:
        return pd.DataFrame(columns=["round"])

    out = factories.groupby("round").agg(
        units_sold=("units_sold", "sum"),
        revenue=("revenue", "sum"),
        production=("total_production", "sum"),
        rot_stock=("rot_stock", "sum"),
        remaining_stock=("remaining_stock", "sum"),
        factory_profit=("profit", "sum"),
    )
    initial = factories.groupby("round")["initial_stock"].sum()
    out["sell_through"] = (out["units_sold"] / initial.replace(0, np.nan)).fillna(0.0)
    return out.reset_index()


def _removal_metrics(removals: pd.DataFrame) -> pd.DataFrame:
    """Distinct removed agents per round, split by reason."""
    if removals.empty:
        return pd.DataFrame(columns=["round"])

    distinct = removals.drop_duplicates(["round", "agent_id"])
    out = distinct.groupby(["round", "removal_reason"]).size().unstack(fill_value=0)
    out.columns = [f"removed_{reason}" for reason in out.columns]
    return out.reset_index()


def _gini(values: Any) -> float:
    array = np.sort(np.asarray(values, dtype=float))
    if array.size == 0 or array.sum() <= 0:
        return 0.0
    index = np.arange(1, array.size + 1)
    total = array.sum()
    return float(2.0 * np.sum(index * array) / (array.size * total) - (array.size + 1) / array.size)

"""Analyzer module - round summaries and convergence diagnostics."""

import statistics
from typing import Any, Dict, List, Optional, TypedDict

import pandas as pd

from .base import MIN_ROUNDS_FOR_TREND
from .calculator import (
    _cash_metrics,
    _factory_metrics,
    _range_metrics,
    _removal_metrics,
    _trade_metrics,
)


class ConvergenceSnapshot(TypedDict):
    initial_mean_width: float
    latest_mean_width: float
    width_change_ratio: float
    price_volatility: float
    is_converging: bool


def summarize_rounds(collector: Any) -> pd.DataFrame:
    """One row per round joining trade, range, cash, factory and removal aggregates."""
    parts: List[pd.DataFrame] = [
        _trade_metrics(collector.frame("trade_logs")),
        _range_metrics(collector.frame("agent_range_adjustment_logs")),
        _cash_metrics(collector.frame("agent_cash_logs")),
        _factory_metrics(collector.frame("factory_end_of_round_logs")),
        _removal_metrics(collector.frame("agent_demand_removal_logs")),
    ]
    parts = [part for part in parts if not part.empty]
    if not parts:
        return pd.DataFrame(columns=["round"])

    summary = parts[0]
    for part in parts[1:]:
        summary = summary.merge(part, on="round", how="outer")
    removal_columns = [c for c in summary.columns if str(c).startswith("removed_")]
    if removal_columns:
        summary[removal_columns] = summary[removal_columns].fillna(0).astype(int)
    return summary.sort_values("round").reset_index(drop=True)


def analyze_price_convergence(collector: Any) -> Optional[ConvergenceSnapshot]:
    """Compare early and late mean agent range widths over the run."""
    ranges = _range_metrics(collector.frame("agent_range_adjustment_logs"))
    if ranges.empty or len(ranges) < MIN_ROUNDS_FOR_TREND:
        return None

    widths = ranges.sort_values("round")["mean_range_width"].tolist()
    window = max(1, len(widths) // MIN_ROUNDS_FOR_TREND)
    initial = statistics.mean(widths[:window])
    latest = statistics.mean(widths[-window:])

    trades = _trade_metrics(collector.frame("trade_logs"))
    prices: List[float] = []
    if not trades.empty and "mean_price" in trades.columns:
        prices = [float(p) for p in trades["mean_price"].dropna().tolist()]

    return {
        "initial_mean_width": initial,
        "latest_mean_width": latest,
        "width_change_ratio": (latest - initial) / initial if initial > 0 else 0.0,
        "price_volatility": statistics.stdev(prices) if len(prices) > 1 else 0.0,
        "is_converging": latest < initial,
    }


def get_latest_round_snapshot(collector: Any) -> Dict[str, Any]:
    summary = summarize_rounds(collector)
    if summary.empty:
        return {}
    return {str(key): value for key, value in summary.iloc[-1].to_dict().items()}

"""Buy-and-hold benchmark shadow portfolio.

Every time external capital enters the real portfolio, the same amount buys
units of the benchmark index at that date's close; withdrawals sell units of
equal value. The result is valued on every date that has either a benchmark
price or a capital flow, starting at the first flow.

The benchmark's XIRR is computed from the real portfolio's capital flows so
both money-weighted returns answer the same question.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import pandas as pd

from portfolio_performance_engine import config
from portfolio_performance_engine._logging import engine_logger
from portfolio_performance_engine.ledger import CapitalFlow
from portfolio_performance_engine.solvers import (
    TWRPoint,
    annualize_twr,
    build_xirr_flows,
    chain_twr,
    net_flow_by_date,
    xirr,
)


PriceInput = Union[pd.Series, Mapping[Any, float]]


@dataclass(frozen=True)
class BenchmarkEntry:
    date: date
    benchmark_value: float
    total_invested: float
    units: float
    price: float


def to_price_series(prices: Optional[PriceInput]) -> pd.Series:
    """Normalize a date→price mapping to a sorted, date-indexed float series."""
    if prices is None:
        return pd.Series(dtype=float)
    series = prices.copy() if isinstance(prices, pd.Series) else pd.Series(dict(prices))
    if series.empty:
        return pd.Series(dtype=float)
    series.index = pd.to_datetime(series.index).normalize()
    series = pd.to_numeric(series, errors="coerce").dropna()
    series = series[series > 0]
    # Keep the last quote when a date repeats.
    series = series[~series.index.duplicated(keep="last")]
    return series.sort_index().astype(float)


def prices_on(series: pd.Series, days: Sequence[date]) -> pd.Series:
    """Price at or before each day, falling back to the earliest price."""
    index = pd.DatetimeIndex(pd.to_datetime(list(days)))
    aligned = series.reindex(series.index.union(index)).ffill().reindex(index)
    return aligned.fillna(series.iloc[0])


class BenchmarkSimulator:
    """Replays a capital-flow log against a benchmark price series."""

    def __init__(self, capital_flows: Sequence[CapitalFlow], benchmark_prices: Optional[PriceInput], name: Optional[str] = None):
        self.capital_flows = list(capital_flows)
        self.prices = to_price_series(benchmark_prices)
        self.name = name or config.BENCHMARK_DEFAULTS["name"]
        self.history: List[BenchmarkEntry] = []
        self.twr_history: List[TWRPoint] = []
        self.total_units = 0.0
        self.total_invested = 0.0
        self._net_flows: Dict[date, float] = {}

    def process(self) -> List[BenchmarkEntry]:
        self.history = []
        if not self.capital_flows or self.prices.empty:
            if self.capital_flows:
                engine_logger.warning("Benchmark %s has no prices; skipping simulation", self.name)
            return self.history

        self._net_flows = net_flow_by_date(self.capital_flows)
        first_flow = min(self._net_flows)
        price_days = [ts.date() for ts in self.prices.index if ts.date() >= first_flow]
        days = sorted(set(price_days) | set(self._net_flows))
        day_prices = prices_on(self.prices, days)

        units = 0.0
        invested = 0.0
        for day, price in zip(days, day_prices.to_numpy(dtype=float)):
            amount = self._net_flows.get(day, 0.0)
            if amount > 0:
                units += amount / price
                invested += amount
            elif amount < 0:
                units = max(0.0, units + amount / price)
                invested = max(0.0, invested + amount)

            if units > 0:
                self.history.append(
                    BenchmarkEntry(
                        date=day,
                        benchmark_value=units * price,
                        total_invested=invested,
                        units=units,
                        price=float(price),
                    )
                )

        self.total_units = units
        self.total_invested = invested
        return self.history

    def calculate_twr(self) -> List[TWRPoint]:
        if not self.history:
            self.twr_history = []
            return self.twr_history
        observations = []
        for entry in self.history:
            net = self._net_flows.get(entry.date)
            value_before = entry.benchmark_value - net if net else None
            observations.append((entry.date, entry.benchmark_value, value_before))
        self.twr_history = chain_twr(observations)
        return self.twr_history

    def get_stats(self) -> Optional[Dict[str, Any]]:
        """Benchmark summary, or None when there is nothing to compare."""
        if not self.history:
            return None

        first, last = self.history[0], self.history[-1]
        twr_history = self.twr_history or self.calculate_twr()
        final_twr = twr_history[-1].twr if twr_history else 0.0
        xirr_result = xirr(build_xirr_flows(self.capital_flows, last.benchmark_value, last.date))

        return {
            "name": self.name,
            "benchmark_value": last.benchmark_value,
            "benchmark_twr_pct": final_twr,
            "benchmark_annualized_twr": annualize_twr(final_twr, first.date, last.date),
            "benchmark_cagr": xirr_result.value_or(0.0),
            "xirr_converged": xirr_result.converged,
            "total_units": self.total_units,
            "total_invested": self.total_invested,
            "start_date": first.date,
            "end_date": last.date,
        }

"""
Transaction-replay performance analysis entrypoints.

Called by:
    - ``run_performance.main`` (CLI)
    - library users holding either file paths or in-memory rows

Primary flow:
    1) Load the transaction export (and benchmark closes, if given).
    2) Replay events through ``PortfolioEngine`` under one ``EnginePolicy``.
    3) Simulate the buy-and-hold benchmark over the same capital flows.
    4) Return ``PerformanceResult`` or an error payload.
"""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from portfolio_performance_engine._logging import log_errors, log_operation, log_timing
from portfolio_performance_engine._vendor import make_json_safe
from portfolio_performance_engine.benchmark import PriceInput
from portfolio_performance_engine.config import EnginePolicy
from portfolio_performance_engine.data_loader import load_benchmark_prices, load_transactions
from portfolio_performance_engine.engine import PortfolioEngine
from portfolio_performance_engine.exceptions import EmptyInputError, EngineError
from portfolio_performance_engine.results import PerformanceResult


def run_performance_analysis(
    rows: Iterable[Mapping[str, Any]],
    benchmark_prices: Optional[PriceInput] = None,
    policy: Optional[EnginePolicy] = None,
    benchmark_name: Optional[str] = None,
    **metadata: Any,
) -> PerformanceResult:
    """In-memory analysis. Raises on bad input instead of returning a payload."""
    engine = PortfolioEngine(rows, policy=policy)
    engine.process()
    if not engine.history:
        raise EmptyInputError("No transactions to analyze")
    engine.calculate_twr()
    engine.calculate_xirr()

    simulator = None
    if benchmark_prices is not None:
        simulator = engine.benchmark(benchmark_prices, name=benchmark_name)
    return PerformanceResult.from_engine(engine, simulator, **metadata)


@log_errors("high")
@log_operation("performance_analysis")
@log_timing(5.0)
def analyze_performance(
    transactions_path: Union[str, Path],
    benchmark_path: Optional[Union[str, Path]] = None,
    policy: Optional[EnginePolicy] = None,
    benchmark_name: Optional[str] = None,
    date_column: Optional[str] = None,
    price_column: Optional[str] = None,
) -> Union[PerformanceResult, Dict[str, Any]]:
    """
    Run the full analysis for one transaction export.

    Contract notes:
    - Success path returns ``PerformanceResult``.
    - Error path returns a dict payload with ``error``, ``error_type`` and
      ``analysis_date``; input errors never escape as exceptions.

    Parameters
    ----------
    transactions_path : str or Path
        Broker CSV export, newest row first.
    benchmark_path : str or Path, optional
        CSV of benchmark closes. Without it no benchmark comparison is made.
    policy : EnginePolicy, optional
        Accounting policy; defaults to ``EnginePolicy.from_config()``.
    benchmark_name, date_column, price_column : str, optional
        Benchmark labelling and column overrides (see ``BENCHMARK_DEFAULTS``).
    """
    try:
        rows = load_transactions(transactions_path)
        prices = None
        if benchmark_path is not None:
            prices = load_benchmark_prices(benchmark_path, date_column=date_column, price_column=price_column)

        return run_performance_analysis(
            rows,
            benchmark_prices=prices,
            policy=policy,
            benchmark_name=benchmark_name,
            transactions_file=str(transactions_path),
            benchmark_file=str(benchmark_path) if benchmark_path is not None else None,
        )

    except FileNotFoundError as e:
        return make_json_safe({
            "error": f"File not found: {e.filename or e}",
            "error_type": "FileNotFoundError",
            "transactions_file": str(transactions_path),
            "benchmark_file": str(benchmark_path) if benchmark_path is not None else None,
            "analysis_date": datetime.now(UTC).isoformat(),
        })
    except EngineError as e:
        return make_json_safe({
            "error": str(e),
            "error_type": type(e).__name__,
            "row": getattr(e, "row", None),
            "field": getattr(e, "field", None),
            "transactions_file": str(transactions_path),
            "analysis_date": datetime.now(UTC).isoformat(),
        })
    except Exception as e:
        return make_json_safe({
            "error": f"Error during performance analysis: {str(e)}",
            "error_type": type(e).__name__,
            "transactions_file": str(transactions_path),
            "analysis_date": datetime.now(UTC).isoformat(),
        })

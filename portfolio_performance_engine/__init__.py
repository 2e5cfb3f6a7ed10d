"""Public API for portfolio_performance_engine."""

from portfolio_performance_engine.config import EnginePolicy
from portfolio_performance_engine.engine import EngineRun, PortfolioEngine, process
from portfolio_performance_engine.benchmark import BenchmarkSimulator
from portfolio_performance_engine.events import normalize_transaction, normalize_transactions
from portfolio_performance_engine.solvers import XirrResult, xirr
from portfolio_performance_engine.data_loader import load_benchmark_prices, load_transactions
from portfolio_performance_engine.performance_analysis import analyze_performance, run_performance_analysis
from portfolio_performance_engine.results import PerformanceResult

__all__ = [
    "EnginePolicy",
    "EngineRun",
    "PortfolioEngine",
    "process",
    "BenchmarkSimulator",
    "normalize_transaction",
    "normalize_transactions",
    "XirrResult",
    "xirr",
    "load_benchmark_prices",
    "load_transactions",
    "analyze_performance",
    "run_performance_analysis",
    "PerformanceResult",
]

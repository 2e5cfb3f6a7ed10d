"""Result object returned by ``analyze_performance``."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional

import pandas as pd

from portfolio_performance_engine._vendor import make_json_safe
from portfolio_performance_engine.benchmark import BenchmarkEntry, BenchmarkSimulator
from portfolio_performance_engine.engine import PortfolioEngine
from portfolio_performance_engine.flags import generate_performance_flags
from portfolio_performance_engine.solvers import TWRPoint
from portfolio_performance_engine.valuation import HistoryEntry


@dataclass
class PerformanceResult:
    """Portfolio stats, series and optional benchmark comparison for one run.

    ``stats`` carries the engine's summary keys; ``benchmark_stats`` is None
    when no benchmark prices were supplied or no capital ever entered.
    """

    stats: Dict[str, Any]
    policy: Dict[str, str]
    history: List[HistoryEntry] = field(default_factory=list)
    twr_history: List[TWRPoint] = field(default_factory=list)
    benchmark_stats: Optional[Dict[str, Any]] = None
    benchmark_history: List[BenchmarkEntry] = field(default_factory=list)
    benchmark_twr_history: List[TWRPoint] = field(default_factory=list)
    data_quality: Dict[str, Any] = field(default_factory=dict)
    transactions_file: Optional[str] = None
    benchmark_file: Optional[str] = None
    analysis_date: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    @classmethod
    def from_engine(
        cls,
        engine: PortfolioEngine,
        simulator: Optional[BenchmarkSimulator] = None,
        **metadata: Any,
    ) -> "PerformanceResult":
        stats = engine.get_stats() or {}
        run = engine.run
        data_quality = {
            "events": len(engine.processed_events),
            "capital_flows": len(engine.capital_flows),
            "inferred_injections": sum(1 for flow in engine.capital_flows if flow.inferred),
            "unmatched_sells": len(run.unmatched_sells) if run else 0,
        }
        return cls(
            stats=stats,
            policy=engine.policy.to_dict(),
            history=list(engine.history),
            twr_history=list(engine.twr_history),
            benchmark_stats=simulator.get_stats() if simulator else None,
            benchmark_history=list(simulator.history) if simulator else [],
            benchmark_twr_history=list(simulator.twr_history) if simulator else [],
            data_quality=data_quality,
            **metadata,
        )

    # ── derived views ─────────────────────────────────────────────────────
    @property
    def alpha(self) -> Optional[Dict[str, float]]:
        """Portfolio minus benchmark, in percentage points."""
        if not self.benchmark_stats or not self.stats:
            return None
        return {
            "twr_pct": self.stats["twr_pct"] - self.benchmark_stats["benchmark_twr_pct"],
            "annualized_twr": self.stats["annualized_twr"] - self.benchmark_stats["benchmark_annualized_twr"],
            "cagr": self.stats["cagr"] - self.benchmark_stats["benchmark_cagr"],
        }

    def history_frame(self) -> pd.DataFrame:
        """Daily history joined with TWR and, if present, the benchmark."""
        columns = ["cash", "nav", "portfolio_value", "cumulative_capital_in", "realized_pnl", "twr"]
        if not self.history:
            return pd.DataFrame(columns=columns)
        frame = pd.DataFrame(
            [
                {
                    "date": entry.date,
                    "cash": entry.cash,
                    "nav": entry.nav,
                    "portfolio_value": entry.portfolio_value,
                    "cumulative_capital_in": entry.cumulative_capital_in,
                    "realized_pnl": entry.realized_pnl,
                }
                for entry in self.history
            ]
        ).set_index("date")
        twr = {point.date: point.twr for point in self.twr_history}
        frame["twr"] = [twr.get(day, 0.0) for day in frame.index]

        if self.benchmark_history:
            bench = pd.DataFrame(
                [{"date": e.date, "benchmark_value": e.benchmark_value} for e in self.benchmark_history]
            ).set_index("date")
            bench_twr = {point.date: point.twr for point in self.benchmark_twr_history}
            bench["benchmark_twr"] = [bench_twr.get(day) for day in bench.index]
            frame = frame.join(bench, how="outer")
        frame.index.name = "date"
        return frame

    def to_snapshot(self) -> Dict[str, Any]:
        """Compact nested view consumed by ``generate_performance_flags``."""
        stats = self.stats or {}
        alpha = self.alpha
        return {
            "returns": {
                "total_return_pct": stats.get("total_return_pct"),
                "twr_pct": stats.get("twr_pct"),
                "annualized_twr": stats.get("annualized_twr"),
                "cagr": stats.get("cagr"),
                "xirr_converged": stats.get("xirr_converged"),
            },
            "benchmark": {
                "name": (self.benchmark_stats or {}).get("name"),
                "alpha_twr_pct": alpha["twr_pct"] if alpha else None,
                "alpha_annual_pct": alpha["annualized_twr"] if alpha else None,
                "alpha_cagr_pct": alpha["cagr"] if alpha else None,
            },
            "costs": {
                "total_transaction_costs": stats.get("total_transaction_costs"),
                "total_capital_in": stats.get("total_capital_in"),
            },
            "data_quality": dict(self.data_quality),
        }

    def get_flags(self) -> List[Dict[str, Any]]:
        return generate_performance_flags(self.to_snapshot())

    def _history_records(self) -> List[Dict[str, Any]]:
        twr = {point.date: point.twr for point in self.twr_history}
        return [{**asdict(entry), "twr": twr.get(entry.date, 0.0)} for entry in self.history]

    # ── output formats ────────────────────────────────────────────────────
    def to_api_response(self) -> Dict[str, Any]:
        return make_json_safe(
            {
                "stats": self.stats,
                "policy": self.policy,
                "benchmark": self.benchmark_stats,
                "alpha": self.alpha,
                "flags": self.get_flags(),
                "data_quality": self.data_quality,
                "history": self._history_records(),
                "benchmark_history": self.benchmark_history,
                "analysis_metadata": {
                    "analysis_date": self.analysis_date,
                    "transactions_file": self.transactions_file,
                    "benchmark_file": self.benchmark_file,
                },
            }
        )

    def to_cli_report(self) -> str:
        sections = [self._format_header(), self._format_portfolio()]
        if self.benchmark_stats:
            sections.append(self._format_benchmark())
        flags = self.get_flags()
        if flags:
            sections.append(self._format_flags(flags))
        return "\n".join(sections)

    def _format_header(self) -> str:
        stats = self.stats or {}
        lines = ["📊 Portfolio Performance Analysis"]
        lines.append("=" * 50)
        lines.append(f"📁 Transactions file: {self.transactions_file or '(in-memory)'}")
        lines.append(f"📅 Analysis period: {stats.get('start_date')} to {stats.get('end_date')}")
        lines.append(
            "⚙️  Policy: "
            + ", ".join(f"{key}={value}" for key, value in self.policy.items())
        )
        lines.append("")
        return "\n".join(lines)

    def _format_portfolio(self) -> str:
        s = self.stats or {}
        lines = ["💰 Portfolio"]
        lines.append("-" * 50)
        lines.append(f"  Portfolio value:        {s.get('portfolio_value', 0.0):>14,.2f}")
        lines.append(f"  Cash:                   {s.get('cash', 0.0):>14,.2f}")
        lines.append(f"  Holdings value (NAV):   {s.get('nav', 0.0):>14,.2f}")
        lines.append(f"  Capital contributed:    {s.get('total_capital_in', 0.0):>14,.2f}")
        lines.append(f"  Net profit:             {s.get('net_profit', 0.0):>14,.2f}")
        lines.append(f"  Realized P&L:           {s.get('realized_pnl', 0.0):>14,.2f}")
        lines.append(f"  Transaction costs:      {s.get('total_transaction_costs', 0.0):>14,.2f}")
        lines.append("")
        lines.append("📈 Returns")
        lines.append("-" * 50)
        lines.append(f"  Total return:           {s.get('total_return_pct', 0.0):>13.2f}%")
        lines.append(f"  TWR:                    {s.get('twr_pct', 0.0):>13.2f}%")
        lines.append(f"  Annualized TWR:         {s.get('annualized_twr', 0.0):>13.2f}%")
        cagr_note = "" if s.get("xirr_converged", True) else "  (not converged)"
        lines.append(f"  CAGR (XIRR):            {s.get('cagr', 0.0):>13.2f}%{cagr_note}")
        holdings = s.get("holdings") or {}
        if holdings:
            lines.append("")
            lines.append("📦 Holdings")
            lines.append("-" * 50)
            prices = s.get("average_prices") or {}
            for instrument, qty in sorted(holdings.items()):
                lines.append(f"  {instrument:<20} {qty:>12,.4f} @ {prices.get(instrument, 0.0):,.2f}")
        lines.append("")
        return "\n".join(lines)

    def _format_benchmark(self) -> str:
        b = self.benchmark_stats or {}
        alpha = self.alpha or {}
        lines = [f"🏁 Benchmark ({b.get('name')})"]
        lines.append("-" * 50)
        lines.append(f"  Benchmark value:        {b.get('benchmark_value', 0.0):>14,.2f}")
        lines.append(f"  Benchmark TWR:          {b.get('benchmark_twr_pct', 0.0):>13.2f}%")
        lines.append(f"  Benchmark ann. TWR:     {b.get('benchmark_annualized_twr', 0.0):>13.2f}%")
        lines.append(f"  Benchmark CAGR:         {b.get('benchmark_cagr', 0.0):>13.2f}%")
        lines.append(f"  Alpha (ann. TWR):       {alpha.get('annualized_twr', 0.0):>+13.2f}%")
        lines.append(f"  Alpha (CAGR):           {alpha.get('cagr', 0.0):>+13.2f}%")
        lines.append("")
        return "\n".join(lines)

    @staticmethod
    def _format_flags(flags: List[Dict[str, Any]]) -> str:
        icons = {"error": "❌", "warning": "⚠️ ", "info": "ℹ️ ", "success": "✅"}
        lines = ["🚩 Flags"]
        lines.append("-" * 50)
        for flag in flags:
            lines.append(f"  {icons.get(flag['severity'], '•')} {flag['message']}")
        return "\n".join(lines)

"""Transaction replay engine.

Primary flow:
1. Normalize newest-first broker rows into chronological events.
2. Schedule events into per-date buckets under the active policy.
3. Apply each bucket to a fresh ``PositionLedger``; settle capital inference.
4. Snapshot once per date into the append-only history.
5. Derive TWR/XIRR/simple-return stats and, optionally, the benchmark.

``process`` is the pure core: it takes events and a policy and returns an
``EngineRun`` without touching any shared state. ``PortfolioEngine`` is the
stateful convenience wrapper used by the analysis entrypoint and CLI.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from portfolio_performance_engine._logging import engine_logger, log_operation, log_portfolio_operation
from portfolio_performance_engine.benchmark import BenchmarkSimulator, PriceInput
from portfolio_performance_engine.config import EnginePolicy
from portfolio_performance_engine.events import Event, TradeEvent, normalize_transactions
from portfolio_performance_engine.ledger import CapitalFlow, LedgerState, PositionLedger
from portfolio_performance_engine.scheduler import schedule
from portfolio_performance_engine.solvers import (
    TWRPoint,
    XirrResult,
    annualized_twr_from_series,
    build_xirr_flows,
    simple_return,
    time_weighted_returns,
    xirr,
)
from portfolio_performance_engine.valuation import HistoryEntry, append_snapshot, take_snapshot


@dataclass
class EngineRun:
    """Everything one replay produced. History and flows are write-once."""

    policy: EnginePolicy
    history: List[HistoryEntry] = field(default_factory=list)
    capital_flows: List[CapitalFlow] = field(default_factory=list)
    ledger: LedgerState = field(default_factory=LedgerState)
    events: List[Event] = field(default_factory=list)
    buy_events: List[TradeEvent] = field(default_factory=list)
    unmatched_sells: List[TradeEvent] = field(default_factory=list)


def process(events: Iterable[Event], policy: Optional[EnginePolicy] = None) -> EngineRun:
    """Replay ``events`` from an empty ledger and snapshot once per date."""
    policy = policy or EnginePolicy()
    ledger = PositionLedger(policy)
    run = EngineRun(policy=policy)

    for day, bucket in schedule(events, policy.scheduling):
        for event in bucket:
            applied = ledger.apply(event)
            run.events.append(applied)
            if isinstance(applied, TradeEvent) and applied.is_buy:
                run.buy_events.append(applied)
        ledger.settle_day(day)
        append_snapshot(run.history, take_snapshot(ledger.state, day, policy.nav_mark))

    run.capital_flows = list(ledger.capital_flows)
    run.ledger = ledger.state
    run.unmatched_sells = list(ledger.unmatched_sells)

    inferred = [flow for flow in run.capital_flows if flow.inferred]
    log_portfolio_operation(
        "engine_run",
        {
            "events": len(run.events),
            "dates": len(run.history),
            "capital_flows": len(run.capital_flows),
            "inferred_injections": len(inferred),
            "unmatched_sells": len(run.unmatched_sells),
            **policy.to_dict(),
        },
    )
    return run


class PortfolioEngine:
    """Stateful wrapper: rows in, history/TWR/stats out.

    Each ``process()`` call replays from zero; nothing carries over between
    calls. Not safe to share across threads while a call is in progress.

    Example
    -------
    engine = PortfolioEngine(rows)
    engine.process()
    engine.calculate_twr()
    stats = engine.get_stats()
    """

    def __init__(self, transactions: Iterable[Mapping[str, Any]], policy: Optional[EnginePolicy] = None):
        self.transactions = list(transactions)
        self.policy = policy or EnginePolicy.from_config()
        self.run: Optional[EngineRun] = None
        self.twr_history: List[TWRPoint] = []
        self.xirr_result: Optional[XirrResult] = None

    @property
    def history(self) -> List[HistoryEntry]:
        return self.run.history if self.run else []

    @property
    def capital_flows(self) -> List[CapitalFlow]:
        return self.run.capital_flows if self.run else []

    @property
    def buy_events(self) -> List[TradeEvent]:
        return self.run.buy_events if self.run else []

    @property
    def processed_events(self) -> List[Event]:
        return self.run.events if self.run else []

    @log_operation("portfolio_engine_process")
    def process(self) -> List[HistoryEntry]:
        events = normalize_transactions(self.transactions)
        self.run = process(events, self.policy)
        self.twr_history = []
        self.xirr_result = None
        return self.run.history

    def calculate_twr(self) -> List[TWRPoint]:
        self.twr_history = time_weighted_returns(self.history, self.capital_flows)
        return self.twr_history

    def calculate_xirr(self) -> XirrResult:
        if not self.history:
            self.xirr_result = XirrResult(None, False, 0, "empty_history")
            return self.xirr_result
        last = self.history[-1]
        flows = build_xirr_flows(
            self.capital_flows,
            last.portfolio_value,
            last.date,
            fallback_outflows=[(e.date, e.total_value) for e in self.buy_events],
        )
        self.xirr_result = xirr(flows)
        if not self.xirr_result.ok:
            engine_logger.warning("Portfolio XIRR unavailable (%s); reporting 0%%", self.xirr_result.reason)
        return self.xirr_result

    def get_stats(self) -> Optional[Dict[str, Any]]:
        """Summary stats, or None when the run produced no history."""
        if not self.history:
            return None

        state = self.run.ledger
        first, last = self.history[0], self.history[-1]
        twr_history = self.twr_history or self.calculate_twr()
        xirr_result = self.xirr_result or self.calculate_xirr()

        return {
            "portfolio_value": last.portfolio_value,
            "cash": last.cash,
            "nav": last.nav,
            "total_return_pct": simple_return(last.portfolio_value, state.total_capital_in),
            "twr_pct": twr_history[-1].twr if twr_history else 0.0,
            "annualized_twr": annualized_twr_from_series(twr_history),
            "cagr": xirr_result.value_or(0.0),
            "xirr_converged": xirr_result.converged,
            "holdings": dict(state.positions),
            "purchase_prices": dict(state.purchase_price),
            "average_prices": dict(state.avg_price),
            "last_prices": dict(state.last_traded_price),
            "total_transaction_costs": state.total_transaction_costs,
            "realized_pnl": state.realized_pnl,
            "net_profit": last.portfolio_value - state.total_capital_in,
            "total_capital_in": state.total_capital_in,
            "start_date": first.date,
            "end_date": last.date,
        }

    def benchmark(self, benchmark_prices: Optional[PriceInput], name: Optional[str] = None) -> BenchmarkSimulator:
        """Run the buy-and-hold benchmark over this run's capital flows."""
        simulator = BenchmarkSimulator(self.capital_flows, benchmark_prices, name=name)
        simulator.process()
        simulator.calculate_twr()
        return simulator

"""Day-granularity valuation snapshots."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List

from portfolio_performance_engine.ledger import LedgerState


@dataclass(frozen=True)
class HistoryEntry:
    date: date
    cash: float
    nav: float
    portfolio_value: float
    cumulative_capital_in: float
    realized_pnl: float
    positions: Dict[str, float] = field(default_factory=dict)

    @property
    def pnl(self) -> float:
        return self.portfolio_value - self.cumulative_capital_in


def take_snapshot(state: LedgerState, day: date, nav_mark: str) -> HistoryEntry:
    """Value the ledger after every event of ``day`` has been applied.

    ``nav_mark`` selects the valuation price: ``last_trade`` reflects market
    moves seen in later trades, ``purchase_price``/``average_cost`` do not.
    """
    nav = state.nav(nav_mark)
    return HistoryEntry(
        date=day,
        cash=state.cash_balance,
        nav=nav,
        portfolio_value=state.cash_balance + nav,
        cumulative_capital_in=state.total_capital_in,
        realized_pnl=state.realized_pnl,
        positions=dict(state.positions),
    )


def append_snapshot(history: List[HistoryEntry], entry: HistoryEntry) -> None:
    """Append keeping history strictly ascending with one entry per date."""
    if history and entry.date <= history[-1].date:
        raise ValueError(
            f"History already has an entry on or after {entry.date.isoformat()} "
            f"(last: {history[-1].date.isoformat()})"
        )
    history.append(entry)

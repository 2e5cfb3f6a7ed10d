"""Position ledger: cash, share counts, cost basis and capital flows.

The ledger owns one ``LedgerState`` for the duration of a single engine run.
It is not re-entrant and is never reused across runs; ``engine.process``
builds a fresh ledger for every call.

Capital flows use the investor's perspective: money entering the portfolio
is negative, withdrawals are positive. Each flow carries the portfolio value
immediately before it was applied, which the TWR solver uses to close the
running sub-period.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from typing import Dict, List, Optional

from portfolio_performance_engine import config
from portfolio_performance_engine._logging import engine_logger
from portfolio_performance_engine.config import EnginePolicy
from portfolio_performance_engine.events import CashflowEvent, Event, TradeEvent


@dataclass(frozen=True)
class CapitalFlow:
    date: date
    amount: float
    portfolio_value_before: float
    inferred: bool = False


@dataclass
class LedgerState:
    """Mutable bookkeeping for one run.

    Invariant: every key in ``positions`` has an ``avg_price`` entry.
    ``last_traded_price`` and ``purchase_price`` outlive closed positions.
    """

    cash_balance: float = 0.0
    positions: Dict[str, float] = field(default_factory=dict)
    avg_price: Dict[str, float] = field(default_factory=dict)
    purchase_price: Dict[str, float] = field(default_factory=dict)
    last_traded_price: Dict[str, float] = field(default_factory=dict)
    total_capital_in: float = 0.0
    total_transaction_costs: float = 0.0
    realized_pnl: float = 0.0

    def mark_price(self, instrument: str, nav_mark: str) -> float:
        if nav_mark == "purchase_price":
            price = self.purchase_price.get(instrument)
        elif nav_mark == "average_cost":
            price = self.avg_price.get(instrument)
        else:
            price = self.last_traded_price.get(instrument)
        if price is None:
            price = self.last_traded_price.get(instrument, 0.0)
        return price

    def nav(self, nav_mark: str) -> float:
        return sum(qty * self.mark_price(instrument, nav_mark) for instrument, qty in self.positions.items())

    def portfolio_value(self, nav_mark: str) -> float:
        return self.cash_balance + self.nav(nav_mark)


class PositionLedger:
    """Applies events one at a time to a private ``LedgerState``."""

    def __init__(self, policy: Optional[EnginePolicy] = None):
        self.policy = policy or EnginePolicy()
        self.state = LedgerState()
        self.capital_flows: List[CapitalFlow] = []
        self.unmatched_sells: List[TradeEvent] = []
        self._day_buy_outlay = 0.0

    # ── public API ────────────────────────────────────────────────────────
    def apply(self, event: Event) -> Event:
        """Apply one event; sells come back with ``realized_pnl`` attached."""
        if isinstance(event, CashflowEvent):
            self._apply_cashflow(event)
            return event
        if event.is_buy:
            self._apply_buy(event)
            return event
        return self._apply_sell(event)

    def settle_day(self, day: date) -> Optional[CapitalFlow]:
        """Close a day bucket: infer capital for the part of a net cash
        shortfall that the day's buys caused.

        Only active for capital inference under day-bucket scheduling; the
        flat-sort policy infers capital per buy instead. An overdraft left by
        a withdrawal stays as negative cash.
        """
        outlay, self._day_buy_outlay = self._day_buy_outlay, 0.0
        if not (self.policy.infers_capital and self.policy.scheduling == "day_bucket"):
            return None
        if self.state.cash_balance >= 0:
            return None
        injection = min(-self.state.cash_balance, outlay)
        if injection <= 0:
            return None
        flow = self._inject(day, injection, self.state.portfolio_value(self.policy.nav_mark))
        self.state.cash_balance += injection
        return flow

    # ── internals ─────────────────────────────────────────────────────────
    def _inject(self, day: date, amount: float, value_before: float) -> CapitalFlow:
        self.state.total_capital_in += amount
        flow = CapitalFlow(date=day, amount=-amount, portfolio_value_before=value_before, inferred=True)
        self.capital_flows.append(flow)
        engine_logger.debug("Inferred capital injection of %.2f on %s", amount, day.isoformat())
        return flow

    def _apply_cashflow(self, event: CashflowEvent) -> None:
        state = self.state
        value_before = state.portfolio_value(self.policy.nav_mark)
        state.cash_balance += event.amount
        if event.amount > 0:
            state.total_capital_in += event.amount
        self.capital_flows.append(
            CapitalFlow(date=event.date, amount=-event.amount, portfolio_value_before=value_before)
        )

    def _apply_buy(self, event: TradeEvent) -> None:
        state = self.state
        policy = self.policy
        instrument = event.instrument
        needed = abs(event.total_value)

        if policy.infers_capital and policy.scheduling == "flat_sort":
            if state.cash_balance < needed:
                value_before = state.portfolio_value(policy.nav_mark)
                self._inject(event.date, needed - state.cash_balance, value_before)
                state.cash_balance = 0.0
            else:
                state.cash_balance -= needed
        else:
            # Explicit mode lets cash go negative; day buckets settle at close.
            state.cash_balance += event.total_value
            if policy.infers_capital:
                self._day_buy_outlay += needed

        price_value = event.unit_price * event.quantity
        fee = needed - price_value
        state.total_transaction_costs += fee
        if policy.fee_policy == "expense":
            state.realized_pnl -= fee
            basis_added = price_value
        else:
            basis_added = needed

        old_qty = state.positions.get(instrument, 0.0)
        new_qty = old_qty + event.quantity
        if abs(new_qty) < config.POSITION_EPSILON:
            state.positions.pop(instrument, None)
            state.avg_price.pop(instrument, None)
        else:
            if old_qty <= 0:
                state.avg_price[instrument] = basis_added / event.quantity
            else:
                old_avg = state.avg_price.get(instrument, 0.0)
                state.avg_price[instrument] = (old_qty * old_avg + basis_added) / new_qty
            state.positions[instrument] = new_qty

        state.last_traded_price[instrument] = event.unit_price
        state.purchase_price[instrument] = event.unit_price

    def _apply_sell(self, event: TradeEvent) -> TradeEvent:
        state = self.state
        instrument = event.instrument
        sell_qty = abs(event.quantity)
        proceeds = event.total_value

        state.cash_balance += proceeds
        gross = event.unit_price * sell_qty
        fee = gross - proceeds
        state.total_transaction_costs += fee

        held = state.positions.get(instrument, 0.0)
        if held <= 0:
            engine_logger.warning(
                "Sell of %s %s on %s without an open position; using zero cost basis",
                sell_qty,
                instrument,
                event.date.isoformat(),
            )
            self.unmatched_sells.append(event)
            cost_basis = 0.0
        else:
            cost_basis = min(sell_qty, held) * state.avg_price.get(instrument, 0.0)

        if self.policy.fee_policy == "expense":
            trade_pnl = gross - cost_basis
            state.realized_pnl += trade_pnl - fee
        else:
            trade_pnl = proceeds - cost_basis
            state.realized_pnl += trade_pnl

        new_qty = held - sell_qty
        if abs(new_qty) < config.POSITION_EPSILON:
            state.positions.pop(instrument, None)
            state.avg_price.pop(instrument, None)
        else:
            state.positions[instrument] = new_qty
            if new_qty < 0:
                state.avg_price[instrument] = event.unit_price

        state.last_traded_price[instrument] = event.unit_price
        return replace(event, realized_pnl=trade_pnl)

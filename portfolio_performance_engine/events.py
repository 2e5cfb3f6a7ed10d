"""Normalization of raw broker rows into dated, typed events.

Rows arrive as mappings keyed by the export's column names (``Date``,
``Action``, ``Stock``, ``Quantity``, ``Price``, ``Total_Value``). Cashflow
rows from the older two-file export (``Type``, ``Amount``) are accepted too.

Sign conventions:
- Cashflow amounts take the polarity of their label; the raw sign is dropped
  because exports sign withdrawals inconsistently.
- Trade rows are kept verbatim: buys carry ``quantity > 0`` and
  ``total_value < 0``, sells the opposite. Anything else is malformed.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, List, Mapping, Optional, Union

import pandas as pd

from portfolio_performance_engine.constants import (
    BUY_ACTIONS,
    CASHFLOW_DEPOSIT,
    CASHFLOW_WITHDRAWAL,
    COLUMN_ACTION,
    COLUMN_AMOUNT,
    COLUMN_DATE,
    COLUMN_PRICE,
    COLUMN_QUANTITY,
    COLUMN_STOCK,
    COLUMN_TOTAL_VALUE,
    COLUMN_TYPE,
    DEPOSIT_ACTIONS,
    SELL_ACTIONS,
    WITHDRAWAL_ACTIONS,
)
from portfolio_performance_engine.exceptions import InvalidDateError, SchemaError


@dataclass(frozen=True)
class CashflowEvent:
    date: date
    direction: str
    amount: float
    source_index: int = 0

    @property
    def kind(self) -> str:
        return "cashflow"


@dataclass(frozen=True)
class TradeEvent:
    date: date
    instrument: str
    quantity: float
    unit_price: float
    total_value: float
    realized_pnl: Optional[float] = None
    action: str = ""
    source_index: int = 0

    @property
    def is_buy(self) -> bool:
        return self.quantity > 0

    @property
    def is_sell(self) -> bool:
        return self.quantity < 0

    @property
    def kind(self) -> str:
        return "buy" if self.is_buy else "sell"


Event = Union[CashflowEvent, TradeEvent]


def parse_date(value: Any) -> date:
    """Parse an ISO-8601 calendar date; raise ``InvalidDateError`` otherwise.

    Only dates and date strings are accepted. Numbers and relative keywords
    such as ``"now"`` are rejected rather than resolved.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip()[:1].isdigit():
        raise InvalidDateError(f"Invalid date format: {value!r}", value=value)
    try:
        ts = pd.to_datetime(value.strip(), format="ISO8601")
    except (TypeError, ValueError, OverflowError) as exc:
        raise InvalidDateError(f"Invalid date format: {value!r}", value=value) from exc
    if pd.isna(ts):
        raise InvalidDateError(f"Invalid date format: {value!r}", value=value)
    return ts.date()


def _as_number(value: Any, field: str, *, row: Optional[int] = None) -> float:
    """Coerce a required numeric field, raising ``SchemaError`` on junk."""
    if value is None or isinstance(value, bool):
        raise SchemaError(f"Missing numeric value for {field}", row=row, field=field, value=value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise SchemaError(f"Missing numeric value for {field}", row=row, field=field, value=value)
        try:
            out = float(text)
        except ValueError as exc:
            raise SchemaError(f"Value {value!r} in {field} is not a valid number", row=row, field=field, value=value) from exc
    else:
        try:
            out = float(value)
        except (TypeError, ValueError) as exc:
            raise SchemaError(f"Value {value!r} in {field} is not a valid number", row=row, field=field, value=value) from exc
    if not math.isfinite(out):
        raise SchemaError(f"Missing numeric value for {field}", row=row, field=field, value=value)
    return out


def _label(row: Mapping[str, Any]) -> str:
    raw = row.get(COLUMN_ACTION)
    if raw is None or (isinstance(raw, float) and math.isnan(raw)) or not str(raw).strip():
        raw = row.get(COLUMN_TYPE)
    if raw is None or (isinstance(raw, float) and math.isnan(raw)):
        return ""
    return str(raw).strip()


def classify_action(label: str) -> str:
    """Map an action label to ``deposit``, ``withdrawal``, ``buy``, ``sell`` or ``trade``."""
    key = label.strip().lower()
    if key in DEPOSIT_ACTIONS:
        return "deposit"
    if key in WITHDRAWAL_ACTIONS:
        return "withdrawal"
    if key in BUY_ACTIONS:
        return "buy"
    if key in SELL_ACTIONS:
        return "sell"
    return "trade"


def normalize_transaction(row: Mapping[str, Any], *, index: int = 0) -> Event:
    """Convert one raw row into a ``CashflowEvent`` or ``TradeEvent``."""
    when = parse_date(row.get(COLUMN_DATE))
    label = _label(row)
    kind = classify_action(label)

    if kind in ("deposit", "withdrawal"):
        raw_amount = row.get(COLUMN_TOTAL_VALUE)
        if raw_amount is None or (isinstance(raw_amount, float) and math.isnan(raw_amount)):
            raw_amount = row.get(COLUMN_AMOUNT)
        amount = abs(_as_number(raw_amount, COLUMN_TOTAL_VALUE, row=index))
        if kind == "deposit":
            return CashflowEvent(date=when, direction=CASHFLOW_DEPOSIT, amount=amount, source_index=index)
        return CashflowEvent(date=when, direction=CASHFLOW_WITHDRAWAL, amount=-amount, source_index=index)

    instrument = row.get(COLUMN_STOCK)
    if instrument is None or (isinstance(instrument, float) and math.isnan(instrument)) or not str(instrument).strip():
        raise SchemaError(f"Trade row '{label}' has no {COLUMN_STOCK}", row=index, field=COLUMN_STOCK, value=instrument)

    quantity = _as_number(row.get(COLUMN_QUANTITY), COLUMN_QUANTITY, row=index)
    unit_price = _as_number(row.get(COLUMN_PRICE), COLUMN_PRICE, row=index)
    total_value = _as_number(row.get(COLUMN_TOTAL_VALUE), COLUMN_TOTAL_VALUE, row=index)

    if quantity == 0:
        raise SchemaError(f"Trade in {instrument} has zero quantity", row=index, field=COLUMN_QUANTITY, value=quantity)
    if unit_price <= 0:
        raise SchemaError(f"Trade in {instrument} has non-positive price {unit_price}", row=index, field=COLUMN_PRICE, value=unit_price)
    if (quantity > 0 and total_value >= 0) or (quantity < 0 and total_value <= 0):
        raise SchemaError(
            f"Trade in {instrument}: quantity {quantity} and total value {total_value} have inconsistent signs",
            row=index,
            field=COLUMN_TOTAL_VALUE,
            value=total_value,
        )
    if (kind == "buy" and quantity < 0) or (kind == "sell" and quantity > 0):
        raise SchemaError(
            f"Trade in {instrument}: action '{label}' contradicts quantity {quantity}",
            row=index,
            field=COLUMN_QUANTITY,
            value=quantity,
        )

    return TradeEvent(
        date=when,
        instrument=str(instrument).strip(),
        quantity=quantity,
        unit_price=unit_price,
        total_value=total_value,
        action=label,
        source_index=index,
    )


def normalize_transactions(rows: Iterable[Mapping[str, Any]]) -> List[Event]:
    """Normalize a newest-first row list into oldest-first events.

    ``source_index`` numbers events in chronological file order so same-day
    ties stay deterministic. The first bad row aborts the whole batch.
    """
    chronological = list(rows)[::-1]
    return [normalize_transaction(row, index=i) for i, row in enumerate(chronological)]

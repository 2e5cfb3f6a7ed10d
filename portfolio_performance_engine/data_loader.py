"""
CSV loaders for broker transaction exports and benchmark price files.

Transaction exports:
- One row per event, newest first, with ``Date``, ``Action`` and
  ``Total_Value``; trade rows also carry ``Stock``, ``Quantity``, ``Price``.
- The older cashflow export (``Type``, ``Amount``) is accepted in place of
  ``Action``/``Total_Value``.
- Every cell is read as text and numeric columns are validated here, so a
  malformed file fails before any event is processed.

Benchmark files:
- Daily closes with a date column and a price column (``Date``/``Close`` by
  default, see ``config.BENCHMARK_DEFAULTS``).
"""

from __future__ import annotations

import errno
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd
from pandas.errors import EmptyDataError, ParserError

from portfolio_performance_engine import config
from portfolio_performance_engine._logging import engine_logger, log_errors, log_portfolio_operation
from portfolio_performance_engine.constants import (
    COLUMN_ACTION,
    COLUMN_AMOUNT,
    COLUMN_DATE,
    COLUMN_TOTAL_VALUE,
    COLUMN_TYPE,
    NUMERIC_COLUMNS,
    TRADE_COLUMNS,
)
from portfolio_performance_engine.events import classify_action
from portfolio_performance_engine.exceptions import DataFileError

PathLike = Union[str, Path]

# Each required column may be satisfied by one of its aliases.
_REQUIRED_COLUMN_ALIASES = {
    COLUMN_DATE: (COLUMN_DATE,),
    COLUMN_ACTION: (COLUMN_ACTION, COLUMN_TYPE),
    COLUMN_TOTAL_VALUE: (COLUMN_TOTAL_VALUE, COLUMN_AMOUNT),
}


# ── internals ──────────────────────────────────────────────────────────
def _read_text_csv(path: PathLike) -> pd.DataFrame:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path))
    try:
        frame = pd.read_csv(path, dtype=str, keep_default_na=False, encoding="utf-8-sig")
    except EmptyDataError as exc:
        raise DataFileError(f"File {path.name} is empty") from exc
    except (ParserError, UnicodeDecodeError) as exc:
        raise DataFileError(f"Parsing error in {path.name}: {exc}") from exc

    frame.columns = [str(col).strip() for col in frame.columns]
    frame = frame[~(frame == "").all(axis=1)]
    if frame.empty:
        raise DataFileError(f"File {path.name} is empty")
    return frame


def _check_columns(frame: pd.DataFrame, name: str) -> None:
    missing = [
        column
        for column, aliases in _REQUIRED_COLUMN_ALIASES.items()
        if not any(alias in frame.columns for alias in aliases)
    ]
    if missing:
        raise DataFileError(f"Missing required columns in {name}: {', '.join(missing)}")

    labels = frame[COLUMN_ACTION] if COLUMN_ACTION in frame.columns else frame[COLUMN_TYPE]
    has_trades = any(classify_action(label) not in ("deposit", "withdrawal") for label in labels)
    missing_trade = [column for column in TRADE_COLUMNS if column not in frame.columns]
    if has_trades and missing_trade:
        raise DataFileError(f"Missing required columns in {name}: {', '.join(missing_trade)}")


def _coerce_numeric(frame: pd.DataFrame, name: str) -> pd.DataFrame:
    """Convert numeric columns to floats; blanks become NaN.

    Row numbers in messages are file line numbers (the header is row 1).
    """
    out = frame.copy()
    for column in NUMERIC_COLUMNS:
        if column not in out.columns:
            continue
        text = out[column].str.strip()
        for position, value in enumerate(text):
            if value and any(ch.isspace() for ch in value):
                raise DataFileError(
                    f"Value '{value}' in column {column} at row {position + 2} of {name} contains spaces",
                    row=position + 2,
                    field=column,
                    value=value,
                )
        numbers = pd.to_numeric(text.where(text != ""), errors="coerce")
        invalid = (text != "") & numbers.isna()
        if invalid.any():
            position = int(invalid.to_numpy().argmax())
            value = text.iloc[position]
            raise DataFileError(
                f"Value '{value}' in column {column} at row {position + 2} of {name} is not a valid number",
                row=position + 2,
                field=column,
                value=value,
            )
        out[column] = numbers.astype(float)
    return out


def _records(frame: pd.DataFrame) -> List[Dict[str, Any]]:
    rows = []
    for record in frame.to_dict("records"):
        row = {}
        for key, value in record.items():
            if isinstance(value, str):
                value = value.strip() or None
            elif pd.isna(value):
                value = None
            row[key] = value
        rows.append(row)
    return rows


# ── public API ─────────────────────────────────────────────────────────
@log_errors("medium")
def load_transactions(path: PathLike) -> List[Dict[str, Any]]:
    """
    Load a transaction export into row dicts in file order (newest first).

    Numeric columns come back as floats, blank cells as None and everything
    else as stripped text. Raises ``DataFileError`` when the file cannot be
    parsed, has no data rows, lacks required columns, or holds a malformed
    number; ``FileNotFoundError`` when it does not exist.
    """
    frame = _read_text_csv(path)
    name = Path(path).name
    _check_columns(frame, name)
    frame = _coerce_numeric(frame, name)
    rows = _records(frame)
    log_portfolio_operation("transactions_loaded", {"file": str(path), "rows": len(rows)})
    return rows


@log_errors("medium")
def load_benchmark_prices(
    path: PathLike,
    date_column: Optional[str] = None,
    price_column: Optional[str] = None,
) -> pd.Series:
    """
    Load daily benchmark closes as a float ``pd.Series`` indexed by date.

    Rows with an unparseable date or a blank price are dropped with a
    warning; a malformed non-blank price raises ``DataFileError``.
    """
    date_column = date_column or config.BENCHMARK_DEFAULTS["date_column"]
    price_column = price_column or config.BENCHMARK_DEFAULTS["price_column"]
    frame = _read_text_csv(path)
    name = Path(path).name

    missing = [column for column in (date_column, price_column) if column not in frame.columns]
    if missing:
        raise DataFileError(f"Missing required columns in {name}: {', '.join(missing)}")

    prices_text = frame[price_column].str.strip()
    prices = pd.to_numeric(prices_text.where(prices_text != ""), errors="coerce")
    invalid = (prices_text != "") & prices.isna()
    if invalid.any():
        position = int(invalid.to_numpy().argmax())
        raise DataFileError(
            f"Value '{prices_text.iloc[position]}' in column {price_column} at row {position + 2} of {name} is not a valid number",
            row=position + 2,
            field=price_column,
            value=prices_text.iloc[position],
        )

    dates = pd.to_datetime(frame[date_column].str.strip(), errors="coerce")
    series = pd.Series(prices.to_numpy(dtype=float), index=dates, name=price_column)
    usable = series.index.notna() & series.notna().to_numpy()
    dropped = int((~usable).sum())
    series = series[usable]
    if dropped:
        engine_logger.warning("Dropped %d benchmark row(s) without a usable date or price in %s", dropped, name)
    if series.empty:
        raise DataFileError(f"File {name} has no usable benchmark prices")

    series.index = pd.DatetimeIndex(series.index).normalize()
    series.index.name = date_column
    series = series[~series.index.duplicated(keep="last")].sort_index()
    log_portfolio_operation("benchmark_loaded", {"file": str(path), "rows": len(series)})
    return series

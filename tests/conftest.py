"""
Pytest configuration and shared fixtures for the performance engine tests.

Row builders produce mappings shaped like a broker export row. Tests list
rows chronologically and pass them through ``newest_first`` because exports
(and ``PortfolioEngine``) are newest-first.
"""
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest


def pytest_configure():
    """Make the flat-layout package importable without an editable install."""
    root = Path(__file__).resolve().parents[1]
    if str(root) not in sys.path:
        sys.path.insert(0, str(root))


# =============================================================================
# Row Builders
# =============================================================================

def deposit(day: str, amount: float, label: str = "Deposit") -> Dict[str, Any]:
    return {"Date": day, "Action": label, "Stock": None, "Quantity": None, "Price": None, "Total_Value": amount}


def withdrawal(day: str, amount: float, label: str = "Withdrawal") -> Dict[str, Any]:
    return {"Date": day, "Action": label, "Stock": None, "Quantity": None, "Price": None, "Total_Value": amount}


def buy(day: str, stock: str, qty: float, price: float, total: Optional[float] = None, label: str = "Köp") -> Dict[str, Any]:
    total = -(qty * price) if total is None else total
    return {"Date": day, "Action": label, "Stock": stock, "Quantity": qty, "Price": price, "Total_Value": total}


def sell(day: str, stock: str, qty: float, price: float, total: Optional[float] = None, label: str = "Sälj") -> Dict[str, Any]:
    """``qty`` is the positive number of shares sold."""
    total = qty * price if total is None else total
    return {"Date": day, "Action": label, "Stock": stock, "Quantity": -qty, "Price": price, "Total_Value": total}


def newest_first(*rows: Dict[str, Any]) -> List[Dict[str, Any]]:
    return list(reversed(rows))


# =============================================================================
# Sample Data Fixtures
# =============================================================================

@pytest.fixture
def round_trip_rows() -> List[Dict[str, Any]]:
    """Deposit 1000, buy 10 ABC @ 50, sell 5 ABC @ 60 on consecutive days."""
    return newest_first(
        deposit("2024-01-01", 1000),
        buy("2024-01-02", "ABC", 10, 50),
        sell("2024-01-03", "ABC", 5, 60),
    )


@pytest.fixture
def fee_rows() -> List[Dict[str, Any]]:
    """A buy whose total exceeds price x quantity by 1.49 of fees."""
    return newest_first(
        deposit("2024-01-01", 992.59),
        buy("2024-01-02", "XYZ", 11, 90.10, total=-992.59),
    )


@pytest.fixture
def unfunded_rows() -> List[Dict[str, Any]]:
    """Trades with no deposits at all; only capital inference can fund them."""
    return newest_first(
        buy("2024-01-02", "ABC", 10, 50),
        buy("2024-03-01", "ABC", 10, 55),
        sell("2024-06-03", "ABC", 5, 70),
    )


@pytest.fixture
def write_csv(tmp_path):
    """Write ``text`` to a CSV under ``tmp_path`` and return its path."""

    def _write(name: str, text: str) -> Path:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def transactions_csv(write_csv) -> Path:
    return write_csv(
        "transactions.csv",
        "Date,Account,Action,Stock,Quantity,Price,Total_Value\n"
        "2024-01-02,123,Sälj,ABC,-5,60,300\n"
        "2023-01-03,123,Köp,ABC,10,50,-500\n"
        "2023-01-02,123,Deposit,,,,1000\n",
    )


@pytest.fixture
def benchmark_csv(write_csv) -> Path:
    return write_csv(
        "omxs30.csv",
        "Date,Close\n"
        "2023-01-02,100\n"
        "2023-01-03,101\n"
        "2023-06-30,102\n"
        "2024-01-02,105\n",
    )

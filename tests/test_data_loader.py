from __future__ import annotations

from datetime import date

import pytest

from portfolio_performance_engine.data_loader import load_benchmark_prices, load_transactions
from portfolio_performance_engine.exceptions import DataFileError

HEADER = "Date,Account,Action,Stock,Quantity,Price,Total_Value\n"


def test_valid_file_loads_rows_in_file_order(transactions_csv):
    rows = load_transactions(transactions_csv)
    assert len(rows) == 3
    assert rows[0]["Action"] == "Sälj"
    assert rows[0]["Quantity"] == -5.0
    assert rows[2]["Action"] == "Deposit"
    assert rows[2]["Total_Value"] == 1000.0
    assert rows[2]["Stock"] is None


def test_cashflow_only_file_needs_no_trade_columns(write_csv):
    path = write_csv("cashflows.csv", "Date,Type,Amount\n2024-01-01,Deposit,1000\n2024-02-01,Withdrawal,200\n")
    rows = load_transactions(path)
    assert [row["Type"] for row in rows] == ["Deposit", "Withdrawal"]


def test_empty_file_is_rejected(write_csv):
    with pytest.raises(DataFileError, match="empty"):
        load_transactions(write_csv("empty.csv", HEADER))
    with pytest.raises(DataFileError, match="empty"):
        load_transactions(write_csv("blank.csv", ""))


def test_missing_required_columns(write_csv):
    path = write_csv("missing.csv", "Date,Action\n2024-01-01,Deposit\n")
    with pytest.raises(DataFileError, match="Missing required columns") as excinfo:
        load_transactions(path)
    assert "Total_Value" in str(excinfo.value)


def test_trade_rows_need_trade_columns(write_csv):
    path = write_csv("trades.csv", "Date,Action,Total_Value\n2024-01-02,Köp,-500\n")
    with pytest.raises(DataFileError, match="Missing required columns.*Stock"):
        load_transactions(path)


def test_numeric_value_with_spaces_reports_row(write_csv):
    path = write_csv("spaces.csv", HEADER + '2024-01-01,123,Deposit,,,,"1 893.94"\n')
    with pytest.raises(DataFileError) as excinfo:
        load_transactions(path)
    assert "contains spaces" in str(excinfo.value)
    assert "row 2" in str(excinfo.value)
    assert excinfo.value.row == 2


def test_invalid_number_reports_column(write_csv):
    path = write_csv("nan.csv", HEADER + "2024-01-01,123,Köp,ABC,10,invalid,-500\n")
    with pytest.raises(DataFileError) as excinfo:
        load_transactions(path)
    assert "not a valid number" in str(excinfo.value)
    assert "Price" in str(excinfo.value)


def test_unparseable_csv_is_a_data_file_error(write_csv):
    path = write_csv("broken.csv", HEADER + '2024-01-01,123,Deposit,,,,"1000\n')
    with pytest.raises(DataFileError, match="Parsing error"):
        load_transactions(path)


def test_missing_file_raises_file_not_found(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_transactions(tmp_path / "nope.csv")


def test_benchmark_prices_load_as_sorted_series(write_csv):
    path = write_csv("idx.csv", "Date,Close\n2024-01-03,105\n2024-01-01,100\n2024-01-02,\nbad,1\n")
    series = load_benchmark_prices(path)
    assert list(series.index.date) == [date(2024, 1, 1), date(2024, 1, 3)]
    assert list(series) == [100.0, 105.0]


def test_benchmark_custom_columns(write_csv):
    path = write_csv("idx.csv", "Datum,Stängning\n2024-01-01,100\n")
    series = load_benchmark_prices(path, date_column="Datum", price_column="Stängning")
    assert series.iloc[0] == 100.0


def test_benchmark_missing_price_column(write_csv):
    path = write_csv("idx.csv", "Date,Open\n2024-01-01,100\n")
    with pytest.raises(DataFileError, match="Close"):
        load_benchmark_prices(path)

from __future__ import annotations

from datetime import date, datetime

import pytest

from conftest import buy, deposit, sell, withdrawal
from portfolio_performance_engine.events import (
    CashflowEvent,
    TradeEvent,
    classify_action,
    normalize_transaction,
    normalize_transactions,
    parse_date,
)
from portfolio_performance_engine.exceptions import InvalidDateError, SchemaError


@pytest.mark.parametrize(
    "label,expected",
    [
        ("Deposit", "deposit"),
        ("  insättning ", "deposit"),
        ("UTTAG", "withdrawal"),
        ("Köp", "buy"),
        ("sälj", "sell"),
        ("Utdelning", "trade"),
    ],
)
def test_classify_action(label, expected):
    assert classify_action(label) == expected


def test_deposit_takes_positive_polarity_regardless_of_raw_sign():
    event = normalize_transaction(deposit("2024-01-01", -1000))
    assert isinstance(event, CashflowEvent)
    assert event.direction == "Deposit"
    assert event.amount == 1000
    assert event.date == date(2024, 1, 1)


def test_withdrawal_is_negative():
    event = normalize_transaction(withdrawal("2024-02-01", 200))
    assert event.direction == "Withdrawal"
    assert event.amount == -200


def test_cashflow_export_layout_uses_type_and_amount():
    event = normalize_transaction({"Date": "2024-01-05", "Type": "Insättning", "Amount": 250.0})
    assert isinstance(event, CashflowEvent)
    assert event.amount == 250.0


def test_trade_row_is_kept_verbatim():
    event = normalize_transaction(buy("2024-01-02", "ABC", 10, 50, total=-501))
    assert isinstance(event, TradeEvent)
    assert event.is_buy and event.kind == "buy"
    assert (event.instrument, event.quantity, event.unit_price, event.total_value) == ("ABC", 10, 50, -501)

    sold = normalize_transaction(sell("2024-01-03", "ABC", 5, 60))
    assert sold.is_sell and sold.quantity == -5 and sold.total_value == 300


def test_unlabelled_trade_is_classified_by_quantity_sign():
    event = normalize_transaction(buy("2024-01-02", "ABC", 3, 10, label="Byte"))
    assert event.kind == "buy"


@pytest.mark.parametrize(
    "row,field",
    [
        (buy("2024-01-02", "ABC", 10, 50, total=500), "Total_Value"),
        (sell("2024-01-02", "ABC", 10, 50, total=-500), "Total_Value"),
        (buy("2024-01-02", "ABC", 10, 0, total=-1), "Price"),
        ({**buy("2024-01-02", "ABC", 10, 50), "Quantity": 0}, "Quantity"),
        ({**buy("2024-01-02", "ABC", 10, 50), "Action": "Sälj"}, "Quantity"),
        ({**buy("2024-01-02", "ABC", 10, 50), "Stock": None}, "Stock"),
        ({**buy("2024-01-02", "ABC", 10, 50), "Price": "abc"}, "Price"),
    ],
)
def test_malformed_trade_rows_raise_schema_error(row, field):
    with pytest.raises(SchemaError) as excinfo:
        normalize_transaction(row, index=4)
    assert excinfo.value.field == field
    assert excinfo.value.row == 4


def test_non_numeric_value_message_names_the_column():
    with pytest.raises(SchemaError, match="not a valid number"):
        normalize_transaction({**buy("2024-01-02", "ABC", 10, 50), "Price": "invalid"})


@pytest.mark.parametrize(
    "value", ["not-a-date", "", None, "2024-13-45", "now", "today", " Today ", 20240101, 1.5e18]
)
def test_invalid_dates_raise(value):
    with pytest.raises(InvalidDateError):
        parse_date(value)


@pytest.mark.parametrize(
    "value", ["2024-01-02", " 2024-01-02 ", "2024-01-02T15:30:00", date(2024, 1, 2), datetime(2024, 1, 2, 9)]
)
def test_iso_dates_parse(value):
    assert parse_date(value) == date(2024, 1, 2)


def test_schema_errors_are_value_errors():
    with pytest.raises(ValueError):
        normalize_transaction(deposit("2024-01-01", "junk"))


def test_normalize_transactions_reverses_to_chronological_order():
    rows = [
        sell("2024-01-03", "ABC", 5, 60),
        buy("2024-01-02", "ABC", 10, 50),
        deposit("2024-01-01", 1000),
    ]
    events = normalize_transactions(rows)
    assert [e.date for e in events] == [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)]
    assert [e.source_index for e in events] == [0, 1, 2]


def test_first_bad_row_aborts_the_batch():
    rows = [buy("2024-01-02", "ABC", 10, 50), deposit("bad-date", 1000)]
    with pytest.raises(InvalidDateError):
        normalize_transactions(rows)

"""
Core Constants Module

Action labels, event kinds and numeric constants shared by the engine.
"""

# Action Labels
# =============
# Broker exports use English or Swedish labels. Matching is case-insensitive
# on the stripped label.

DEPOSIT_ACTIONS = {
    'deposit',
    'insättning',
}

WITHDRAWAL_ACTIONS = {
    'withdrawal',
    'uttag',
}

BUY_ACTIONS = {
    'buy',
    'köp',
}

SELL_ACTIONS = {
    'sell',
    'sälj',
}

# Event Kinds
# ===========

CASHFLOW_DEPOSIT = 'Deposit'
CASHFLOW_WITHDRAWAL = 'Withdrawal'

# Same-day ordering used by the flat-sort scheduling policy
EVENT_SORT_RANK = {
    'cashflow': 0,
    'buy': 1,
    'sell': 2,
}

# Input Columns
# =============

COLUMN_DATE = 'Date'
COLUMN_ACTION = 'Action'
COLUMN_TYPE = 'Type'
COLUMN_STOCK = 'Stock'
COLUMN_QUANTITY = 'Quantity'
COLUMN_PRICE = 'Price'
COLUMN_TOTAL_VALUE = 'Total_Value'
COLUMN_AMOUNT = 'Amount'

TRADE_COLUMNS = [COLUMN_STOCK, COLUMN_QUANTITY, COLUMN_PRICE]
NUMERIC_COLUMNS = [COLUMN_QUANTITY, COLUMN_PRICE, COLUMN_TOTAL_VALUE, COLUMN_AMOUNT]

# Numeric Constants
# =================

DAYS_PER_YEAR = 365.25

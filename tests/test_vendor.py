from __future__ import annotations

from datetime import date, datetime

import numpy as np
import pandas as pd

from portfolio_performance_engine._vendor import make_json_safe
from portfolio_performance_engine.ledger import CapitalFlow


def test_dates_and_numpy_scalars():
    out = make_json_safe(
        {
            date(2024, 1, 2): np.float64(1.5),
            "ts": pd.Timestamp("2024-01-03"),
            "dt": datetime(2024, 1, 3, 12, 30),
            "n": np.int64(3),
            "flag": np.bool_(True),
            "bad": float("nan"),
            "arr": np.array([1, 2]),
        }
    )
    assert out == {
        "2024-01-02": 1.5,
        "ts": "2024-01-03",
        "dt": "2024-01-03T12:30:00",
        "n": 3,
        "flag": True,
        "bad": None,
        "arr": [1, 2],
    }


def test_dataclasses_become_dicts():
    out = make_json_safe([CapitalFlow(date(2024, 1, 1), -1000.0, 0.0)])
    assert out == [{"date": "2024-01-01", "amount": -1000.0, "portfolio_value_before": 0.0, "inferred": False}]

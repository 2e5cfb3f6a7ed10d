"""Standalone-safe configuration surface for portfolio_performance_engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from dotenv import load_dotenv

# Explicit process env wins over values from a local ".env".
load_dotenv(override=False)


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


# Policy vocabularies
CAPITAL_MODES = ("explicit", "inferred")
NAV_MARKS = ("purchase_price", "average_cost", "last_trade")
FEE_POLICIES = ("expense", "capitalize")
SCHEDULING_POLICIES = ("day_bucket", "flat_sort")

# Mark used when PERF_NAV_MARK is unset, keyed by capital mode.
DEFAULT_NAV_MARK_BY_MODE = {
    "explicit": "purchase_price",
    "inferred": "last_trade",
}

ENGINE_DEFAULTS: Dict[str, Any] = {
    "capital_mode": os.getenv("PERF_CAPITAL_MODE", "explicit").lower(),
    "nav_mark": (os.getenv("PERF_NAV_MARK") or "").lower() or None,
    "fee_policy": os.getenv("PERF_FEE_POLICY", "expense").lower(),
    "scheduling": os.getenv("PERF_SCHEDULING", "day_bucket").lower(),
}

SOLVER_DEFAULTS: Dict[str, Any] = {
    "max_iterations": _env_int("PERF_XIRR_MAX_ITERATIONS", 100),
    "tolerance": _env_float("PERF_XIRR_TOLERANCE", 0.01),
    "delta": _env_float("PERF_XIRR_DELTA", 1e-4),
    "min_derivative": _env_float("PERF_XIRR_MIN_DERIVATIVE", 1e-10),
    "min_rate": -0.99,
    "max_rate": 100.0,
    "guess_floor": -0.9,
    "guess_cap": 10.0,
    "positive_fallback_guess": 0.1,
    "negative_fallback_guess": -0.5,
}

BENCHMARK_DEFAULTS: Dict[str, Any] = {
    "date_column": os.getenv("PERF_BENCHMARK_DATE_COLUMN", "Date"),
    "price_column": os.getenv("PERF_BENCHMARK_PRICE_COLUMN", "Close"),
    "name": os.getenv("PERF_BENCHMARK_NAME", "OMXS30"),
}

FLAG_THRESHOLDS: Dict[str, Any] = {
    "alpha_warning_pct": _env_float("PERF_FLAG_ALPHA_WARNING_PCT", -5.0),
    "fee_drag_warning_pct": _env_float("PERF_FLAG_FEE_DRAG_WARNING_PCT", 1.0),
}

POSITION_EPSILON = _env_float("PERF_POSITION_EPSILON", 1e-4)
LOG_LEVEL = os.getenv("PERF_LOG_LEVEL", "WARNING").upper()


def configure(**overrides: Any) -> None:
    """Programmatically override package configuration values."""
    globals_dict = globals()
    for key, value in overrides.items():
        if key not in globals_dict or key.startswith("_"):
            raise KeyError(f"Unknown config key: {key}")
        globals_dict[key] = value


def _check_choice(name: str, value: str, allowed: tuple) -> str:
    if value not in allowed:
        raise ValueError(f"Invalid {name} '{value}'; expected one of: {', '.join(allowed)}")
    return value


@dataclass(frozen=True)
class EnginePolicy:
    """The accounting policy set active for one engine run.

    Only one policy set is active per run; NAV and returns differ materially
    between them, so results must always be read together with the policy.

    - ``capital_mode``: ``explicit`` takes capital flows from Deposit/Withdrawal
      rows only; ``inferred`` also injects capital when a buy cannot be funded.
    - ``nav_mark``: price used to value open positions.
    - ``fee_policy``: ``expense`` books fees as immediate realized losses;
      ``capitalize`` folds buy fees into the average cost.
    - ``scheduling``: ``day_bucket`` settles each date atomically;
      ``flat_sort`` orders same-day events cashflow, buy, sell.
    """

    capital_mode: str = "explicit"
    nav_mark: str = "purchase_price"
    fee_policy: str = "expense"
    scheduling: str = "day_bucket"

    def __post_init__(self):
        _check_choice("capital_mode", self.capital_mode, CAPITAL_MODES)
        _check_choice("nav_mark", self.nav_mark, NAV_MARKS)
        _check_choice("fee_policy", self.fee_policy, FEE_POLICIES)
        _check_choice("scheduling", self.scheduling, SCHEDULING_POLICIES)

    @property
    def infers_capital(self) -> bool:
        return self.capital_mode == "inferred"

    @classmethod
    def from_config(cls, **overrides: Optional[str]) -> "EnginePolicy":
        """Build a policy from ENGINE_DEFAULTS, with non-None overrides applied."""
        values = dict(ENGINE_DEFAULTS)
        values.update({k: v.lower() for k, v in overrides.items() if v is not None})
        unknown = set(values) - {"capital_mode", "nav_mark", "fee_policy", "scheduling"}
        if unknown:
            raise KeyError(f"Unknown policy key(s): {', '.join(sorted(unknown))}")
        if not values.get("nav_mark"):
            values["nav_mark"] = DEFAULT_NAV_MARK_BY_MODE.get(values["capital_mode"], "purchase_price")
        return cls(**values)

    def to_dict(self) -> Dict[str, str]:
        return {
            "capital_mode": self.capital_mode,
            "nav_mark": self.nav_mark,
            "fee_policy": self.fee_policy,
            "scheduling": self.scheduling,
        }

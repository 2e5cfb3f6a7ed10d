"""Interpretive flags for a performance snapshot."""

from __future__ import annotations

import math
from typing import Any, Dict, List, Optional

from portfolio_performance_engine import config


def _to_float(value: Any) -> Optional[float]:
    """Convert to finite float; return None for missing/invalid values."""
    if value is None:
        return None
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(numeric):
        return None
    return numeric


def generate_performance_flags(snapshot: dict) -> List[Dict[str, Any]]:
    """Generate actionable flags from a ``PerformanceResult`` snapshot.

    Expected shape: ``{"returns": {...}, "benchmark": {...}, "costs": {...},
    "data_quality": {...}}``; any section may be missing.
    """
    flags: List[Dict[str, Any]] = []
    if not isinstance(snapshot, dict):
        return flags
    returns = snapshot.get("returns") or {}
    benchmark = snapshot.get("benchmark") or {}
    costs = snapshot.get("costs") or {}
    data_quality = snapshot.get("data_quality") or {}
    thresholds = config.FLAG_THRESHOLDS

    total_return = _to_float(returns.get("total_return_pct"))
    alpha_annual = _to_float(benchmark.get("alpha_annual_pct"))
    fees = _to_float(costs.get("total_transaction_costs"))
    capital_in = _to_float(costs.get("total_capital_in"))

    if total_return is not None and total_return < 0:
        flags.append(
            {
                "type": "negative_total_return",
                "severity": "warning",
                "message": f"Portfolio is down {abs(total_return):.1f}% total",
                "total_return_pct": round(total_return, 2),
            }
        )

    if alpha_annual is not None and alpha_annual < thresholds["alpha_warning_pct"]:
        flags.append(
            {
                "type": "benchmark_underperformance",
                "severity": "warning",
                "message": f"Underperforming {benchmark.get('name', 'benchmark')} by {abs(alpha_annual):.1f}% annually",
                "alpha_annual_pct": round(alpha_annual, 2),
            }
        )

    if returns and returns.get("xirr_converged") is False:
        flags.append(
            {
                "type": "xirr_not_converged",
                "severity": "info",
                "message": "Money-weighted return (XIRR) did not converge; CAGR shown as 0%",
            }
        )

    if fees is not None and capital_in and capital_in > 0:
        fee_drag = fees / capital_in * 100
        if fee_drag > thresholds["fee_drag_warning_pct"]:
            flags.append(
                {
                    "type": "high_fee_drag",
                    "severity": "warning",
                    "message": f"Transaction costs are {fee_drag:.2f}% of contributed capital",
                    "fee_drag_pct": round(fee_drag, 3),
                }
            )

    unmatched = int(data_quality.get("unmatched_sells") or 0)
    if unmatched > 0:
        flags.append(
            {
                "type": "unmatched_sells",
                "severity": "warning",
                "message": f"{unmatched} sell(s) without an open position were booked at zero cost basis",
                "unmatched_sells": unmatched,
            }
        )

    inferred = int(data_quality.get("inferred_injections") or 0)
    if inferred > 0:
        flags.append(
            {
                "type": "inferred_capital",
                "severity": "info",
                "message": f"{inferred} capital injection(s) inferred from unfunded buys",
                "inferred_injections": inferred,
            }
        )

    if total_return is not None and total_return > 0 and alpha_annual is not None and alpha_annual > 0:
        flags.append(
            {
                "type": "outperforming",
                "severity": "success",
                "message": f"Beating {benchmark.get('name', 'benchmark')} by {alpha_annual:.1f}% annualized",
                "alpha_annual_pct": round(alpha_annual, 2),
            }
        )

    severity_order = {"error": 0, "warning": 1, "info": 2, "success": 3}
    flags.sort(key=lambda flag: severity_order.get(flag.get("severity"), 9))
    return flags

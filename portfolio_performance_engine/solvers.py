"""Return solvers: simple return, XIRR, chained TWR and annualization.

Conventions:
- Rates returned to callers are percentages (``3.0`` means 3%).
- Cashflows for XIRR use the investor's perspective: contributions are
  negative, withdrawals and the terminal portfolio value are positive.
- Year fractions are ``days / 365.25`` measured from the earliest flow.
"""

from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from portfolio_performance_engine import config
from portfolio_performance_engine._logging import engine_logger
from portfolio_performance_engine.constants import DAYS_PER_YEAR
from portfolio_performance_engine.exceptions import SolverNonConvergence
from portfolio_performance_engine.ledger import CapitalFlow
from portfolio_performance_engine.valuation import HistoryEntry


@dataclass(frozen=True)
class XirrResult:
    """Outcome of the Newton-Raphson XIRR solve.

    ``rate_pct`` is None when the solver diverged (NaN) or landed outside the
    sanity bounds; ``converged`` is True only when ``|NPV|`` fell under the
    tolerance. Callers decide whether 0% is an acceptable display default.
    """

    rate_pct: Optional[float]
    converged: bool
    iterations: int
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.rate_pct is not None

    def value_or(self, default: float = 0.0) -> float:
        return self.rate_pct if self.rate_pct is not None else default

    def unwrap(self) -> float:
        if self.rate_pct is None:
            raise SolverNonConvergence(
                f"XIRR did not produce a usable rate ({self.reason})",
                iterations=self.iterations,
                reason=self.reason,
            )
        return self.rate_pct


@dataclass(frozen=True)
class TWRPoint:
    date: date
    twr: float


def simple_return(last_value: float, capital_in: float) -> float:
    """Percent gain of ``last_value`` over contributed capital; 0 without capital."""
    if capital_in <= 0:
        return 0.0
    return (last_value - capital_in) / capital_in * 100


def _year_fractions(dates: Sequence[date]) -> np.ndarray:
    start = min(dates)
    return np.array([(d - start).days for d in dates], dtype=float) / DAYS_PER_YEAR


def _initial_guess(amounts: np.ndarray, years: np.ndarray) -> float:
    """Seed Newton-Raphson from the simple annualized return, clamped."""
    sd = config.SOLVER_DEFAULTS
    invested = -amounts[amounts < 0].sum()
    returned = amounts[amounts > 0].sum()
    simple = returned / invested - 1.0 if invested > 0 else 0.0
    span = float(years.max()) if len(years) else 0.0

    guess = float("nan")
    if span > 0 and 1.0 + simple > 0:
        guess = (1.0 + simple) ** (1.0 / span) - 1.0
    if not math.isfinite(guess):
        return sd["positive_fallback_guess"] if simple >= 0 else sd["negative_fallback_guess"]
    return min(max(guess, sd["guess_floor"]), sd["guess_cap"])


def xirr(
    flows: Sequence[Tuple[date, float]],
    *,
    max_iterations: Optional[int] = None,
    tolerance: Optional[float] = None,
) -> XirrResult:
    """Solve ``sum(f_i / (1 + r) ** t_i) = 0`` for ``r`` via Newton-Raphson.

    The derivative is a forward difference with step ``delta``. Iteration stops
    when ``|NPV| < tolerance`` or the derivative is flatter than
    ``min_derivative``. NaN results and rates outside ``[min_rate, max_rate]``
    are rejected; that bound is a guard against divergence, not a statement
    about plausible returns.
    """
    sd = config.SOLVER_DEFAULTS
    max_iterations = max_iterations or sd["max_iterations"]
    tolerance = tolerance if tolerance is not None else sd["tolerance"]
    delta = sd["delta"]

    if len(flows) < 2:
        return XirrResult(None, False, 0, "insufficient_flows")

    amounts = np.array([float(amount) for _, amount in flows], dtype=float)
    if not (amounts < 0).any() or not (amounts > 0).any():
        return XirrResult(None, False, 0, "no_sign_change")

    years = _year_fractions([d for d, _ in flows])

    def npv(rate: float) -> float:
        with np.errstate(all="ignore"):
            return float(np.sum(amounts / np.power(1.0 + rate, years)))

    rate = _initial_guess(amounts, years)
    converged = False
    reason = "max_iterations"
    iterations = 0

    for iterations in range(1, max_iterations + 1):
        y = npv(rate)
        if not math.isfinite(y):
            reason = "diverged"
            break
        if abs(y) < tolerance:
            converged = True
            reason = "tolerance"
            break

        dy = (npv(rate + delta) - y) / delta
        if not math.isfinite(dy) or abs(dy) < sd["min_derivative"]:
            reason = "flat_derivative"
            break

        next_rate = rate - y / dy
        if next_rate <= -1.0:
            # (1 + r) must stay positive; move halfway toward -100% instead.
            next_rate = (rate - 1.0) / 2.0
        rate = next_rate

    if not math.isfinite(rate) or reason == "diverged":
        engine_logger.warning("XIRR diverged after %d iteration(s)", iterations)
        return XirrResult(None, False, iterations, "diverged")
    if rate < sd["min_rate"] or rate > sd["max_rate"]:
        engine_logger.warning("XIRR rate %.4f outside sanity bounds after %d iteration(s)", rate, iterations)
        return XirrResult(None, False, iterations, "out_of_bounds")
    if not converged:
        engine_logger.info("XIRR stopped without reaching tolerance (%s); rate=%.6f", reason, rate)
    return XirrResult(rate * 100, converged, iterations, reason)


def build_xirr_flows(
    capital_flows: Iterable[CapitalFlow],
    final_value: float,
    final_date: date,
    *,
    fallback_outflows: Iterable[Tuple[date, float]] = (),
) -> List[Tuple[date, float]]:
    """Capital flows plus a terminal ``+final_value`` flow.

    Without any capital flow, ``fallback_outflows`` (usually every buy, as
    money out) stand in for contributions.
    """
    flows = [(flow.date, flow.amount) for flow in capital_flows]
    if not flows:
        flows = [(d, -abs(amount)) for d, amount in fallback_outflows]
    flows.append((final_date, final_value))
    return flows


def chain_twr(observations: Iterable[Tuple[date, float, Optional[float]]]) -> List[TWRPoint]:
    """Chain sub-period returns over ``(date, value, value_before_flow)`` rows.

    ``value_before_flow`` is set on dates with an external capital flow. Such a
    date closes the running sub-period at the pre-flow value and opens a new
    one at the post-flow ``value``. Other dates close and reopen at ``value``.
    TWR stays 0 until the first flow.
    """
    points: List[TWRPoint] = []
    cumulative = 1.0
    period_start: Optional[float] = None

    for day, value, value_before_flow in observations:
        if value_before_flow is not None:
            if period_start is None:
                cumulative = 1.0
            elif period_start > 0:
                cumulative *= 1.0 + (value_before_flow - period_start) / period_start
            period_start = value
        elif period_start is not None:
            if period_start > 0:
                cumulative *= 1.0 + (value - period_start) / period_start
            period_start = value
        points.append(TWRPoint(date=day, twr=(cumulative - 1.0) * 100))

    return points


def time_weighted_returns(history: Sequence[HistoryEntry], capital_flows: Iterable[CapitalFlow]) -> List[TWRPoint]:
    """TWR series with one point per history entry.

    On a date with several flows the first flow's pre-flow value closes the
    sub-period.
    """
    first_flow_by_date: Dict[date, CapitalFlow] = {}
    for flow in capital_flows:
        first_flow_by_date.setdefault(flow.date, flow)

    observations = []
    for entry in history:
        flow = first_flow_by_date.get(entry.date)
        observations.append(
            (entry.date, entry.portfolio_value, flow.portfolio_value_before if flow is not None else None)
        )
    return chain_twr(observations)


def annualize_twr(final_twr: float, start: date, end: date) -> float:
    """``((1 + twr) ** (365.25 / days) - 1) * 100``; 0 when no time elapsed."""
    days = (end - start).days
    if days <= 0:
        return 0.0
    base = 1.0 + final_twr / 100
    if base <= 0:
        return -100.0
    return (base ** (DAYS_PER_YEAR / days) - 1.0) * 100


def annualized_twr_from_series(twr_history: Sequence[TWRPoint]) -> float:
    if not twr_history:
        return 0.0
    return annualize_twr(twr_history[-1].twr, twr_history[0].date, twr_history[-1].date)


def net_flow_by_date(capital_flows: Iterable[CapitalFlow]) -> Dict[date, float]:
    """Net money into the portfolio per date (positive = contribution)."""
    totals: Dict[date, float] = defaultdict(float)
    for flow in capital_flows:
        totals[flow.date] += -flow.amount
    return dict(totals)

from __future__ import annotations

from datetime import date

import pytest

from portfolio_performance_engine.exceptions import SolverNonConvergence
from portfolio_performance_engine.ledger import CapitalFlow
from portfolio_performance_engine.solvers import (
    annualize_twr,
    build_xirr_flows,
    chain_twr,
    net_flow_by_date,
    simple_return,
    time_weighted_returns,
    xirr,
)
from portfolio_performance_engine.valuation import HistoryEntry

D1, D2, D3, D4 = date(2024, 1, 1), date(2024, 2, 1), date(2024, 3, 1), date(2024, 4, 1)


def test_simple_return():
    assert simple_return(1050, 1000) == pytest.approx(5.0)
    assert simple_return(500, 0) == 0.0


def test_xirr_one_year_three_percent():
    result = xirr([(date(2023, 1, 1), -1000.0), (date(2024, 1, 1), 1030.0)])
    assert result.converged
    assert result.rate_pct == pytest.approx(3.0, abs=1.0)
    assert result.unwrap() == result.rate_pct


def test_xirr_multiple_contributions():
    flows = [
        (date(2022, 1, 1), -1000.0),
        (date(2022, 7, 1), -1000.0),
        (date(2023, 1, 1), 2150.0),
    ]
    result = xirr(flows)
    assert result.converged
    assert 5.0 < result.rate_pct < 15.0


def test_xirr_losing_portfolio_is_negative():
    result = xirr([(date(2023, 1, 1), -1000.0), (date(2024, 1, 1), 800.0)])
    assert result.ok
    assert result.rate_pct == pytest.approx(-20.0, abs=1.0)


@pytest.mark.parametrize(
    "flows,reason",
    [
        ([(D1, -1000.0)], "insufficient_flows"),
        ([(D1, -1000.0), (D2, -10.0)], "no_sign_change"),
        ([(D1, 1000.0), (D2, 10.0)], "no_sign_change"),
    ],
)
def test_xirr_reports_why_no_rate_exists(flows, reason):
    result = xirr(flows)
    assert not result.ok and not result.converged
    assert result.reason == reason
    assert result.value_or(0.0) == 0.0
    with pytest.raises(SolverNonConvergence):
        result.unwrap()


def test_build_xirr_flows_appends_terminal_value():
    flows = build_xirr_flows([CapitalFlow(D1, -1000.0, 0.0)], 1100.0, D3)
    assert flows == [(D1, -1000.0), (D3, 1100.0)]


def test_build_xirr_flows_falls_back_to_buys():
    flows = build_xirr_flows([], 600.0, D3, fallback_outflows=[(D1, -500.0)])
    assert flows == [(D1, -500.0), (D3, 600.0)]


def _observations(scale: float = 1.0):
    return [
        (D1, 1000.0 * scale, 0.0),
        (D2, 1100.0 * scale, None),
        (D3, 1600.0 * scale, 1100.0 * scale),
        (D4, 1760.0 * scale, None),
    ]


def test_chain_twr_neutralizes_capital_flows():
    points = chain_twr(_observations())
    assert [round(p.twr, 6) for p in points] == [0.0, 10.0, 10.0, 21.0]


def test_twr_is_invariant_to_scaling_amounts():
    base = [p.twr for p in chain_twr(_observations())]
    scaled = [p.twr for p in chain_twr(_observations(scale=7.5))]
    assert scaled == pytest.approx(base)


def test_twr_is_zero_before_first_flow():
    points = chain_twr([(D1, 100.0, None), (D2, 150.0, None), (D3, 150.0, 0.0)])
    assert [p.twr for p in points] == [0.0, 0.0, 0.0]


def test_time_weighted_returns_uses_first_flow_on_a_date():
    history = [
        HistoryEntry(D1, 1000.0, 0.0, 1000.0, 1000.0, 0.0),
        HistoryEntry(D2, 600.0, 1000.0, 1600.0, 1500.0, 0.0),
    ]
    flows = [
        CapitalFlow(D1, -1000.0, 0.0),
        CapitalFlow(D2, -300.0, 1100.0),
        CapitalFlow(D2, -200.0, 1400.0),
    ]
    points = time_weighted_returns(history, flows)
    assert points[-1].twr == pytest.approx(10.0)


def test_annualize_twr():
    assert annualize_twr(10.0, date(2023, 1, 1), date(2024, 1, 1)) == pytest.approx(10.0, abs=0.01)
    assert annualize_twr(21.0, date(2022, 1, 1), date(2024, 1, 1)) == pytest.approx(10.0, abs=0.05)
    assert annualize_twr(5.0, D1, D1) == 0.0
    assert annualize_twr(-100.0, D1, D2) == -100.0


def test_net_flow_by_date_sums_contributions():
    flows = [CapitalFlow(D1, -1000.0, 0.0), CapitalFlow(D1, 200.0, 1000.0), CapitalFlow(D2, -50.0, 800.0)]
    assert net_flow_by_date(flows) == {D1: 800.0, D2: 50.0}

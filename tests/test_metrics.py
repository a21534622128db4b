"""Unit tests for analytics.metrics."""

import json
import math

import numpy as np
import pandas as pd
import pytest

from trailguard.analytics.metrics import (
    RunReport,
    annualized_return,
    compute_report,
    max_drawdown,
    period_returns,
    profit_factor,
    reality_check,
    sharpe_ratio,
    win_rate,
)
from trailguard.core.types import Direction, EquityPoint, ExitReason, Regime, Trade

T0 = pd.Timestamp("2024-01-01")


def trade(pnl, reason=ExitReason.INITIAL_STOP, regime=Regime.RANGE, funding=0.0, slippage=0.0, max_atr=0.0):
    return Trade(
        entry_time=T0, exit_time=T0, direction=Direction.LONG, entry_price=100.0, exit_price=100.0,
        quantity=1.0, pnl=pnl, return_pct=pnl / 100.0, exit_reason=reason, regime_at_entry=regime,
        funding_cost=funding, slippage=slippage, max_profit_atr=max_atr,
    )


def curve(values, freq="1D"):
    times = pd.date_range(T0, periods=len(values), freq=freq)
    return [EquityPoint(i, t, v) for i, (t, v) in enumerate(zip(times, values))]


def test_sharpe_ratio_degenerate():
    assert sharpe_ratio([]) == 0.0
    assert sharpe_ratio([0.01]) == 0.0
    assert sharpe_ratio([0.01] * 10) == 0.0


def test_sharpe_ratio_population_std():
    # mean 0.01, population std 0.01
    assert sharpe_ratio([0.0, 0.02]) == pytest.approx(252 ** 0.5)


def test_win_rate():
    assert win_rate([1, -1, 1, 1]) == 0.75
    assert win_rate([]) == 0.0


def test_profit_factor():
    assert profit_factor([10, -5, 10, -5]) == 2.0
    assert profit_factor([10, 10]) == 0.0
    assert profit_factor([-5, -5]) == 0.0


def test_max_drawdown():
    # peak 1.2, trough 1.0
    assert max_drawdown([1.0, 1.2, 1.0, 1.1]) == pytest.approx(-1 / 6)
    assert max_drawdown([1.0, 1.1, 1.2]) == 0.0
    assert max_drawdown([]) == 0.0


def test_period_returns():
    assert period_returns([100.0, 110.0, 99.0]) == pytest.approx([0.1, -0.1])
    assert period_returns([100.0]) == []


def test_annualized_return_compounds_over_calendar_span():
    points = [EquityPoint(0, T0, 100.0), EquityPoint(1, T0 + pd.Timedelta(days=730.5), 121.0)]
    assert annualized_return(0.21, points) == pytest.approx(0.10)
    assert annualized_return(0.21, points[:1]) == 0.0


def test_annualized_return_sub_day_run_is_not_annualized():
    points = curve([10000.0 + 30 * i for i in range(100)], freq="1min")
    report = compute_report([trade(2970.0)], points, initial_capital=10000.0)
    assert report.total_return == pytest.approx(0.297)
    assert report.annualized_return == 0.0
    json.dumps(report.to_dict(), allow_nan=False)


def test_annualized_return_stays_finite_on_huge_growth():
    one_day = curve([100.0, 100.0], freq="1D")
    assert annualized_return(np.float64(1e6), one_day) == 0.0
    two_days = curve([100.0, 100.0], freq="2D")
    assert math.isfinite(annualized_return(np.float64(10.0), two_days))


def test_compute_report():
    trades = [
        trade(300.0, ExitReason.PROFIT_PROTECTION, Regime.BULL, funding=5.0, slippage=0.3, max_atr=3.0),
        trade(-100.0, ExitReason.INITIAL_STOP, Regime.RANGE, slippage=0.1, max_atr=0.2),
        trade(-500.0, ExitReason.LIQUIDATION, Regime.BULL),
    ]
    equity = curve([10000.0, 10300.0, 10200.0, 9700.0])
    r = compute_report(trades, equity, closes=[100.0, 110.0], initial_capital=10000.0)
    assert r.total_trades == 3
    assert r.winning_trades == 1
    assert r.losing_trades == 2
    assert r.win_rate == pytest.approx(1 / 3)
    assert r.avg_win == pytest.approx(300.0)
    assert r.avg_loss == pytest.approx(-300.0)
    assert r.profit_factor == pytest.approx(0.5)
    assert r.total_pnl == pytest.approx(-300.0)
    assert r.total_return == pytest.approx(-0.03)
    assert r.final_capital == pytest.approx(9700.0)
    assert r.buy_hold_return == pytest.approx(0.10)
    assert r.outperformance == pytest.approx(-0.13)
    assert r.max_drawdown == pytest.approx(9700.0 / 10300.0 - 1)
    assert r.liquidations == 1
    assert r.profit_protected_exits == 1
    assert r.profit_protection_rate == pytest.approx(1 / 3)
    assert r.avg_slippage == pytest.approx(0.2)
    assert r.total_funding == pytest.approx(5.0)
    assert r.avg_max_profit_atr == pytest.approx(3.2 / 3)
    assert r.regime_stats["BULL"].count == 2
    assert r.regime_stats["BULL"].win_rate == pytest.approx(0.5)
    assert r.regime_stats["RANGE"].total_pnl == pytest.approx(-100.0)


def test_compute_report_is_idempotent():
    trades = [trade(50.0), trade(-20.0), trade(35.0)]
    equity = curve([1000.0, 1050.0, 1030.0, 1065.0])
    first = compute_report(trades, equity, [10.0, 11.0], 1000.0)
    second = compute_report(trades, equity, [10.0, 11.0], 1000.0)
    assert first == second
    assert compute_report(trades, equity, [10.0, 11.0]) == first


def test_empty_run_report():
    r = compute_report([], curve([1000.0, 1000.0]), [10.0, 12.0], 1000.0)
    assert r.total_trades == 0
    assert r.win_rate == 0.0
    assert r.sharpe_ratio == 0.0
    assert r.profit_factor == 0.0
    assert r.warnings == ()
    assert reality_check(r) == []


def test_reality_check_flags():
    suspicious = RunReport(
        total_trades=10, win_rate=0.8, sharpe_ratio=4.0, max_drawdown=-0.01,
        profit_factor=5.0, liquidations=2, total_funding=50.0, total_pnl=100.0,
    )
    warns = reality_check(suspicious)
    assert len(warns) == 6
    sane = RunReport(
        total_trades=10, win_rate=0.5, sharpe_ratio=1.0, max_drawdown=-0.2,
        profit_factor=1.5, liquidations=0, total_funding=1.0, total_pnl=100.0,
    )
    assert reality_check(sane) == []


def test_reality_check_does_not_alter_numbers():
    trades = [trade(100.0)] * 4
    equity = curve([1000.0, 1100.0, 1200.0, 1300.0, 1400.0])
    r = compute_report(trades, equity, None, 1000.0)
    assert r.warnings
    assert r.win_rate == 1.0
    assert r.total_return == pytest.approx(0.4)


def test_report_to_dict():
    r = compute_report([trade(10.0), trade(-5.0)], curve([100.0, 110.0, 105.0]), None, 100.0)
    d = r.to_dict()
    assert d["total_trades"] == 2
    assert isinstance(d["warnings"], list)
    assert d["regime_stats"]["RANGE"]["count"] == 2

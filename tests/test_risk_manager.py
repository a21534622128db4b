"""Unit tests for risk.manager."""

import pytest

from trailguard.core.types import Direction, Regime
from trailguard.risk.manager import RiskManager


def test_liquidation_price_leverage_10():
    rm = RiskManager(leverage=10, maintenance_margin_rate=0.004)
    assert rm.liquidation_price(100.0, Direction.LONG) == pytest.approx(90.4)
    assert rm.liquidation_price(100.0, Direction.SHORT) == pytest.approx(109.6)
    assert rm.is_liquidated(90.0, 90.4, Direction.LONG)
    assert not rm.is_liquidated(91.0, 90.4, Direction.LONG)
    assert rm.is_liquidated(110.0, 109.6, Direction.SHORT)


def test_funding_charged_per_full_period():
    rm = RiskManager(funding_rate=0.0001)
    assert rm.funding_cost(1000.0, 7.9) == 0.0
    assert rm.funding_cost(1000.0, 8.0) == pytest.approx(0.1)
    assert rm.funding_cost(1000.0, 17.0) == pytest.approx(0.2)


def test_entry_slippage_worse_for_both_sides():
    rm = RiskManager(base_slippage=0.0003, volatility_slippage_mult=0.0002)
    # slip = 0.0003 + (2/100) * 0.0002 = 0.000304
    assert rm.entry_fill_price(100.0, Direction.LONG, 2.0) == pytest.approx(100.0304)
    assert rm.entry_fill_price(100.0, Direction.SHORT, 2.0) == pytest.approx(99.9696)


def test_stop_fill_moves_against_position():
    rm = RiskManager(stop_slippage_atr=0.3)
    assert rm.stop_fill_price(98.0, Direction.LONG, 1.0) == pytest.approx(97.7)
    assert rm.stop_fill_price(102.0, Direction.SHORT, 1.0) == pytest.approx(102.3)
    assert rm.stop_fill_price(0.1, Direction.LONG, 1.0) == 0.0


def test_size_entry_regime_fraction():
    rm = RiskManager(leverage=1, taker_fee=0.0004, base_slippage=0.0, volatility_slippage_mult=0.0)
    r = rm.size_entry(10000.0, 100.0, 1.0, Direction.LONG, Regime.BULL)
    assert r.allowed is True
    assert r.margin == pytest.approx(5000.0)
    assert r.entry_fee == pytest.approx(2.0)
    assert r.quantity == pytest.approx(49.98)
    bear = rm.size_entry(10000.0, 100.0, 1.0, Direction.SHORT, Regime.BEAR)
    assert bear.margin == pytest.approx(3000.0)


def test_size_entry_fixed_fraction_without_regime_sizing():
    rm = RiskManager(use_regime_sizing=False, position_fraction=0.5)
    for regime in Regime:
        assert rm.position_fraction(regime) == 0.5


def test_size_entry_rejects_without_capital_or_atr():
    rm = RiskManager()
    assert rm.size_entry(0.0, 100.0, 1.0, Direction.LONG, Regime.RANGE).allowed is False
    assert rm.size_entry(1000.0, 100.0, float("nan"), Direction.LONG, Regime.RANGE).allowed is False


def test_fees_exceeding_margin_rejected():
    rm = RiskManager(leverage=100, taker_fee=0.02)
    r = rm.size_entry(1000.0, 100.0, 1.0, Direction.LONG, Regime.RANGE)
    assert r.allowed is False
    assert "fee" in r.reason

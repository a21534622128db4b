"""
Risk manager: regime-based position sizing, leverage/liquidation math and
the execution cost model (slippage, taker fee, perpetual funding).
All monetary effects reduce realized PnL; none of them are optional.
"""

from __future__ import annotations
import logging
import math
from dataclasses import dataclass
from typing import Dict, Optional

from trailguard.core.types import Direction, Regime

logger = logging.getLogger("trailguard.risk")

FUNDING_INTERVAL_HOURS = 8


def default_regime_fractions() -> Dict[Regime, float]:
    """Share of capital committed per trade: wider in trends, narrower in range."""
    return {Regime.BULL: 0.5, Regime.BEAR: 0.3, Regime.RANGE: 0.4}


@dataclass
class RiskResult:
    """Result of sizing an entry: allowed or rejected + reason."""
    allowed: bool
    quantity: float = 0.0
    entry_price: float = 0.0
    entry_fee: float = 0.0
    margin: float = 0.0
    reason: str = ""


class RiskManager:
    """
    Sizes entries and prices every fill. Quantity is margin units:
    notional exposure = quantity * price * leverage.
    """

    def __init__(
        self,
        leverage: float = 1.0,
        taker_fee: float = 0.0004,
        maintenance_margin_rate: float = 0.004,
        funding_rate: float = 0.0001,
        base_slippage: float = 0.0003,
        volatility_slippage_mult: float = 0.0002,
        stop_slippage_atr: float = 0.3,
        use_regime_sizing: bool = True,
        position_fraction: float = 0.5,
        regime_fractions: Optional[Dict[Regime, float]] = None,
    ):
        self.leverage = leverage
        self.taker_fee = taker_fee
        self.maintenance_margin_rate = maintenance_margin_rate
        self.funding_rate = funding_rate
        self.base_slippage = base_slippage
        self.volatility_slippage_mult = volatility_slippage_mult
        self.stop_slippage_atr = stop_slippage_atr
        self.use_regime_sizing = use_regime_sizing
        self.fixed_fraction = position_fraction
        self.regime_fractions = regime_fractions or default_regime_fractions()

    def position_fraction(self, regime: Regime) -> float:
        if self.use_regime_sizing:
            return self.regime_fractions[regime]
        return self.fixed_fraction

    def entry_fill_price(self, price: float, direction: Direction, atr: float) -> float:
        """Market entry fills worse by a base rate plus a volatility-scaled rate."""
        volatility = atr / price if price > 0 else 0.0
        slip = self.base_slippage + volatility * self.volatility_slippage_mult
        return price * (1 + direction.sign * slip)

    def stop_fill_price(self, stop_price: float, direction: Direction, atr: float) -> float:
        """Stops fill worse than limits: move the stop further against the position."""
        slip = atr * self.stop_slippage_atr
        if direction is Direction.LONG:
            return max(0.0, stop_price - slip)
        return stop_price + slip

    def liquidation_price(self, entry_price: float, direction: Direction) -> float:
        """Price at which posted margin is exhausted (maintenance margin included)."""
        if direction is Direction.LONG:
            return entry_price * (1 - 1 / self.leverage + self.maintenance_margin_rate)
        return entry_price * (1 + 1 / self.leverage - self.maintenance_margin_rate)

    def is_liquidated(self, price: float, liquidation_price: float, direction: Direction) -> bool:
        if direction is Direction.LONG:
            return price <= liquidation_price
        return price >= liquidation_price

    def notional(self, price: float, quantity: float) -> float:
        return price * quantity * self.leverage

    def exit_fee(self, exit_price: float, quantity: float) -> float:
        return self.notional(exit_price, quantity) * self.taker_fee

    def funding_cost(self, notional: float, hours_held: float) -> float:
        """Perpetual funding, charged once per full 8h period held."""
        periods = math.floor(max(hours_held, 0.0) / FUNDING_INTERVAL_HOURS)
        return notional * self.funding_rate * periods

    def size_entry(
        self,
        capital: float,
        price: float,
        atr: float,
        direction: Direction,
        regime: Regime,
    ) -> RiskResult:
        """
        Allocate a regime-dependent share of capital as margin, pay the taker
        fee on the leveraged notional out of it, and size the rest.
        """
        if capital <= 0:
            return RiskResult(allowed=False, reason="no capital")
        if price <= 0 or not atr > 0:
            return RiskResult(allowed=False, reason="invalid price or atr")
        margin = capital * self.position_fraction(regime)
        entry_price = self.entry_fill_price(price, direction, atr)
        entry_fee = margin * self.leverage * self.taker_fee
        quantity = (margin - entry_fee) / entry_price
        if quantity <= 0:
            logger.warning("Entry fee %.4f exceeds margin %.4f at %sx", entry_fee, margin, self.leverage)
            return RiskResult(allowed=False, reason="fees exceed allocated margin")
        return RiskResult(
            allowed=True,
            quantity=quantity,
            entry_price=entry_price,
            entry_fee=entry_fee,
            margin=margin,
        )

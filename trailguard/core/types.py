"""
Core data types for candles, signals, positions, trades and the equity curve.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class Direction(str, Enum):
    LONG = "long"
    SHORT = "short"

    @property
    def sign(self) -> int:
        return 1 if self is Direction.LONG else -1


class Regime(str, Enum):
    BULL = "BULL"
    BEAR = "BEAR"
    RANGE = "RANGE"


class ExitReason(str, Enum):
    INITIAL_STOP = "initial_stop"
    PROFIT_PROTECTION = "profit_protection"
    LIQUIDATION = "liquidation"
    END_OF_DATA = "end_of_data"
    MANUAL_EXIT = "manual_exit"
    TAKE_PROFIT = "take_profit"


class StrategyMode(str, Enum):
    MEAN_REVERSION = "mean_reversion"
    MOMENTUM = "momentum"
    PULLBACK = "pullback"
    BEAR_MARKET = "bear_market"
    ADAPTIVE = "adaptive"


@dataclass(frozen=True)
class Candle:
    """OHLCV candle. Only closed candles are ever fed to the engine."""
    time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Indicator values for one bar. NaN fields mean "not enough history"."""
    atr: float
    rsi: float
    ema_fast: float
    ema_medium: float
    ema_slow: float
    regime: Regime = Regime.RANGE


@dataclass(frozen=True)
class Signal:
    """Entry decision for one bar. At most one of long/short is set."""
    long: bool = False
    short: bool = False
    snapshot: Optional[IndicatorSnapshot] = None

    def __post_init__(self) -> None:
        if self.long and self.short:
            raise ValueError("signal cannot be both long and short")

    @property
    def direction(self) -> Optional[Direction]:
        if self.long:
            return Direction.LONG
        if self.short:
            return Direction.SHORT
        return None


@dataclass
class Position:
    """Open position state. Owned by the simulator; one at a time."""
    direction: Direction
    entry_price: float
    quantity: float
    entry_index: int
    entry_time: datetime
    stop_price: float
    liquidation_price: float
    regime_at_entry: Regime = Regime.RANGE
    max_profit_atr: float = 0.0
    entry_fee: float = 0.0

    @property
    def margin(self) -> float:
        """Margin posted for the trade; the most a liquidation can take."""
        return self.entry_price * self.quantity

    def unrealized_pnl(self, price: float, leverage: float) -> float:
        return self.direction.sign * (price - self.entry_price) * self.quantity * leverage


@dataclass(frozen=True)
class Trade:
    """Closed trade for analytics. return_pct is a fraction of margin (-1 = wiped out)."""
    entry_time: datetime
    exit_time: datetime
    direction: Direction
    entry_price: float
    exit_price: float
    quantity: float
    pnl: float
    return_pct: float
    exit_reason: ExitReason
    regime_at_entry: Regime
    funding_cost: float = 0.0
    slippage: float = 0.0
    max_profit_atr: float = 0.0
    bars_held: int = 0
    regime_at_exit: Regime = Regime.RANGE
    fees: float = 0.0

    def to_dict(self) -> dict:
        return {
            "entry_time": _iso(self.entry_time),
            "exit_time": _iso(self.exit_time),
            "direction": self.direction.value,
            "entry_price": self.entry_price,
            "exit_price": self.exit_price,
            "quantity": self.quantity,
            "pnl": self.pnl,
            "return_pct": self.return_pct,
            "exit_reason": self.exit_reason.value,
            "regime_at_entry": self.regime_at_entry.value,
            "regime_at_exit": self.regime_at_exit.value,
            "funding_cost": self.funding_cost,
            "slippage": self.slippage,
            "fees": self.fees,
            "max_profit_atr": round(self.max_profit_atr, 4),
            "bars_held": self.bars_held,
        }


@dataclass(frozen=True)
class EquityPoint:
    """Capital including unrealized PnL, one per processed bar."""
    index: int
    time: Optional[datetime]
    equity: float
    regime: Regime = Regime.RANGE

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "time": _iso(self.time),
            "equity": self.equity,
            "regime": self.regime.value,
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat() if hasattr(value, "isoformat") else str(value)

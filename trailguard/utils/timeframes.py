"""Timeframe strings and the per-timeframe indicator/regime tables."""

from __future__ import annotations
from dataclasses import dataclass


def timeframe_minutes(tf: str) -> int:
    """Convert Binance-style timeframe (e.g. '5m', '1h', '1d') to minutes."""
    tf = tf.strip().lower()
    if tf.endswith("m"):
        return int(tf[:-1])
    if tf.endswith("h"):
        return int(tf[:-1]) * 60
    if tf.endswith("d"):
        return int(tf[:-1]) * 60 * 24
    if tf.endswith("w"):
        return int(tf[:-1]) * 60 * 24 * 7
    raise ValueError(f"Unsupported timeframe: {tf}")


def is_intraday(tf: str) -> bool:
    """Minute bars get tighter regime thresholds and shorter breakout windows."""
    return timeframe_minutes(tf) < 60


@dataclass(frozen=True)
class RegimeThresholds:
    change: float
    slope: float


@dataclass(frozen=True)
class TimeframeParams:
    """Indicator periods and entry bands for one timeframe."""
    rsi_period: int = 14
    atr_period: int = 14
    ema_fast: int = 20
    ema_medium: int = 50
    ema_slow: int = 200
    regime_lookback: int = 50
    breakout_lookback: int = 20
    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0
    rsi_neutral_min: float = 40.0
    rsi_neutral_max: float = 60.0
    # BearMarket / Adaptive bear rules
    rsi_bear_short: float = 60.0
    rsi_extreme_low: float = 25.0
    thresholds: RegimeThresholds = RegimeThresholds(change=0.10, slope=0.001)

    @property
    def history_floor(self) -> int:
        return max(self.ema_slow, self.regime_lookback)


_MINUTE_BANDS = dict(
    breakout_lookback=10,
    rsi_oversold=25.0,
    rsi_overbought=75.0,
    rsi_neutral_min=35.0,
    rsi_neutral_max=65.0,
    rsi_bear_short=65.0,
    rsi_extreme_low=20.0,
    thresholds=RegimeThresholds(change=0.05, slope=0.002),
)

TIMEFRAME_PARAMS: dict[str, TimeframeParams] = {
    "1m": TimeframeParams(rsi_period=8, atr_period=10, ema_fast=8, ema_medium=21, ema_slow=50,
                          regime_lookback=20, **_MINUTE_BANDS),
    "3m": TimeframeParams(rsi_period=10, atr_period=12, ema_fast=12, ema_medium=26, ema_slow=50,
                          regime_lookback=30, **_MINUTE_BANDS),
    "5m": TimeframeParams(rsi_period=12, atr_period=14, ema_fast=12, ema_medium=26, ema_slow=50,
                          regime_lookback=40, **_MINUTE_BANDS),
    "15m": TimeframeParams(rsi_period=12, atr_period=14, ema_fast=12, ema_medium=26, ema_slow=50,
                           regime_lookback=50, **_MINUTE_BANDS),
    "30m": TimeframeParams(rsi_period=12, atr_period=14, ema_fast=12, ema_medium=26, ema_slow=50,
                           regime_lookback=50, **_MINUTE_BANDS),
    "1h": TimeframeParams(),
    "4h": TimeframeParams(),
    "1d": TimeframeParams(),
}


def timeframe_params(tf: str) -> TimeframeParams:
    """Table lookup; unknown timeframes fall back to the hourly defaults or minute bands."""
    key = tf.strip().lower()
    if key in TIMEFRAME_PARAMS:
        return TIMEFRAME_PARAMS[key]
    if is_intraday(key):
        return TimeframeParams(ema_fast=12, ema_medium=26, ema_slow=50, **_MINUTE_BANDS)
    return TimeframeParams()

"""
Indicator engine: ATR, RSI, EMA and bull/bear/range regime.
Every value at index i depends only on candles <= i. Warm-up bars are NaN.
"""

from __future__ import annotations
from typing import Union

import numpy as np
import pandas as pd

from trailguard.core.types import Regime
from trailguard.utils.timeframes import RegimeThresholds, TimeframeParams

SeriesLike = Union[pd.Series, np.ndarray, list]

# Bars between the two SMA samples used for the regime slope.
SLOPE_OFFSET = 5


def true_range(df: pd.DataFrame) -> pd.Series:
    """max(high-low, |high-prev_close|, |low-prev_close|); NaN on the first bar."""
    prev_close = df["close"].shift()
    high_low = df["high"] - df["low"]
    high_close = (df["high"] - prev_close).abs()
    low_close = (df["low"] - prev_close).abs()
    tr = pd.concat([high_low, high_close, low_close], axis=1).max(axis=1)
    tr.iloc[:1] = np.nan
    return tr


def atr(df: pd.DataFrame, period: int = 14) -> pd.Series:
    """Simple mean of true range over the trailing `period` bars."""
    return true_range(df).rolling(period, min_periods=period).mean()


def rsi(close: SeriesLike, period: int = 14) -> pd.Series:
    """
    Wilder RSI. Seed = simple mean of the first `period` gains/losses,
    then avg = (prev * (period - 1) + x) / period. 100 when avg loss is zero.
    """
    close = pd.Series(close, dtype=float)
    values = close.to_numpy()
    out = np.full(len(values), np.nan)
    if len(values) <= period:
        return pd.Series(out, index=close.index)
    delta = np.diff(values)
    gains = np.clip(delta, 0, None)
    losses = np.clip(-delta, 0, None)
    avg_gain = gains[:period].mean()
    avg_loss = losses[:period].mean()
    out[period] = _rsi_value(avg_gain, avg_loss)
    for i in range(period + 1, len(values)):
        avg_gain = (avg_gain * (period - 1) + gains[i - 1]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i - 1]) / period
        out[i] = _rsi_value(avg_gain, avg_loss)
    return pd.Series(out, index=close.index)


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    return 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)


def ema(values: SeriesLike, period: int) -> pd.Series:
    """
    EMA seeded with the first raw value, k = 2 / (period + 1).
    Values before the window has filled (index < period - 1) are NaN.
    """
    series = pd.Series(values, dtype=float)
    out = series.ewm(span=period, adjust=False).mean()
    out.iloc[: period - 1] = np.nan
    return out


def detect_regime(
    df: pd.DataFrame,
    lookback: int = 50,
    thresholds: RegimeThresholds = RegimeThresholds(change=0.10, slope=0.001),
) -> pd.Series:
    """
    Classify each bar. Bull: change over `lookback` bars > threshold and the
    trailing SMA slopes up; Bear mirrored; everything else (warm-up included) Range.
    """
    close = df["close"].astype(float)
    change = (close - close.shift(lookback)) / close.shift(lookback)
    sma = close.rolling(lookback + 1, min_periods=1).mean()
    slope = ((sma - sma.shift(SLOPE_OFFSET)) / sma).fillna(0.0)
    slope[np.arange(len(close)) < lookback + SLOPE_OFFSET] = 0.0

    bull = (change > thresholds.change) & (slope > thresholds.slope)
    bear = (change < -thresholds.change) & (slope < -thresholds.slope)
    regime = pd.Series(Regime.RANGE, index=close.index, dtype=object)
    regime[bull.fillna(False)] = Regime.BULL
    regime[bear.fillna(False)] = Regime.BEAR
    regime.iloc[:lookback] = Regime.RANGE
    return regime


def compute_indicator_frame(df: pd.DataFrame, params: TimeframeParams) -> pd.DataFrame:
    """Add atr, rsi, ema_fast/medium/slow and regime columns. Does not modify df."""
    out = df.copy()
    out["atr"] = atr(out, params.atr_period)
    out["rsi"] = rsi(out["close"], params.rsi_period).to_numpy()
    out["ema_fast"] = ema(out["close"], params.ema_fast).to_numpy()
    out["ema_medium"] = ema(out["close"], params.ema_medium).to_numpy()
    out["ema_slow"] = ema(out["close"], params.ema_slow).to_numpy()
    out["regime"] = detect_regime(out, params.regime_lookback, params.thresholds).to_numpy()
    return out

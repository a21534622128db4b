"""
Entry rules per strategy mode and the per-bar signal generator.
Mode dispatch happens once in build_strategy, never per bar.
"""

from __future__ import annotations
import logging
import math
from typing import List

import pandas as pd

from trailguard.core.errors import ConfigurationError
from trailguard.core.types import IndicatorSnapshot, Regime, Signal, StrategyMode
from trailguard.strategies.base import BarContext, BaseStrategy
from trailguard.utils.timeframes import TimeframeParams

logger = logging.getLogger("trailguard.strategies")

# Bear-market bounce longs need a volume burst vs the previous bar.
BOUNCE_VOLUME_MULT = 1.2


class MeanReversionStrategy(BaseStrategy):
    """Fade RSI extremes in the direction of the slow EMA."""

    def long_condition(self, ctx: BarContext) -> bool:
        s = ctx.snapshot
        return s.rsi < self.params.rsi_oversold and ctx.close > s.ema_slow

    def short_condition(self, ctx: BarContext) -> bool:
        s = ctx.snapshot
        return s.rsi > self.params.rsi_overbought and ctx.close < s.ema_slow


class MomentumStrategy(BaseStrategy):
    """Breakout of the recent range with trend and RSI confirmation."""

    def long_condition(self, ctx: BarContext) -> bool:
        s = ctx.snapshot
        return (ctx.close > ctx.recent_high and s.rsi > 50
                and ctx.close > s.ema_slow and s.ema_fast > s.ema_medium)

    def short_condition(self, ctx: BarContext) -> bool:
        s = ctx.snapshot
        return (ctx.close < ctx.recent_low and s.rsi < 50
                and ctx.close < s.ema_slow and s.ema_fast < s.ema_medium)


class PullbackStrategy(BaseStrategy):
    """Buy dips below the fast EMA inside an uptrend (and mirror)."""

    def _neutral_rsi(self, rsi: float) -> bool:
        return self.params.rsi_neutral_min < rsi < self.params.rsi_neutral_max

    def long_condition(self, ctx: BarContext) -> bool:
        s = ctx.snapshot
        return (ctx.close > s.ema_slow and ctx.close < s.ema_fast
                and self._neutral_rsi(s.rsi) and s.rsi > ctx.prev_rsi)

    def short_condition(self, ctx: BarContext) -> bool:
        s = ctx.snapshot
        return (ctx.close < s.ema_slow and ctx.close > s.ema_fast
                and self._neutral_rsi(s.rsi) and s.rsi < ctx.prev_rsi)


class BearMarketStrategy(BaseStrategy):
    """Short rallies, failed breakouts and breakdowns; long only extreme bounces."""

    def long_condition(self, ctx: BarContext) -> bool:
        return (ctx.snapshot.rsi < self.params.rsi_extreme_low
                and ctx.close > ctx.prev_close
                and ctx.volume > ctx.prev_volume * BOUNCE_VOLUME_MULT)

    def short_condition(self, ctx: BarContext) -> bool:
        s = ctx.snapshot
        overbought = (s.rsi > self.params.rsi_bear_short and ctx.close < s.ema_slow
                      and s.ema_fast < s.ema_medium)
        failed_breakout = (ctx.close < s.ema_fast and ctx.prev_close > ctx.prev_ema_fast
                           and ctx.close < s.ema_slow)
        breakdown = ctx.close < ctx.recent_low and ctx.close < s.ema_slow
        return overbought or failed_breakout or breakdown


class AdaptiveStrategy(BaseStrategy):
    """
    Regime-switching union: bull pullback longs, bear overbought shorts and
    extreme-bounce longs, range mean reversion.
    """

    def long_condition(self, ctx: BarContext) -> bool:
        s, p = ctx.snapshot, self.params
        if ctx.regime is Regime.BULL:
            return (ctx.close > s.ema_slow and ctx.close < s.ema_fast
                    and p.rsi_neutral_min < s.rsi < p.rsi_neutral_max and s.rsi > ctx.prev_rsi)
        if ctx.regime is Regime.BEAR:
            return s.rsi < p.rsi_extreme_low and ctx.close > ctx.prev_close
        return s.rsi < p.rsi_oversold

    def short_condition(self, ctx: BarContext) -> bool:
        s, p = ctx.snapshot, self.params
        if ctx.regime is Regime.BEAR:
            return s.rsi > p.rsi_bear_short and ctx.close < s.ema_slow and s.ema_fast < s.ema_medium
        if ctx.regime is Regime.RANGE:
            return s.rsi > p.rsi_overbought
        return False


STRATEGIES: dict[StrategyMode, type[BaseStrategy]] = {
    StrategyMode.MEAN_REVERSION: MeanReversionStrategy,
    StrategyMode.MOMENTUM: MomentumStrategy,
    StrategyMode.PULLBACK: PullbackStrategy,
    StrategyMode.BEAR_MARKET: BearMarketStrategy,
    StrategyMode.ADAPTIVE: AdaptiveStrategy,
}


def build_strategy(mode: StrategyMode | str, params: TimeframeParams) -> BaseStrategy:
    """Resolve the mode to its strategy class once per run."""
    try:
        mode = StrategyMode(mode)
    except ValueError as e:
        raise ConfigurationError(f"Unknown strategy mode: {mode!r}") from e
    return STRATEGIES[mode](params)


def _defined(*values: float) -> bool:
    return all(not math.isnan(v) for v in values)


def generate_signals(frame: pd.DataFrame, strategy: BaseStrategy) -> List[Signal]:
    """
    One Signal per candle of an indicator frame (see compute_indicator_frame).
    No entry before the history floor or while any input is undefined.
    """
    params = strategy.params
    floor = params.history_floor
    n = params.breakout_lookback
    closes = frame["close"].to_numpy(dtype=float)
    volumes = frame["volume"].to_numpy(dtype=float)
    rsis = frame["rsi"].to_numpy(dtype=float)
    atrs = frame["atr"].to_numpy(dtype=float)
    ema_fast = frame["ema_fast"].to_numpy(dtype=float)
    ema_medium = frame["ema_medium"].to_numpy(dtype=float)
    ema_slow = frame["ema_slow"].to_numpy(dtype=float)
    regimes = frame["regime"].to_numpy()
    # Window excludes the current bar: breakout means closing beyond the prior range.
    recent_high = frame["high"].rolling(n, min_periods=1).max().shift(1).to_numpy(dtype=float)
    recent_low = frame["low"].rolling(n, min_periods=1).min().shift(1).to_numpy(dtype=float)

    signals: List[Signal] = []
    for i in range(len(frame)):
        snap = IndicatorSnapshot(
            atr=atrs[i], rsi=rsis[i], ema_fast=ema_fast[i], ema_medium=ema_medium[i],
            ema_slow=ema_slow[i], regime=Regime(regimes[i]),
        )
        if i < max(floor, 1):
            signals.append(Signal(snapshot=snap))
            continue
        if not _defined(snap.atr, snap.rsi, snap.ema_fast, snap.ema_medium, snap.ema_slow,
                        rsis[i - 1], ema_fast[i - 1]):
            signals.append(Signal(snapshot=snap))
            continue
        ctx = BarContext(
            close=closes[i],
            volume=volumes[i],
            snapshot=snap,
            prev_close=closes[i - 1],
            prev_volume=volumes[i - 1],
            prev_rsi=rsis[i - 1],
            prev_ema_fast=ema_fast[i - 1],
            recent_high=recent_high[i],
            recent_low=recent_low[i],
            params=params,
        )
        long_ok, short_ok = strategy.evaluate(ctx)
        signals.append(Signal(long=long_ok, short=short_ok, snapshot=snap))
    entries = sum(1 for s in signals if s.long or s.short)
    logger.debug("Generated %d entry signals over %d bars", entries, len(signals))
    return signals

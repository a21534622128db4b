"""Abstract strategy: a pair of entry predicates over one bar's context."""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass

from trailguard.core.types import IndicatorSnapshot, Regime
from trailguard.utils.timeframes import TimeframeParams


@dataclass(frozen=True)
class BarContext:
    """What a strategy may look at for bar i: bar i, bar i-1 and the breakout window before i."""
    close: float
    volume: float
    snapshot: IndicatorSnapshot
    prev_close: float
    prev_volume: float
    prev_rsi: float
    prev_ema_fast: float
    recent_high: float
    recent_low: float
    params: TimeframeParams

    @property
    def regime(self) -> Regime:
        return self.snapshot.regime


class BaseStrategy(ABC):
    """Strategy decides long/short entry for one closed bar. Stateless."""

    def __init__(self, params: TimeframeParams):
        self.params = params

    @abstractmethod
    def long_condition(self, ctx: BarContext) -> bool:
        pass

    @abstractmethod
    def short_condition(self, ctx: BarContext) -> bool:
        pass

    def evaluate(self, ctx: BarContext) -> tuple[bool, bool]:
        """Return (long, short). Long wins when both fire."""
        long_ok = bool(self.long_condition(ctx))
        short_ok = bool(self.short_condition(ctx)) and not long_ok
        return long_ok, short_ok

"""Strategies: indicator engine, base interface and the five entry modes."""

from trailguard.strategies.base import BaseStrategy, BarContext
from trailguard.strategies.indicators import compute_indicator_frame
from trailguard.strategies.modes import build_strategy, generate_signals, STRATEGIES

__all__ = ["BaseStrategy", "BarContext", "compute_indicator_frame", "build_strategy", "generate_signals", "STRATEGIES"]

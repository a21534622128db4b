"""Live: paper trading on closed candles."""

from trailguard.live.paper import PaperTrader

__all__ = ["PaperTrader"]

"""Market data: provider interface, Binance klines and a CSV cache."""

from trailguard.datafeed.base import CANDLE_COLUMNS, MarketDataProvider, candles_to_frame
from trailguard.datafeed.binance import BinanceCandleProvider
from trailguard.datafeed.cache import CandleCache

__all__ = ["CANDLE_COLUMNS", "MarketDataProvider", "candles_to_frame", "BinanceCandleProvider", "CandleCache"]

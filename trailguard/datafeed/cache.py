"""On-disk CSV cache in front of a MarketDataProvider."""

from __future__ import annotations
import logging
from dataclasses import dataclass
from pathlib import Path

import pandas as pd

from trailguard.datafeed.base import CANDLE_COLUMNS, MarketDataProvider, candles_to_frame

logger = logging.getLogger("trailguard.datafeed.cache")


@dataclass
class CandleCache:
    """One CSV per (symbol, interval, start, end). Downloads once, then reads."""
    root: Path
    provider: MarketDataProvider

    def __post_init__(self) -> None:
        self.root = Path(self.root)
        self.root.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _filename(symbol: str, interval: str, start: str, end: str) -> str:
        clean = symbol.replace(":", "_").replace("/", "")
        return f"{clean}_{interval}_{start.replace('-', '')}_{end.replace('-', '')}.csv"

    def path_for(self, symbol: str, interval: str, start: str, end: str) -> Path:
        return self.root / self._filename(symbol, interval, start, end)

    def get(self, symbol: str, interval: str, start: str, end: str) -> pd.DataFrame:
        path = self.path_for(symbol, interval, start, end)
        if path.exists():
            logger.info("Loading cached candles from %s", path)
            return candles_to_frame(pd.read_csv(path, parse_dates=["time"]))
        logger.info("Downloading %s %s %s..%s", symbol, interval, start, end)
        frame = self.provider.fetch_candles(symbol, interval, start, end)
        self._persist(path, frame)
        return frame

    def _persist(self, path: Path, frame: pd.DataFrame) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        frame[CANDLE_COLUMNS].to_csv(path, index=False)
        logger.info("Saved %d rows to %s", len(frame), path)

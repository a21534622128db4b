"""Abstract market-data provider and candle normalization."""

from __future__ import annotations
import dataclasses
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, Optional, Union

import pandas as pd

from trailguard.core.errors import DataError
from trailguard.core.types import Candle

CANDLE_COLUMNS = ["time", "open", "high", "low", "close", "volume"]
PRICE_COLUMNS = ["open", "high", "low", "close", "volume"]

CandleInput = Union[pd.DataFrame, Iterable[Candle], Iterable[dict]]


def candles_to_frame(data: CandleInput) -> pd.DataFrame:
    """
    Normalize candles to a DataFrame with CANDLE_COLUMNS: times parsed,
    prices as float, sorted by time, duplicate timestamps dropped (last wins).
    Raises DataError when empty or malformed.
    """
    if isinstance(data, pd.DataFrame):
        df = data.copy()
    else:
        rows = [dataclasses.asdict(c) if isinstance(c, Candle) else dict(c) for c in data]
        df = pd.DataFrame(rows)
    if df.empty:
        raise DataError("no candles")
    missing = [c for c in CANDLE_COLUMNS if c not in df.columns]
    if missing:
        raise DataError(f"candles missing columns: {missing}")
    df = df[CANDLE_COLUMNS]
    try:
        df["time"] = pd.to_datetime(df["time"])
        df[PRICE_COLUMNS] = df[PRICE_COLUMNS].astype(float)
    except (TypeError, ValueError) as e:
        raise DataError(f"malformed candles: {e}") from e
    if df[PRICE_COLUMNS].isna().any().any():
        raise DataError("candles contain undefined prices")
    df = df.sort_values("time", kind="stable").drop_duplicates(subset="time", keep="last")
    return df.reset_index(drop=True)


class MarketDataProvider(ABC):
    """Source of closed OHLCV candles."""

    @abstractmethod
    def fetch_candles(
        self,
        symbol: str,
        interval: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> pd.DataFrame:
        """Historical candles in [start, end], columns CANDLE_COLUMNS."""
        pass

    @abstractmethod
    def latest_closed_candles(self, symbol: str, interval: str, limit: int = 500) -> pd.DataFrame:
        """Most recent candles, excluding the bar still in progress."""
        pass

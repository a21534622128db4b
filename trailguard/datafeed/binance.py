"""
Public Binance klines with pagination and bounded retry/backoff.
No API keys: only public market-data endpoints are used.
"""

from __future__ import annotations
import functools
import logging
import time
from datetime import datetime
from typing import Callable, List, Optional

import pandas as pd
import requests
from binance.client import Client
from binance.exceptions import BinanceAPIException

from trailguard.core.errors import DataError, NetworkError
from trailguard.datafeed.base import CANDLE_COLUMNS, MarketDataProvider, candles_to_frame
from trailguard.utils.timeframes import timeframe_minutes

logger = logging.getLogger("trailguard.datafeed.binance")

PAGE_LIMIT = 1000
KLINE_COLUMNS = [
    "open_time", "open", "high", "low", "close", "volume",
    "close_time", "quote_av", "num_trades", "tb_base_av", "tb_quote_av", "ignore",
]
RETRY_STATUS = (418, 429, 500, 502, 503, 504)


def retry_with_backoff(max_retries: int = 3, base_delay: float = 1.0):
    """
    Retry on rate limits, server errors and connection failures with
    exponential backoff. Instance max_retries/base_delay override the
    defaults. Raises NetworkError once retries are exhausted.
    Other API errors (bad symbol, bad interval) become DataError immediately.
    """
    def decorator(f):
        @functools.wraps(f)
        def wrapped(self, *args, **kwargs):
            retries = getattr(self, "max_retries", max_retries)
            delay_unit = getattr(self, "base_delay", base_delay)
            last_exc: Optional[Exception] = None
            for attempt in range(retries):
                try:
                    return f(self, *args, **kwargs)
                except BinanceAPIException as e:
                    if e.status_code not in RETRY_STATUS:
                        raise DataError(f"Binance rejected request: {e.message}") from e
                    last_exc = e
                except requests.exceptions.RequestException as e:
                    last_exc = e
                if attempt < retries - 1:
                    delay = delay_unit * (2 ** attempt)
                    logger.warning("Binance request failed (%s), retry in %.1fs (attempt %d)", last_exc, delay, attempt + 1)
                    self._sleep(delay)
            raise NetworkError(f"Binance request failed after {retries} attempts: {last_exc}") from last_exc
        return wrapped
    return decorator


def klines_to_frame(raw: List[list]) -> pd.DataFrame:
    df = pd.DataFrame(raw, columns=KLINE_COLUMNS)
    df[["open", "high", "low", "close", "volume"]] = df[["open", "high", "low", "close", "volume"]].astype(float)
    df["time"] = pd.to_datetime(df["open_time"], unit="ms")
    return df


def _to_ms(value: datetime | str | None) -> Optional[int]:
    if value is None:
        return None
    return int(pd.Timestamp(value).timestamp() * 1000)


class BinanceCandleProvider(MarketDataProvider):
    """Spot (default) or USDT-M futures klines through python-binance."""

    def __init__(
        self,
        client: Optional[Client] = None,
        futures: bool = False,
        max_retries: int = 3,
        base_delay: float = 1.0,
        page_pause: float = 0.2,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self._client = client
        self.futures = futures
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.page_pause = page_pause
        self._sleep = sleep
        self._clock = clock

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = Client(None, None, ping=False)
        return self._client

    def _klines(self, **params) -> List[list]:
        if self.futures:
            return self.client.futures_klines(**params)
        return self.client.get_klines(**params)

    @retry_with_backoff()
    def _page(self, **params) -> List[list]:
        return self._klines(**params)

    def fetch_candles(
        self,
        symbol: str,
        interval: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> pd.DataFrame:
        """
        Page forward from start in PAGE_LIMIT-row requests until end or a
        short page. Without start, returns the latest page only.
        """
        step_ms = timeframe_minutes(interval) * 60_000
        start_ms, end_ms = _to_ms(start), _to_ms(end)
        rows: List[list] = []
        cursor = start_ms
        while True:
            params = {"symbol": symbol, "interval": interval, "limit": PAGE_LIMIT}
            if cursor is not None:
                params["startTime"] = cursor
            if end_ms is not None:
                params["endTime"] = end_ms
            page = self._page(**params)
            rows.extend(page)
            logger.info("Downloaded %d %s %s candles (total %d)", len(page), symbol, interval, len(rows))
            if len(page) < PAGE_LIMIT or cursor is None:
                break
            cursor = int(page[-1][0]) + step_ms
            if end_ms is not None and cursor > end_ms:
                break
            self._sleep(self.page_pause)
        if not rows:
            raise DataError(f"No candles for {symbol} {interval} between {start} and {end}")
        return candles_to_frame(klines_to_frame(rows)[CANDLE_COLUMNS])

    def latest_closed_candles(self, symbol: str, interval: str, limit: int = 500) -> pd.DataFrame:
        """Most recent candles; the bar whose close_time is still ahead is dropped."""
        raw = self._page(symbol=symbol, interval=interval, limit=limit)
        if not raw:
            raise DataError(f"No candles for {symbol} {interval}")
        df = klines_to_frame(raw)
        now_ms = int(self._clock() * 1000)
        df = df[df["close_time"].astype("int64") < now_ms]
        return candles_to_frame(df[CANDLE_COLUMNS])

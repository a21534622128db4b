"""Synthetic candle frames shared by the tests."""

import numpy as np
import pandas as pd
import pytest


def make_candles(closes, start="2024-01-01", freq="1h", spread=0.1, volume=1000.0) -> pd.DataFrame:
    """open = previous close; high/low = body +/- spread."""
    closes = np.asarray(closes, dtype=float)
    opens = np.concatenate([[closes[0]], closes[:-1]])
    return pd.DataFrame({
        "time": pd.date_range(start, periods=len(closes), freq=freq),
        "open": opens,
        "high": np.maximum(opens, closes) + spread,
        "low": np.minimum(opens, closes) - spread,
        "close": closes,
        "volume": np.full(len(closes), volume),
    })


@pytest.fixture
def candle_factory():
    return make_candles


@pytest.fixture
def uptrend():
    """260 hourly bars rising 1.0 per bar from 100."""
    return make_candles(100.0 + np.arange(260))


@pytest.fixture
def downtrend():
    return make_candles(400.0 - np.arange(260))


@pytest.fixture
def flat():
    return make_candles(np.full(260, 100.0), spread=0.5)

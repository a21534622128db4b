"""Unit tests for analytics.writer."""

import json

import pandas as pd

from trailguard.analytics.writer import write_comparison, write_run
from trailguard.backtesting.engine import BacktestEngine
from trailguard.core.config import EngineConfig
from trailguard.core.types import StrategyMode


def test_write_run_artifacts(tmp_path, uptrend):
    result = BacktestEngine(EngineConfig(strategy_mode=StrategyMode.MOMENTUM)).run(uptrend)
    paths = write_run(result, tmp_path / "out", "BTCUSDT_1h_momentum")
    assert all(p.exists() for p in paths.values())

    trades = json.loads(paths["trades_json"].read_text(encoding="utf-8"))
    assert len(trades) == 1
    assert trades[0]["exit_reason"] == "end_of_data"
    assert trades[0]["entry_time"].startswith("2024-01-")

    equity = json.loads(paths["equity"].read_text(encoding="utf-8"))
    assert len(equity) == len(uptrend)
    assert set(equity[0]) == {"index", "time", "equity", "regime"}

    report = json.loads(paths["report"].read_text(encoding="utf-8"))
    assert report["total_trades"] == 1
    assert isinstance(report["warnings"], list)

    csv = pd.read_csv(paths["trades_csv"])
    assert list(csv["direction"]) == ["long"]


def test_write_comparison(tmp_path):
    table = pd.DataFrame([{"strategy": "momentum", "total_return": 0.1}])
    path = tmp_path / "nested" / "comparison.csv"
    write_comparison(table, path)
    assert pd.read_csv(path).to_dict(orient="records") == [{"strategy": "momentum", "total_return": 0.1}]

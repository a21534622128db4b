"""Result dumps: trades (JSON + CSV), equity curve, report, strategy comparison."""

from __future__ import annotations
import json
import logging
from pathlib import Path
from typing import Dict, Sequence

import pandas as pd

from trailguard.analytics.metrics import RunReport
from trailguard.core.types import EquityPoint, Trade

logger = logging.getLogger("trailguard.analytics.writer")


def ensure_dir(path: str | Path) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)


def write_json(obj, path: str | Path) -> None:
    ensure_dir(path)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(obj, f, ensure_ascii=False, indent=2, default=str)


def write_dataframe_csv(df: pd.DataFrame, path: str | Path) -> None:
    ensure_dir(path)
    df.to_csv(path, index=False)


def trades_frame(trades: Sequence[Trade]) -> pd.DataFrame:
    return pd.DataFrame([t.to_dict() for t in trades])


def write_trades(trades: Sequence[Trade], json_path: str | Path, csv_path: str | Path | None = None) -> None:
    write_json([t.to_dict() for t in trades], json_path)
    if csv_path is not None:
        write_dataframe_csv(trades_frame(trades), csv_path)


def write_equity_curve(points: Sequence[EquityPoint], path: str | Path) -> None:
    write_json([p.to_dict() for p in points], path)


def write_report(report: RunReport, path: str | Path) -> None:
    write_json(report.to_dict(), path)


def write_comparison(comparison: pd.DataFrame, path: str | Path) -> None:
    write_dataframe_csv(comparison, path)


def write_run(result, out_dir: str | Path, prefix: str) -> Dict[str, Path]:
    """
    Write every artifact of one BacktestResult as <prefix>_*.{json,csv}
    under out_dir. Returns the written paths.
    """
    out = Path(out_dir)
    paths = {
        "trades_json": out / f"{prefix}_trades.json",
        "trades_csv": out / f"{prefix}_trades.csv",
        "equity": out / f"{prefix}_equity.json",
        "report": out / f"{prefix}_report.json",
    }
    write_trades(result.trades, paths["trades_json"], paths["trades_csv"])
    write_equity_curve(result.equity_curve, paths["equity"])
    if result.report is not None:
        write_report(result.report, paths["report"])
    logger.info("Wrote %d trades and %d equity points to %s", len(result.trades), len(result.equity_curve), out)
    return paths

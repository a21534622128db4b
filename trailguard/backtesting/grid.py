"""
Parameter-grid harness: cartesian product of engine overrides, one
independent BacktestEngine per combination, evaluated in a process pool.
"""

from __future__ import annotations
import itertools
import logging
import os
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd

from trailguard.analytics.metrics import RunReport
from trailguard.backtesting.engine import BacktestEngine
from trailguard.core.config import EngineConfig
from trailguard.core.errors import ConfigurationError
from trailguard.core.types import StrategyMode

logger = logging.getLogger("trailguard.backtest.grid")

RANK_COLUMNS = ["total_return", "profit_factor", "sharpe_ratio", "win_rate"]
REPORT_COLUMNS = [
    "total_trades", "win_rate", "total_return", "annualized_return", "max_drawdown",
    "sharpe_ratio", "profit_factor", "final_capital", "buy_hold_return", "outperformance",
    "liquidations", "profit_protection_rate", "total_funding", "avg_max_profit_atr",
]


@dataclass
class GridResult:
    params: Dict[str, Any]
    report: Optional[RunReport] = None
    error: str = ""

    def to_row(self) -> Dict[str, Any]:
        row = {k: (v.value if isinstance(v, StrategyMode) else v) for k, v in self.params.items()}
        if self.report is not None:
            row.update({c: getattr(self.report, c) for c in REPORT_COLUMNS})
        row["error"] = self.error
        return row


def default_n_jobs(n_jobs: int | None = None) -> int:
    """All cores but one when n_jobs is unset or <= 0."""
    if n_jobs is None or n_jobs <= 0:
        return max(1, (os.cpu_count() or 2) - 1)
    return int(max(1, n_jobs))


def iter_param_grid(grid: Dict[str, Iterable]) -> Iterable[Dict[str, Any]]:
    """Every combination of the grid's values, keys in grid order."""
    keys = list(grid.keys())
    values = [list(grid[k]) for k in keys]
    for combo in itertools.product(*values):
        yield dict(zip(keys, combo))


def _evaluate(candles: pd.DataFrame, base: EngineConfig, params: Dict[str, Any]) -> GridResult:
    try:
        config = base.with_overrides(**params)
        result = BacktestEngine(config).run(candles)
    except ConfigurationError as e:
        return GridResult(params=params, error=str(e))
    return GridResult(params=params, report=result.report)


def run_grid(
    candles: pd.DataFrame,
    base: EngineConfig,
    grid: Dict[str, Iterable],
    n_jobs: int | None = None,
) -> List[GridResult]:
    """
    Run every grid combination against the same candles. Serial when
    n_jobs == 1. Invalid combinations come back with `error` set.
    """
    combos = list(iter_param_grid(grid))
    n_jobs = default_n_jobs(n_jobs)
    logger.info("Grid: %d combinations on %d worker(s)", len(combos), n_jobs)
    if n_jobs == 1 or len(combos) <= 1:
        results = [_evaluate(candles, base, p) for p in combos]
    else:
        results = []
        with ProcessPoolExecutor(max_workers=n_jobs) as ex:
            futures = [ex.submit(_evaluate, candles, base, p) for p in combos]
            for fut in as_completed(futures):
                results.append(fut.result())
    failed = [r for r in results if r.error]
    for r in failed:
        logger.warning("Grid combination %s rejected: %s", r.params, r.error)
    return results


def rank_results(results: Sequence[GridResult], by: str = "total_return", top: Optional[int] = None) -> pd.DataFrame:
    """Valid results as a table, best first by `by` then the other rank columns."""
    rows = [r.to_row() for r in results if r.report is not None]
    df = pd.DataFrame(rows)
    if df.empty:
        return df
    order = [by] + [c for c in RANK_COLUMNS if c != by]
    df = df.sort_values(order, ascending=False, kind="mergesort").reset_index(drop=True)
    return df.head(top) if top else df


def compare_strategies(
    candles: pd.DataFrame,
    base: EngineConfig,
    modes: Optional[Sequence[StrategyMode]] = None,
    n_jobs: int | None = 1,
) -> pd.DataFrame:
    """Run every strategy mode on the same candles; table sorted by total return."""
    modes = list(modes or StrategyMode)
    results = run_grid(candles, base, {"strategy_mode": modes}, n_jobs=n_jobs)
    table = rank_results(results, by="total_return")
    if not table.empty:
        table = table.rename(columns={"strategy_mode": "strategy"}).drop(columns=["error"])
    return table

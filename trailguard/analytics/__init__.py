"""Analytics: run report, reality check and result writers."""

from trailguard.analytics.metrics import (
    RegimeStats,
    RunReport,
    compute_report,
    max_drawdown,
    profit_factor,
    reality_check,
    sharpe_ratio,
    win_rate,
)
from trailguard.analytics.writer import write_comparison, write_run

__all__ = [
    "RegimeStats",
    "RunReport",
    "compute_report",
    "max_drawdown",
    "profit_factor",
    "reality_check",
    "sharpe_ratio",
    "win_rate",
    "write_comparison",
    "write_run",
]

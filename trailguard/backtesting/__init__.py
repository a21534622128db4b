"""Backtesting: position simulator, exit policies and the parameter grid."""

from trailguard.backtesting.engine import (
    BacktestEngine,
    BacktestResult,
    Bar,
    PositionSimulator,
    SimulationState,
    build_simulator,
)
from trailguard.backtesting.exits import ExitDecision, LiquidationExit, TakeProfitExit, TrailingStopExit
from trailguard.backtesting.grid import compare_strategies, iter_param_grid, rank_results, run_grid

__all__ = [
    "BacktestEngine",
    "BacktestResult",
    "Bar",
    "PositionSimulator",
    "SimulationState",
    "build_simulator",
    "ExitDecision",
    "LiquidationExit",
    "TakeProfitExit",
    "TrailingStopExit",
    "compare_strategies",
    "iter_param_grid",
    "rank_results",
    "run_grid",
]

#!/usr/bin/env python3
"""
trailguard CLI: backtest | compare | forward | optimize
Usage:
  python main.py backtest [--config config.yaml] [--csv candles.csv]
  python main.py compare  [--config config.yaml]
  python main.py forward  [--config config.yaml]
  python main.py optimize [--config config.yaml] [--jobs 4]
"""

from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path

import pandas as pd

# Project root
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from trailguard.analytics.metrics import RunReport
from trailguard.analytics.writer import write_comparison, write_dataframe_csv, write_json, write_run
from trailguard.backtesting.engine import BacktestEngine
from trailguard.backtesting.grid import compare_strategies, rank_results, run_grid
from trailguard.core.config import Config, load_config
from trailguard.core.errors import TrailguardError
from trailguard.core.logger import setup_logging
from trailguard.datafeed.base import candles_to_frame
from trailguard.datafeed.binance import BinanceCandleProvider
from trailguard.datafeed.cache import CandleCache
from trailguard.live.paper import PaperTrader
from trailguard.utils.telegram import TelegramNotifier

logger = logging.getLogger("trailguard")

DEFAULT_GRID = {
    "leverage": [1, 2, 3, 5],
    "initial_stop_atr": [1.5, 2.0, 2.5],
    "profit_threshold_atr": [0.5, 1.0],
}


def _apply_overrides(config: Config, args: argparse.Namespace) -> None:
    for attr in ("symbol", "timeframe", "start_date", "end_date", "strategy_mode", "leverage"):
        value = getattr(args, attr, None)
        if value is not None:
            setattr(config, attr, value)


def _load_candles(config: Config, csv_path: Path | None) -> pd.DataFrame:
    if csv_path is not None:
        logger.info("Loading candles from %s", csv_path)
        return candles_to_frame(pd.read_csv(csv_path))
    if not config.start_date or not config.end_date:
        raise TrailguardError("Set market.start_date and market.end_date (or pass --start/--end or --csv)")
    cache = CandleCache(config.cache_dir, BinanceCandleProvider())
    return cache.get(config.symbol, config.timeframe, config.start_date, config.end_date)


def print_report(report: RunReport, title: str) -> None:
    print(f"\n--- {title} ---")
    print(f"Total trades: {report.total_trades} (wins: {report.winning_trades}, losses: {report.losing_trades}, "
          f"liquidations: {report.liquidations})")
    print(f"Total return: {report.total_return:.2%} (annualized {report.annualized_return:.2%})")
    print(f"Buy & hold: {report.buy_hold_return:.2%} | outperformance: {report.outperformance:.2%}")
    print(f"Final capital: {report.final_capital:.2f}")
    print(f"Sharpe ratio: {report.sharpe_ratio:.2f}")
    print(f"Max drawdown: {report.max_drawdown:.2%}")
    print(f"Win rate: {report.win_rate:.1%}")
    print(f"Profit factor: {report.profit_factor:.2f}")
    print(f"Funding paid: {report.total_funding:.2f} | fees: {report.total_fees:.2f} | "
          f"avg stop slippage: {report.avg_slippage:.4f}")
    print(f"Profit-protected exits: {report.profit_protected_exits} ({report.profit_protection_rate:.1%}), "
          f"avg max profit {report.avg_max_profit_atr:.2f} ATR")
    for regime, stats in sorted(report.regime_stats.items()):
        print(f"  {regime:<6} trades {stats.count:>4} | win rate {stats.win_rate:.1%} | pnl {stats.total_pnl:.2f}")
    if report.warnings:
        print("Reality check warnings:")
        for w in report.warnings:
            print(f"  - {w}")
    else:
        print("Reality check passed")


def run_backtest(config: Config, args: argparse.Namespace) -> int:
    df = _load_candles(config, args.csv)
    engine_config = config.engine_config()
    result = BacktestEngine(engine_config).run(df)
    prefix = f"{config.symbol}_{config.timeframe}_{engine_config.strategy_mode.value}"
    write_run(result, config.output_dir, prefix)
    print_report(result.report, f"Backtest {prefix}")
    return 0


def run_compare(config: Config, args: argparse.Namespace) -> int:
    df = _load_candles(config, args.csv)
    table = compare_strategies(df, config.engine_config(), n_jobs=args.jobs or config.n_jobs)
    path = config.output_dir / f"{config.symbol}_{config.timeframe}_comparison.csv"
    write_comparison(table, path)
    print("\n--- Strategy comparison ---")
    print(table.to_string(index=False) if not table.empty else "no results")
    return 0


def run_optimize(config: Config, args: argparse.Namespace) -> int:
    df = _load_candles(config, args.csv)
    grid = config.grid or DEFAULT_GRID
    results = run_grid(df, config.engine_config(), grid, n_jobs=args.jobs or config.n_jobs)
    table = rank_results(results, by=args.rank_by)
    stem = config.output_dir / f"{config.symbol}_{config.timeframe}_optimization"
    write_dataframe_csv(table, stem.with_suffix(".csv"))
    write_json({
        "symbol": config.symbol,
        "timeframe": config.timeframe,
        "grid": grid,
        "combinations": len(results),
        "valid": int(len(table)),
        "top": table.head(20).to_dict(orient="records"),
    }, stem.with_suffix(".json"))
    print(f"\n--- Top results by {args.rank_by} ---")
    print(table.head(10).to_string(index=False) if not table.empty else "no valid combinations")
    return 0


def run_forward(config: Config, args: argparse.Namespace) -> int:
    notifier = TelegramNotifier(config.telegram_bot_token, config.telegram_chat_id, config.symbol)
    trader = PaperTrader(
        BinanceCandleProvider(),
        config.engine_config(),
        config.symbol,
        poll_seconds=config.poll_seconds,
        window=config.forward_window,
        notifier=notifier,
    )
    report = trader.run()
    print_report(report, f"Paper trading {config.symbol} {config.timeframe}")
    return 0


MODES = {
    "backtest": run_backtest,
    "compare": run_compare,
    "forward": run_forward,
    "optimize": run_optimize,
}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="trailguard: leveraged strategy backtester and paper trader")
    parser.add_argument("mode", choices=list(MODES), help="What to run")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    parser.add_argument("--csv", type=Path, default=None, help="Read candles from CSV instead of Binance")
    parser.add_argument("--symbol", default=None)
    parser.add_argument("--timeframe", default=None)
    parser.add_argument("--start", dest="start_date", default=None, help="YYYY-MM-DD")
    parser.add_argument("--end", dest="end_date", default=None, help="YYYY-MM-DD")
    parser.add_argument("--strategy", dest="strategy_mode", default=None)
    parser.add_argument("--leverage", type=float, default=None)
    parser.add_argument("--jobs", type=int, default=None, help="Worker processes for compare/optimize")
    parser.add_argument("--rank-by", default="total_return", help="Ranking column for optimize")
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config, ROOT)
    except TrailguardError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1
    _apply_overrides(config, args)
    setup_logging(config.log_level, config.log_dir, config.log_file)
    try:
        return MODES[args.mode](config, args)
    except TrailguardError as e:
        logger.error("%s failed: %s", args.mode, e)
        return 1


if __name__ == "__main__":
    sys.exit(main())

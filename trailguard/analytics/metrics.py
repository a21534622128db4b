"""
Performance metrics over a finished run: returns, drawdown, Sharpe,
per-regime breakdown and the reality check.
Pure functions: same trades and equity curve in, same report out.
"""

from __future__ import annotations
import logging
import math
import sys
from dataclasses import asdict, dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from trailguard.core.types import EquityPoint, ExitReason, Trade

logger = logging.getLogger("trailguard.analytics")

DAYS_PER_YEAR = 365.25
# Spans shorter than a day are not annualized.
MIN_ANNUALIZE_YEARS = 1 / DAYS_PER_YEAR
MAX_EXPONENT = math.log(sys.float_info.max)


@dataclass(frozen=True)
class RegimeStats:
    count: int
    wins: int
    total_pnl: float
    mean_pnl: float
    win_rate: float


@dataclass(frozen=True)
class RunReport:
    """Aggregate statistics of one run. Fractions, not percents."""
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    profit_factor: float = 0.0
    total_pnl: float = 0.0
    total_return: float = 0.0
    annualized_return: float = 0.0
    max_drawdown: float = 0.0
    sharpe_ratio: float = 0.0
    initial_capital: float = 0.0
    final_capital: float = 0.0
    buy_hold_return: float = 0.0
    outperformance: float = 0.0
    regime_stats: Dict[str, RegimeStats] = field(default_factory=dict)
    avg_slippage: float = 0.0
    total_funding: float = 0.0
    total_fees: float = 0.0
    liquidations: int = 0
    profit_protected_exits: int = 0
    profit_protection_rate: float = 0.0
    avg_max_profit_atr: float = 0.0
    warnings: Tuple[str, ...] = ()

    def to_dict(self) -> dict:
        d = asdict(self)
        d["warnings"] = list(self.warnings)
        return d


def sharpe_ratio(returns: Sequence[float], periods_per_year: float = 252.0) -> float:
    """Annualized Sharpe of period returns. 0 with fewer than 2 returns or zero deviation."""
    if len(returns) < 2:
        return 0.0
    arr = np.asarray(returns, dtype=float)
    std = arr.std()
    if std <= 1e-12:
        return 0.0
    return float(np.sqrt(periods_per_year) * arr.mean() / std)


def max_drawdown(equity: Sequence[float]) -> float:
    """Largest peak-to-trough decline as a negative fraction (-0.15 = 15%)."""
    if len(equity) == 0:
        return 0.0
    arr = np.asarray(equity, dtype=float)
    peak = np.maximum.accumulate(arr)
    dd = (arr - peak) / np.where(peak != 0, peak, 1)
    return float(min(dd.min(), 0.0))


def win_rate(pnls: Sequence[float]) -> float:
    """Fraction of trades with positive PnL."""
    if not pnls:
        return 0.0
    return sum(1 for p in pnls if p > 0) / len(pnls)


def profit_factor(pnls: Sequence[float]) -> float:
    """|gross profit / gross loss|. 0 unless there are both wins and losses."""
    wins = sum(p for p in pnls if p > 0)
    losses = sum(p for p in pnls if p < 0)
    if wins <= 0 or losses >= 0:
        return 0.0
    return abs(wins / losses)


def period_returns(equity: Sequence[float]) -> List[float]:
    """Bar-to-bar simple returns of the equity curve."""
    arr = np.asarray(equity, dtype=float)
    if len(arr) < 2:
        return []
    prev = arr[:-1]
    rets = np.divide(np.diff(arr), prev, out=np.zeros(len(prev)), where=prev != 0)
    return rets.tolist()


def annualized_return(
    total_return: float,
    equity_curve: Sequence[EquityPoint],
    periods_per_year: float = 252.0,
) -> float:
    """
    Compound the total return over the calendar span of the curve, or over
    len/periods_per_year when points carry no timestamps. 0 for spans under
    a day or when the compounded figure is not representable.
    """
    if len(equity_curve) < 2:
        return 0.0
    if total_return <= -1:
        return -1.0
    first, last = equity_curve[0].time, equity_curve[-1].time
    if first is not None and last is not None:
        years = (pd.Timestamp(last) - pd.Timestamp(first)).total_seconds() / 86400.0 / DAYS_PER_YEAR
    else:
        years = (len(equity_curve) - 1) / periods_per_year
    if years < MIN_ANNUALIZE_YEARS:
        return 0.0
    exponent = math.log1p(float(total_return)) / years
    if exponent > MAX_EXPONENT:
        logger.debug("Annualized return out of float range over %.4f years", years)
        return 0.0
    return math.expm1(exponent)


def regime_breakdown(trades: Sequence[Trade]) -> Dict[str, RegimeStats]:
    """Trades grouped by the regime they were entered in."""
    groups: Dict[str, List[float]] = {}
    for t in trades:
        groups.setdefault(t.regime_at_entry.value, []).append(t.pnl)
    out = {}
    for regime, pnls in groups.items():
        wins = sum(1 for p in pnls if p > 0)
        out[regime] = RegimeStats(
            count=len(pnls),
            wins=wins,
            total_pnl=sum(pnls),
            mean_pnl=sum(pnls) / len(pnls),
            win_rate=wins / len(pnls),
        )
    return out


def reality_check(report: RunReport) -> List[str]:
    """
    Advisory flags for results that rarely survive live trading.
    Never changes the numbers. Empty for a run without trades.
    """
    if report.total_trades == 0:
        return []
    warns = []
    if report.win_rate > 0.70:
        warns.append(f"Win rate {report.win_rate:.0%} > 70% is unusual for short-term trading")
    if report.sharpe_ratio > 3.0:
        warns.append(f"Sharpe {report.sharpe_ratio:.2f} > 3 is extremely rare in live trading")
    if abs(report.max_drawdown) < 0.05:
        warns.append(f"Max drawdown {report.max_drawdown:.2%} under 5% is unrealistic for crypto")
    if report.profit_factor > 3.0:
        warns.append(f"Profit factor {report.profit_factor:.2f} > 3 is rarely sustained")
    if report.liquidations > report.total_trades * 0.1:
        warns.append(f"Liquidation rate {report.liquidations}/{report.total_trades} > 10% is very dangerous")
    if report.total_funding > 0.2 * abs(report.total_pnl):
        warns.append(f"Funding costs {report.total_funding:.2f} exceed 20% of PnL")
    return warns


def compute_report(
    trades: Sequence[Trade],
    equity_curve: Sequence[EquityPoint],
    closes: Optional[Sequence[float]] = None,
    initial_capital: Optional[float] = None,
    periods_per_year: float = 252.0,
) -> RunReport:
    """
    Full report from the trade log and equity curve. closes (the run's close
    prices) feed the buy-and-hold benchmark. initial_capital defaults to the
    first equity point.
    """
    equity = [p.equity for p in equity_curve]
    if initial_capital is None:
        initial_capital = equity[0] if equity else 0.0
    final_capital = equity[-1] if equity else initial_capital
    total_return = (final_capital - initial_capital) / initial_capital if initial_capital else 0.0

    buy_hold = 0.0
    if closes is not None and len(closes) > 1 and closes[0]:
        buy_hold = float((closes[-1] - closes[0]) / closes[0])

    if not trades:
        return RunReport(
            initial_capital=initial_capital,
            final_capital=final_capital,
            buy_hold_return=buy_hold,
        )

    pnls = [t.pnl for t in trades]
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p < 0]
    slips = [abs(t.slippage) for t in trades if t.slippage]
    protected = sum(1 for t in trades if t.exit_reason is ExitReason.PROFIT_PROTECTION)
    report = RunReport(
        total_trades=len(trades),
        winning_trades=len(wins),
        losing_trades=len(losses),
        win_rate=win_rate(pnls),
        avg_win=sum(wins) / len(wins) if wins else 0.0,
        avg_loss=sum(losses) / len(losses) if losses else 0.0,
        profit_factor=profit_factor(pnls),
        total_pnl=sum(pnls),
        total_return=total_return,
        annualized_return=annualized_return(total_return, equity_curve, periods_per_year),
        max_drawdown=max_drawdown(equity),
        sharpe_ratio=sharpe_ratio(period_returns(equity), periods_per_year),
        initial_capital=initial_capital,
        final_capital=final_capital,
        buy_hold_return=buy_hold,
        outperformance=total_return - buy_hold,
        regime_stats=regime_breakdown(trades),
        avg_slippage=sum(slips) / len(slips) if slips else 0.0,
        total_funding=sum(t.funding_cost for t in trades),
        total_fees=sum(t.fees for t in trades),
        liquidations=sum(1 for t in trades if t.exit_reason is ExitReason.LIQUIDATION),
        profit_protected_exits=protected,
        profit_protection_rate=protected / len(trades),
        avg_max_profit_atr=sum(t.max_profit_atr for t in trades) / len(trades),
    )
    warns = reality_check(report)
    for w in warns:
        logger.warning("Reality check: %s", w)
    return replace(report, warnings=tuple(warns))

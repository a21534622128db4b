"""
Backtest engine: indicators, signals and the position state machine.

Per bar, in order: liquidation, trailing-stop update and exit policies,
entry. Fills happen at the bar close; nothing looks past the current bar.
"""

from __future__ import annotations
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

import pandas as pd

from trailguard.analytics.metrics import RunReport, compute_report
from trailguard.backtesting.exits import ExitDecision, ExitPolicy, default_exit_policies
from trailguard.core.config import EngineConfig
from trailguard.core.errors import DataError
from trailguard.core.types import Direction, EquityPoint, ExitReason, Position, Regime, Signal, Trade
from trailguard.datafeed.base import CandleInput, candles_to_frame
from trailguard.risk.manager import RiskManager
from trailguard.risk.trailing import ProfitProtection, merge_stop
from trailguard.strategies.indicators import compute_indicator_frame
from trailguard.strategies.modes import build_strategy, generate_signals

logger = logging.getLogger("trailguard.backtest")


@dataclass(frozen=True)
class Bar:
    """One closed candle as the simulator sees it."""
    index: int
    time: Optional[datetime]
    close: float
    signal: Signal

    @property
    def regime(self) -> Regime:
        snap = self.signal.snapshot
        return snap.regime if snap is not None else Regime.RANGE


@dataclass
class SimulationState:
    """Everything that changes during a run. One per run, never shared."""
    capital: float
    position: Optional[Position] = None
    trades: List[Trade] = field(default_factory=list)
    equity_curve: List[EquityPoint] = field(default_factory=list)

    def last_equity(self) -> float:
        return self.equity_curve[-1].equity if self.equity_curve else self.capital


def hours_between(start: Optional[datetime], end: Optional[datetime]) -> float:
    if start is None or end is None:
        return 0.0
    return max((pd.Timestamp(end) - pd.Timestamp(start)).total_seconds() / 3600.0, 0.0)


class PositionSimulator:
    """
    Advances a SimulationState one bar at a time. Shared by the backtest
    engine and the paper trader so both price trades identically.
    """

    def __init__(
        self,
        risk: RiskManager,
        protection: ProfitProtection,
        exit_policies: Optional[Sequence[ExitPolicy]] = None,
    ):
        self.risk = risk
        self.protection = protection
        self.exit_policies = list(exit_policies) if exit_policies is not None else default_exit_policies(risk, protection)
        self._pre_trail = [p for p in self.exit_policies if getattr(p, "before_trail", False)]
        self._post_trail = [p for p in self.exit_policies if not getattr(p, "before_trail", False)]

    def step(self, state: SimulationState, bar: Bar, is_last: bool = False) -> Optional[Trade]:
        """Process one closed bar and append its equity point. Returns the trade closed on it, if any."""
        snap = bar.signal.snapshot
        closed: Optional[Trade] = None
        if snap is None or math.isnan(snap.atr):
            logger.debug("Bar %d: ATR undefined, skipped", bar.index)
            if is_last and state.position is not None:
                closed = self.close_position(state, bar, bar.close, ExitReason.END_OF_DATA)
                self.mark_to_market(state, bar)
            else:
                state.equity_curve.append(EquityPoint(bar.index, bar.time, state.last_equity(), bar.regime))
            return closed

        liquidated = False
        if state.position is not None:
            decision = self._first_exit(self._pre_trail, state.position, bar)
            if decision is None:
                self._trail(state.position, bar.close, snap.atr, snap.regime)
                decision = self._first_exit(self._post_trail, state.position, bar)
            if decision is not None:
                liquidated = decision.full_margin_loss
                closed = self._apply_exit(state, bar, decision)

        if state.position is None and not liquidated and state.capital > 0:
            direction = bar.signal.direction
            if direction is not None:
                self._open(state, bar, direction)

        if is_last and state.position is not None:
            closed = self.close_position(state, bar, bar.close, ExitReason.END_OF_DATA)
        self.mark_to_market(state, bar)
        return closed

    def close_position(self, state: SimulationState, bar: Bar, price: float, reason: ExitReason) -> Trade:
        """Close at a plain market price (end of data, manual exit)."""
        return self._apply_exit(state, bar, ExitDecision(reason, price))

    def _trail(self, pos: Position, price: float, atr: float, regime: Regime) -> None:
        profit_atr = self.protection.profit_in_atr(price, pos.entry_price, atr, pos.direction)
        pos.max_profit_atr = max(pos.max_profit_atr, profit_atr)
        candidate = self.protection.candidate_stop(price, pos.entry_price, atr, pos.direction, regime)
        pos.stop_price = merge_stop(pos.direction, pos.stop_price, candidate)

    def _first_exit(self, policies: Sequence[ExitPolicy], pos: Position, bar: Bar) -> Optional[ExitDecision]:
        for policy in policies:
            decision = policy.check(pos, bar.close, bar.signal.snapshot)
            if decision is not None:
                return decision
        return None

    def _apply_exit(self, state: SimulationState, bar: Bar, decision: ExitDecision) -> Trade:
        pos = state.position
        if decision.full_margin_loss:
            pnl = -pos.margin
            return_pct = -1.0
            exit_fee = 0.0
            funding = 0.0
        else:
            gross = pos.unrealized_pnl(decision.price, self.risk.leverage)
            exit_fee = self.risk.exit_fee(decision.price, pos.quantity)
            funding = self.risk.funding_cost(
                self.risk.notional(decision.price, pos.quantity),
                hours_between(pos.entry_time, bar.time),
            )
            pnl = gross - exit_fee - funding
            return_pct = pnl / pos.margin
        state.capital += pnl
        trade = Trade(
            entry_time=pos.entry_time,
            exit_time=bar.time,
            direction=pos.direction,
            entry_price=pos.entry_price,
            exit_price=decision.price,
            quantity=pos.quantity,
            pnl=pnl,
            return_pct=return_pct,
            exit_reason=decision.reason,
            regime_at_entry=pos.regime_at_entry,
            funding_cost=funding,
            slippage=decision.slippage,
            max_profit_atr=pos.max_profit_atr,
            bars_held=bar.index - pos.entry_index,
            regime_at_exit=bar.regime,
            fees=pos.entry_fee + exit_fee,
        )
        state.trades.append(trade)
        state.position = None
        if decision.reason is ExitReason.LIQUIDATION:
            logger.warning(
                "LIQUIDATION bar %d: %s entry %.4f liq %.4f close %.4f, margin lost %.2f",
                bar.index, pos.direction.value, pos.entry_price, pos.liquidation_price, bar.close, -pnl,
            )
        else:
            logger.info(
                "Exit bar %d: %s %s @ %.4f pnl %.2f (max profit %.2f ATR)",
                bar.index, decision.reason.value, pos.direction.value, decision.price, pnl, pos.max_profit_atr,
            )
        return trade

    def _open(self, state: SimulationState, bar: Bar, direction: Direction) -> None:
        snap = bar.signal.snapshot
        sized = self.risk.size_entry(state.capital, bar.close, snap.atr, direction, snap.regime)
        if not sized.allowed:
            logger.debug("Bar %d: entry rejected (%s)", bar.index, sized.reason)
            return
        entry = sized.entry_price
        state.position = Position(
            direction=direction,
            entry_price=entry,
            quantity=sized.quantity,
            entry_index=bar.index,
            entry_time=bar.time,
            stop_price=self.protection.candidate_stop(entry, entry, snap.atr, direction, snap.regime),
            liquidation_price=self.risk.liquidation_price(entry, direction),
            regime_at_entry=snap.regime,
            entry_fee=sized.entry_fee,
        )
        logger.info(
            "Entry bar %d: %s @ %.4f qty %.6f stop %.4f liq %.4f (%s)",
            bar.index, direction.value, entry, sized.quantity,
            state.position.stop_price, state.position.liquidation_price, snap.regime.value,
        )

    def mark_to_market(self, state: SimulationState, bar: Bar) -> None:
        """Append the bar's equity point: capital plus unrealized PnL at the close."""
        equity = state.capital
        if state.position is not None:
            equity += state.position.unrealized_pnl(bar.close, self.risk.leverage)
        state.equity_curve.append(EquityPoint(bar.index, bar.time, equity, bar.regime))


@dataclass
class BacktestResult:
    """Backtest output: trades, equity curve, report and per-bar signals."""
    trades: List[Trade] = field(default_factory=list)
    equity_curve: List[EquityPoint] = field(default_factory=list)
    report: Optional[RunReport] = None
    signals: List[Signal] = field(default_factory=list)
    frame: Optional[pd.DataFrame] = None


def build_simulator(config: EngineConfig) -> PositionSimulator:
    risk = config.risk_manager()
    policies = default_exit_policies(risk, config.profit_protection, config.take_profit_pct, config.rsi_exit)
    return PositionSimulator(risk, config.profit_protection, policies)


class BacktestEngine:
    """
    Runs one strategy over a candle series. Deterministic: same candles and
    config, same trades. Holds no state between runs.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = (config or EngineConfig()).validate()

    def run(self, candles: CandleInput) -> BacktestResult:
        """candles: DataFrame (time, open, high, low, close, volume) or a list of Candle."""
        cfg = self.config
        try:
            df = candles_to_frame(candles)
        except DataError:
            logger.error("Backtest aborted: no usable candles")
            raise
        params = cfg.timeframe_params()
        if len(df) <= params.history_floor:
            logger.warning(
                "Only %d candles for %s; the first %d are warm-up, expect no trades",
                len(df), cfg.timeframe, params.history_floor,
            )
        frame = compute_indicator_frame(df, params)
        strategy = build_strategy(cfg.strategy_mode, params)
        signals = generate_signals(frame, strategy)

        simulator = build_simulator(cfg)
        state = SimulationState(capital=cfg.initial_capital)
        times = frame["time"].tolist()
        closes = frame["close"].to_numpy(dtype=float)
        last = len(frame) - 1
        for i in range(len(frame)):
            simulator.step(state, Bar(i, times[i], float(closes[i]), signals[i]), is_last=(i == last))

        report = compute_report(
            state.trades,
            state.equity_curve,
            closes,
            cfg.initial_capital,
            periods_per_year=cfg.periods_per_year,
        )
        logger.info(
            "Backtest %s %s: %d trades, return %.2f%%, final capital %.2f",
            cfg.strategy_mode.value, cfg.timeframe, report.total_trades,
            report.total_return * 100, report.final_capital,
        )
        return BacktestResult(
            trades=state.trades,
            equity_curve=state.equity_curve,
            report=report,
            signals=signals,
            frame=frame,
        )

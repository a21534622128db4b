"""
Forward (paper) trading: poll closed candles and push each new one through
the same PositionSimulator the backtest uses. Nothing is sent to an exchange.
"""

from __future__ import annotations
import logging
import signal as os_signal
import threading
from typing import Optional

import pandas as pd

from trailguard.analytics.metrics import RunReport, compute_report
from trailguard.backtesting.engine import Bar, SimulationState, build_simulator
from trailguard.core.config import EngineConfig
from trailguard.core.errors import DataError, NetworkError
from trailguard.core.types import EquityPoint, ExitReason, Trade
from trailguard.datafeed.base import MarketDataProvider
from trailguard.strategies.indicators import compute_indicator_frame
from trailguard.strategies.modes import build_strategy, generate_signals
from trailguard.utils.telegram import TelegramNotifier

logger = logging.getLogger("trailguard.live")


class PaperTrader:
    """
    One tick per poll interval: fetch the latest closed candles, skip if the
    newest one was already processed, otherwise recompute indicators over the
    window and step the simulator once. SIGINT/SIGTERM stop the loop; the open
    position is then closed at the last processed close as a manual exit.
    """

    def __init__(
        self,
        provider: MarketDataProvider,
        config: EngineConfig,
        symbol: str,
        poll_seconds: float = 60.0,
        window: int = 500,
        notifier: Optional[TelegramNotifier] = None,
    ):
        self.provider = provider
        self.config = config.validate()
        self.symbol = symbol
        self.poll_seconds = poll_seconds
        self.window = window
        self.notifier = notifier or TelegramNotifier(symbol=symbol)
        self.params = self.config.timeframe_params()
        self.strategy = build_strategy(self.config.strategy_mode, self.params)
        self.simulator = build_simulator(self.config)
        self.state = SimulationState(capital=self.config.initial_capital)
        self.last_processed_time: Optional[pd.Timestamp] = None
        self.bars_processed = 0
        self._last_bar: Optional[Bar] = None
        self._shutdown_event = threading.Event()
        self._final_report: Optional[RunReport] = None

    @property
    def is_stopping(self) -> bool:
        return self._shutdown_event.is_set()

    def tick(self) -> Optional[Trade]:
        """Process the newest closed candle once. Returns a trade closed on it, if any."""
        if self._shutdown_event.is_set():
            return None
        df = self.provider.latest_closed_candles(self.symbol, self.config.timeframe, limit=self.window)
        latest = df["time"].iloc[-1]
        if self.last_processed_time is not None and latest <= self.last_processed_time:
            logger.debug("No new closed candle since %s", self.last_processed_time)
            return None
        if len(df) <= self.params.history_floor:
            logger.warning("Window of %d candles is within warm-up (%d); no entries possible",
                           len(df), self.params.history_floor)
        frame = compute_indicator_frame(df, self.params)
        signals = generate_signals(frame, self.strategy)
        bar = Bar(self.bars_processed, latest, float(frame["close"].iloc[-1]), signals[-1])
        had_position = self.state.position is not None
        closed = self.simulator.step(self.state, bar)
        self.last_processed_time = latest
        self.bars_processed += 1
        self._last_bar = bar

        if closed is not None:
            self.notifier.exit(closed)
        opened = self.state.position is not None and (not had_position or closed is not None)
        if opened:
            self.notifier.entry(self.state.position)
        logger.info(
            "Tick %s close %.4f | equity %.2f | %s",
            latest, bar.close, self.state.last_equity(),
            f"{self.state.position.direction.value} stop {self.state.position.stop_price:.4f}"
            if self.state.position else "flat",
        )
        return closed

    def run(self, install_signal_handlers: bool = True, max_ticks: Optional[int] = None) -> RunReport:
        """
        Poll until stopped (or max_ticks), then shut down and return the report.
        Unexpected errors propagate after the open position is closed.
        """
        if install_signal_handlers:
            self._setup_signal_handlers()
        logger.info("Paper trading %s %s (%s), poll %ss",
                    self.symbol, self.config.timeframe, self.config.strategy_mode.value, self.poll_seconds)
        self.notifier.send(f"Paper trading started | {self.symbol} {self.config.timeframe} "
                           f"| {self.config.strategy_mode.value} | {self.config.leverage}x")
        ticks = 0
        try:
            while not self._shutdown_event.is_set():
                try:
                    self.tick()
                except (NetworkError, DataError) as e:
                    logger.error("Tick failed, retrying next interval: %s", e)
                ticks += 1
                if max_ticks is not None and ticks >= max_ticks:
                    break
                self._shutdown_event.wait(timeout=self.poll_seconds)
        finally:
            report = self.shutdown()
        return report

    def stop(self) -> None:
        self._shutdown_event.set()

    def shutdown(self) -> RunReport:
        """Stop polling and close any open position as a manual exit. Idempotent."""
        self._shutdown_event.set()
        if self._final_report is None:
            bar = self._last_bar
            if self.state.position is not None and bar is not None:
                trade = self.simulator.close_position(self.state, bar, bar.close, ExitReason.MANUAL_EXIT)
                self.state.equity_curve.append(
                    EquityPoint(self.bars_processed, bar.time, self.state.capital, bar.regime)
                )
                self.notifier.exit(trade)
            report = self._final_report = self.report()
            logger.info("Paper trading stopped: %d trades, capital %.2f", report.total_trades, self.state.capital)
            self.notifier.send(f"Paper trading stopped | {self.symbol} | trades {report.total_trades} "
                               f"| capital {self.state.capital:.2f}")
        return self._final_report

    def report(self) -> RunReport:
        return compute_report(
            self.state.trades,
            self.state.equity_curve,
            initial_capital=self.config.initial_capital,
            periods_per_year=self.config.periods_per_year,
        )

    def _setup_signal_handlers(self) -> None:
        def handle_shutdown(signum, frame):
            logger.info("Received signal %s, shutting down", signum)
            self._shutdown_event.set()

        os_signal.signal(os_signal.SIGINT, handle_shutdown)
        os_signal.signal(os_signal.SIGTERM, handle_shutdown)

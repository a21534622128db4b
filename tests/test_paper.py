"""Unit tests for live.paper (fake provider, no signals installed)."""

import pytest

from trailguard.core.config import EngineConfig
from trailguard.core.errors import NetworkError
from trailguard.core.types import Direction, ExitReason, StrategyMode
from trailguard.live.paper import PaperTrader
from trailguard.utils.telegram import TelegramNotifier


class FakeProvider:
    """Serves the given windows in order, then repeats the last one."""

    def __init__(self, frames):
        self.frames = list(frames)
        self.calls = 0

    def fetch_candles(self, symbol, interval, start=None, end=None):
        return self.frames[-1]

    def latest_closed_candles(self, symbol, interval, limit=500):
        frame = self.frames[min(self.calls, len(self.frames) - 1)]
        self.calls += 1
        return frame


class FailingProvider(FakeProvider):
    def latest_closed_candles(self, symbol, interval, limit=500):
        self.calls += 1
        raise NetworkError("exchange unreachable")


class CrashingProvider(FakeProvider):
    """First window is served, then an unexpected error."""

    def latest_closed_candles(self, symbol, interval, limit=500):
        self.calls += 1
        if self.calls > 1:
            raise RuntimeError("decoder bug")
        return self.frames[0]


class RecordingNotifier(TelegramNotifier):
    def __init__(self):
        super().__init__(symbol="BTCUSDT")
        self.messages = []

    def send(self, text):
        self.messages.append(text)
        return True


@pytest.fixture
def config():
    return EngineConfig(strategy_mode=StrategyMode.MOMENTUM)


@pytest.fixture
def windows(uptrend):
    # first closed window ends exactly on the warm-up floor of 1h params
    return [uptrend.iloc[:201], uptrend.iloc[:202]]


def test_tick_opens_position_and_skips_seen_candle(config, windows):
    notifier = RecordingNotifier()
    trader = PaperTrader(FakeProvider([windows[0]]), config, "BTCUSDT", poll_seconds=0, notifier=notifier)
    assert trader.tick() is None
    assert trader.state.position is not None
    assert trader.state.position.direction is Direction.LONG
    assert trader.bars_processed == 1
    assert any(m.startswith("ENTRY LONG") for m in notifier.messages)

    assert trader.tick() is None
    assert trader.bars_processed == 1
    assert len(trader.state.equity_curve) == 1


def test_shutdown_closes_position_as_manual_exit(config, windows):
    notifier = RecordingNotifier()
    provider = FakeProvider(windows)
    trader = PaperTrader(provider, config, "BTCUSDT", poll_seconds=0, notifier=notifier)
    trader.tick()
    trader.tick()
    report = trader.shutdown()

    assert report.total_trades == 1
    trade = trader.state.trades[0]
    assert trade.exit_reason is ExitReason.MANUAL_EXIT
    assert trade.exit_price == pytest.approx(float(windows[1]["close"].iloc[-1]))
    assert trader.state.position is None
    assert trader.state.equity_curve[-1].equity == pytest.approx(trader.state.capital)

    assert trader.shutdown() is report
    assert len(trader.state.trades) == 1
    calls = provider.calls
    assert trader.tick() is None
    assert provider.calls == calls


def test_run_stops_after_max_ticks(config, windows):
    notifier = RecordingNotifier()
    trader = PaperTrader(FakeProvider(windows), config, "BTCUSDT", poll_seconds=0, notifier=notifier)
    report = trader.run(install_signal_handlers=False, max_ticks=2)
    assert trader.is_stopping
    assert trader.bars_processed == 2
    assert report.total_trades == 1
    assert notifier.messages[0].startswith("Paper trading started")
    assert notifier.messages[-1].startswith("Paper trading stopped")
    assert any(m.startswith("EXIT LONG") and "manual_exit" in m for m in notifier.messages)


def test_run_survives_network_errors(config):
    provider = FailingProvider([])
    trader = PaperTrader(provider, config, "BTCUSDT", poll_seconds=0, notifier=RecordingNotifier())
    report = trader.run(install_signal_handlers=False, max_ticks=3)
    assert provider.calls == 3
    assert report.total_trades == 0
    assert report.final_capital == pytest.approx(config.initial_capital)


def test_stop_before_run_processes_nothing(config, windows):
    provider = FakeProvider(windows)
    trader = PaperTrader(provider, config, "BTCUSDT", poll_seconds=0, notifier=RecordingNotifier())
    trader.stop()
    report = trader.run(install_signal_handlers=False)
    assert provider.calls == 0
    assert report.total_trades == 0


def test_unexpected_error_still_closes_position(config, windows):
    notifier = RecordingNotifier()
    trader = PaperTrader(CrashingProvider(windows), config, "BTCUSDT", poll_seconds=0, notifier=notifier)
    with pytest.raises(RuntimeError):
        trader.run(install_signal_handlers=False, max_ticks=5)
    assert trader.is_stopping
    assert trader.state.position is None
    assert [t.exit_reason for t in trader.state.trades] == [ExitReason.MANUAL_EXIT]
    assert notifier.messages[-1].startswith("Paper trading stopped")

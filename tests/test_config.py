"""Unit tests for core.config."""

import pytest

from trailguard.core.config import EngineConfig, load_config
from trailguard.core.errors import ConfigurationError
from trailguard.core.types import Regime, StrategyMode
from trailguard.risk.trailing import ProfitTier

ENV_KEYS = [
    "SYMBOL", "TIMEFRAME", "START_DATE", "END_DATE", "STRATEGY_MODE", "INITIAL_CAPITAL",
    "USE_REGIME_SIZING", "LEVERAGE", "POLL_SECONDS", "N_JOBS", "LOG_LEVEL",
    "TELEGRAM_BOT_TOKEN", "TELEGRAM_CHAT_ID",
]

YAML = """
market:
  symbol: ethusdt
  timeframe: 15m
  start_date: 2024-01-01
  end_date: 2024-02-01
backtest:
  initial_capital: 5000
  strategy_mode: momentum
  regime_fractions: {bull: 0.6}
execution:
  leverage: 4
  taker_fee: 0.0005
profit_protection:
  initial_stop_atr: 2.5
  tiers:
    - {profit_atr: 1.0, trail_atr: 0.8}
    - {profit_atr: 2.0, trail_atr: 0.4}
  regime_multipliers:
    range: {initial: 0.9, profit: 0.7}
exits:
  take_profit_pct: 3
optimize:
  grid:
    leverage: [1, 2]
"""


@pytest.fixture
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_load_config_from_yaml(tmp_path, clean_env):
    path = tmp_path / "config.yaml"
    path.write_text(YAML, encoding="utf-8")
    config = load_config(path, tmp_path)
    assert config.symbol == "ETHUSDT"
    assert config.timeframe == "15m"
    assert config.start_date == "2024-01-01"
    assert config.grid == {"leverage": [1, 2]}

    ec = config.engine_config()
    assert ec.strategy_mode is StrategyMode.MOMENTUM
    assert ec.initial_capital == 5000
    assert ec.leverage == 4
    assert ec.taker_fee == 0.0005
    assert ec.take_profit_pct == 3.0
    assert ec.regime_fractions[Regime.BULL] == 0.6
    assert ec.regime_fractions[Regime.BEAR] == 0.3
    assert ec.profit_protection.initial_stop_atr == 2.5
    assert ec.profit_protection.tiers == (ProfitTier(1.0, 0.8), ProfitTier(2.0, 0.4))
    assert ec.profit_protection.regime_multipliers[Regime.RANGE].profit == 0.7
    assert ec.profit_protection.regime_multipliers[Regime.BULL].profit == 1.2


def test_env_overrides_yaml(tmp_path, clean_env):
    path = tmp_path / "config.yaml"
    path.write_text(YAML, encoding="utf-8")
    clean_env.setenv("LEVERAGE", "7")
    clean_env.setenv("STRATEGY_MODE", "pullback")
    config = load_config(path, tmp_path)
    assert config.leverage == 7.0
    assert config.engine_config().strategy_mode is StrategyMode.PULLBACK


def test_missing_file_gives_defaults(tmp_path, clean_env):
    config = load_config(tmp_path / "nope.yaml", tmp_path)
    assert config.symbol == "BTCUSDT"
    ec = config.engine_config()
    assert ec == EngineConfig()


def test_engine_config_rejects_bad_values(tmp_path, clean_env):
    config = load_config(tmp_path / "nope.yaml", tmp_path)
    config.leverage = 0
    with pytest.raises(ConfigurationError):
        config.engine_config()
    config.leverage = 2
    config.strategy_mode = "scalping"
    with pytest.raises(ConfigurationError):
        config.engine_config()


@pytest.mark.parametrize("kwargs", [
    {"leverage": -1},
    {"initial_capital": 0},
    {"taker_fee": -0.001},
    {"position_fraction": 1.5},
    {"timeframe": "soon"},
    {"take_profit_pct": 0},
    {"regime_fractions": {Regime.BULL: 0.5, Regime.BEAR: 0.0, Regime.RANGE: 0.4}},
])
def test_validate_rejects(kwargs):
    with pytest.raises(ConfigurationError):
        EngineConfig(**kwargs).validate()


def test_with_overrides_routes_protection_fields():
    base = EngineConfig()
    cfg = base.with_overrides(leverage=3, initial_stop_atr=1.5, strategy_mode="momentum")
    assert cfg.leverage == 3
    assert cfg.profit_protection.initial_stop_atr == 1.5
    assert cfg.strategy_mode is StrategyMode.MOMENTUM
    assert base.leverage == 1.0
    with pytest.raises(ConfigurationError):
        base.with_overrides(warp_factor=9)
    with pytest.raises(ConfigurationError):
        base.with_overrides(strategy_mode="scalping")


@pytest.mark.parametrize("section", [
    "backtest:\n  regime_fractions: {sideways: 0.5}\n",
    "profit_protection:\n  regime_multipliers:\n    crab: {initial: 1.0, profit: 0.5}\n",
])
def test_unknown_regime_key_is_configuration_error(tmp_path, clean_env, section):
    path = tmp_path / "config.yaml"
    path.write_text(section, encoding="utf-8")
    with pytest.raises(ConfigurationError, match="Unknown regime"):
        load_config(path, tmp_path)


def test_cli_reports_bad_config_without_traceback(tmp_path, clean_env, capsys):
    from main import main

    path = tmp_path / "config.yaml"
    path.write_text("backtest:\n  regime_fractions: {sideways: 0.5}\n", encoding="utf-8")
    assert main(["backtest", "--config", str(path)]) == 1
    assert "Unknown regime" in capsys.readouterr().err

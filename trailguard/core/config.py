"""
Load configuration from config.yaml and .env. Environment overrides YAML.
EngineConfig is the only thing the simulation engine itself consumes.
"""

from __future__ import annotations
import dataclasses
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from trailguard.core.errors import ConfigurationError
from trailguard.core.types import Regime, StrategyMode
from trailguard.risk.manager import RiskManager, default_regime_fractions
from trailguard.risk.trailing import ProfitProtection, ProfitTier, RegimeMultiplier
from trailguard.utils.timeframes import TimeframeParams, timeframe_minutes, timeframe_params


@dataclass(frozen=True)
class EngineConfig:
    """
    One backtest's parameters: strategy mode, leverage, fee rates, slippage,
    profit protection and sizing. Independent runs never share one mutably.
    """
    strategy_mode: StrategyMode = StrategyMode.ADAPTIVE
    timeframe: str = "1h"
    initial_capital: float = 10000.0
    leverage: float = 1.0
    taker_fee: float = 0.0004
    maintenance_margin_rate: float = 0.004
    funding_rate: float = 0.0001
    base_slippage: float = 0.0003
    volatility_slippage_mult: float = 0.0002
    stop_slippage_atr: float = 0.3
    use_regime_sizing: bool = True
    position_fraction: float = 0.5
    regime_fractions: Dict[Regime, float] = field(default_factory=default_regime_fractions)
    profit_protection: ProfitProtection = field(default_factory=ProfitProtection)
    take_profit_pct: Optional[float] = None
    rsi_exit: Optional[float] = None
    periods_per_year: float = 252.0

    def validate(self) -> "EngineConfig":
        """Raise ConfigurationError on anything that would make the run meaningless."""
        try:
            mode = StrategyMode(self.strategy_mode)
        except ValueError as e:
            raise ConfigurationError(f"Unknown strategy mode: {self.strategy_mode!r}") from e
        try:
            timeframe_minutes(self.timeframe)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
        if not self.leverage > 0:
            raise ConfigurationError(f"leverage must be positive, got {self.leverage}")
        if not self.initial_capital > 0:
            raise ConfigurationError(f"initial_capital must be positive, got {self.initial_capital}")
        for name in ("taker_fee", "maintenance_margin_rate", "funding_rate", "base_slippage",
                     "volatility_slippage_mult", "stop_slippage_atr"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must be >= 0")
        fractions = [self.position_fraction] + [self.regime_fractions.get(r, 0.0) for r in Regime]
        if any(not 0 < f <= 1 for f in fractions):
            raise ConfigurationError(f"position fractions must be in (0, 1], got {fractions}")
        if self.take_profit_pct is not None and self.take_profit_pct <= 0:
            raise ConfigurationError("take_profit_pct must be positive")
        self.profit_protection.validate()
        if mode is not self.strategy_mode:
            return dataclasses.replace(self, strategy_mode=mode)
        return self

    def risk_manager(self) -> RiskManager:
        return RiskManager(
            leverage=self.leverage,
            taker_fee=self.taker_fee,
            maintenance_margin_rate=self.maintenance_margin_rate,
            funding_rate=self.funding_rate,
            base_slippage=self.base_slippage,
            volatility_slippage_mult=self.volatility_slippage_mult,
            stop_slippage_atr=self.stop_slippage_atr,
            use_regime_sizing=self.use_regime_sizing,
            position_fraction=self.position_fraction,
            regime_fractions=dict(self.regime_fractions),
        )

    def timeframe_params(self) -> TimeframeParams:
        return timeframe_params(self.timeframe)

    def with_overrides(self, **overrides: Any) -> "EngineConfig":
        """
        Copy with flat overrides, as used by the parameter grid. Keys naming a
        ProfitProtection field (e.g. initial_stop_atr) go to profit_protection.
        """
        pp_fields = {f.name for f in dataclasses.fields(ProfitProtection)}
        pp_kw = {k: v for k, v in overrides.items() if k in pp_fields}
        top_kw = {k: v for k, v in overrides.items() if k not in pp_fields}
        unknown = set(top_kw) - {f.name for f in dataclasses.fields(self)}
        if unknown:
            raise ConfigurationError(f"Unknown engine parameters: {sorted(unknown)}")
        if "strategy_mode" in top_kw:
            try:
                top_kw["strategy_mode"] = StrategyMode(top_kw["strategy_mode"])
            except ValueError as e:
                raise ConfigurationError(f"Unknown strategy mode: {top_kw['strategy_mode']!r}") from e
        if pp_kw:
            top_kw["profit_protection"] = dataclasses.replace(self.profit_protection, **pp_kw)
        return dataclasses.replace(self, **top_kw)


def _env_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path(__file__).resolve().parents[2]
    return root / ".env"


def load_dotenv_if_exists(project_root: Optional[Path] = None) -> None:
    """Load .env from project root if present."""
    path = _env_path(project_root)
    if path.exists():
        load_dotenv(path)


def _regime(key: Any) -> Regime:
    try:
        return Regime(str(key).upper())
    except ValueError as e:
        raise ConfigurationError(f"Unknown regime {key!r}, expected one of {[r.value.lower() for r in Regime]}") from e


def _parse_tiers(raw: Any) -> tuple:
    if raw is None:
        return ProfitProtection().tiers
    return tuple(ProfitTier(profit_atr=float(t["profit_atr"]), trail_atr=float(t["trail_atr"])) for t in raw)


def _parse_regime_multipliers(raw: Optional[dict]) -> Dict[Regime, RegimeMultiplier]:
    result = ProfitProtection().regime_multipliers
    for key, value in (raw or {}).items():
        result[_regime(key)] = RegimeMultiplier(
            initial=float(value.get("initial", 1.0)),
            profit=float(value.get("profit", 1.0)),
        )
    return result


def _parse_regime_fractions(raw: Optional[dict]) -> Dict[Regime, float]:
    result = default_regime_fractions()
    for key, value in (raw or {}).items():
        result[_regime(key)] = float(value)
    return result


def load_config(config_path: Optional[Path] = None, project_root: Optional[Path] = None) -> "Config":
    """Load config.yaml and overlay with env. Returns Config."""
    load_dotenv_if_exists(project_root)
    root = project_root or Path(__file__).resolve().parents[2]
    path = config_path or root / "config.yaml"
    data: dict[str, Any] = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    def env(key: str, default: str = "") -> str:
        return os.getenv(key, default).strip()

    def env_bool(key: str, default: bool = False) -> bool:
        return os.getenv(key, str(default)).lower() in ("true", "1", "yes")

    def env_int(key: str, default: int = 0) -> int:
        try:
            return int(os.getenv(key, str(default)))
        except ValueError:
            return default

    def env_float(key: str, default: float = 0.0) -> float:
        try:
            return float(os.getenv(key, str(default)))
        except ValueError:
            return default

    market = data.get("market", {})
    backtest = data.get("backtest", {})
    execution = data.get("execution", {})
    protection = data.get("profit_protection", {})
    exits = data.get("exits", {})
    forward = data.get("forward", {})
    optimize = data.get("optimize", {})
    telegram = data.get("telegram", {})
    logging_cfg = data.get("logging", {})

    pp = ProfitProtection(
        profit_threshold_atr=float(protection.get("threshold_atr", 0.5)),
        initial_stop_atr=float(protection.get("initial_stop_atr", 2.0)),
        base_trail_atr=float(protection.get("base_trail_atr", 1.0)),
        tiers=_parse_tiers(protection.get("tiers")),
        regime_multipliers=_parse_regime_multipliers(protection.get("regime_multipliers")),
    )
    take_profit = exits.get("take_profit_pct")
    rsi_exit = exits.get("rsi_exit")

    return Config(
        symbol=env("SYMBOL", market.get("symbol", "BTCUSDT")).upper(),
        timeframe=env("TIMEFRAME", market.get("timeframe", "1h")),
        start_date=env("START_DATE", str(market.get("start_date") or "")) or None,
        end_date=env("END_DATE", str(market.get("end_date") or "")) or None,
        cache_dir=Path(data.get("data", {}).get("cache_dir", "binance_cache")),
        strategy_mode=env("STRATEGY_MODE", backtest.get("strategy_mode", "adaptive")),
        initial_capital=env_float("INITIAL_CAPITAL", backtest.get("initial_capital", 10000.0)),
        use_regime_sizing=env_bool("USE_REGIME_SIZING", backtest.get("use_regime_sizing", True)),
        position_fraction=float(backtest.get("position_fraction", 0.5)),
        regime_fractions=_parse_regime_fractions(backtest.get("regime_fractions")),
        leverage=env_float("LEVERAGE", execution.get("leverage", 1.0)),
        taker_fee=float(execution.get("taker_fee", 0.0004)),
        maintenance_margin_rate=float(execution.get("maintenance_margin_rate", 0.004)),
        funding_rate=float(execution.get("funding_rate", 0.0001)),
        base_slippage=float(execution.get("base_slippage", 0.0003)),
        volatility_slippage_mult=float(execution.get("volatility_slippage_mult", 0.0002)),
        stop_slippage_atr=float(execution.get("stop_slippage_atr", 0.3)),
        profit_protection=pp,
        take_profit_pct=float(take_profit) if take_profit is not None else None,
        rsi_exit=float(rsi_exit) if rsi_exit is not None else None,
        poll_seconds=env_int("POLL_SECONDS", forward.get("poll_seconds", 60)),
        forward_window=int(forward.get("window", 500)),
        grid=optimize.get("grid", {}) or {},
        n_jobs=env_int("N_JOBS", optimize.get("n_jobs", 0)),
        output_dir=Path(data.get("output", {}).get("dir", "results")),
        telegram_bot_token=env("TELEGRAM_BOT_TOKEN", telegram.get("bot_token", "")),
        telegram_chat_id=env("TELEGRAM_CHAT_ID", telegram.get("chat_id", "")),
        log_level=env("LOG_LEVEL", logging_cfg.get("level", "INFO")),
        log_dir=Path(logging_cfg.get("log_dir", "logs")),
        log_file=logging_cfg.get("log_file", "trailguard.log"),
    )


class Config:
    """Unified configuration: yaml, then .env and environment, then CLI flags."""

    __slots__ = (
        "symbol", "timeframe", "start_date", "end_date", "cache_dir",
        "strategy_mode", "initial_capital", "use_regime_sizing", "position_fraction", "regime_fractions",
        "leverage", "taker_fee", "maintenance_margin_rate", "funding_rate",
        "base_slippage", "volatility_slippage_mult", "stop_slippage_atr",
        "profit_protection", "take_profit_pct", "rsi_exit",
        "poll_seconds", "forward_window", "grid", "n_jobs", "output_dir",
        "telegram_bot_token", "telegram_chat_id",
        "log_level", "log_dir", "log_file",
    )

    def __init__(
        self,
        symbol: str = "BTCUSDT",
        timeframe: str = "1h",
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        cache_dir: Path = None,
        strategy_mode: str = "adaptive",
        initial_capital: float = 10000.0,
        use_regime_sizing: bool = True,
        position_fraction: float = 0.5,
        regime_fractions: Optional[Dict[Regime, float]] = None,
        leverage: float = 1.0,
        taker_fee: float = 0.0004,
        maintenance_margin_rate: float = 0.004,
        funding_rate: float = 0.0001,
        base_slippage: float = 0.0003,
        volatility_slippage_mult: float = 0.0002,
        stop_slippage_atr: float = 0.3,
        profit_protection: Optional[ProfitProtection] = None,
        take_profit_pct: Optional[float] = None,
        rsi_exit: Optional[float] = None,
        poll_seconds: int = 60,
        forward_window: int = 500,
        grid: Optional[dict] = None,
        n_jobs: int = 0,
        output_dir: Path = None,
        telegram_bot_token: str = "",
        telegram_chat_id: str = "",
        log_level: str = "INFO",
        log_dir: Path = None,
        log_file: str = "trailguard.log",
    ):
        self.symbol = symbol
        self.timeframe = timeframe
        self.start_date = start_date
        self.end_date = end_date
        self.cache_dir = Path(cache_dir) if cache_dir else Path("binance_cache")
        self.strategy_mode = strategy_mode
        self.initial_capital = initial_capital
        self.use_regime_sizing = use_regime_sizing
        self.position_fraction = position_fraction
        self.regime_fractions = regime_fractions or default_regime_fractions()
        self.leverage = leverage
        self.taker_fee = taker_fee
        self.maintenance_margin_rate = maintenance_margin_rate
        self.funding_rate = funding_rate
        self.base_slippage = base_slippage
        self.volatility_slippage_mult = volatility_slippage_mult
        self.stop_slippage_atr = stop_slippage_atr
        self.profit_protection = profit_protection or ProfitProtection()
        self.take_profit_pct = take_profit_pct
        self.rsi_exit = rsi_exit
        self.poll_seconds = poll_seconds
        self.forward_window = forward_window
        self.grid = grid or {}
        self.n_jobs = n_jobs
        self.output_dir = Path(output_dir) if output_dir else Path("results")
        self.telegram_bot_token = telegram_bot_token
        self.telegram_chat_id = telegram_chat_id
        self.log_level = log_level
        self.log_dir = Path(log_dir) if log_dir else Path("logs")
        self.log_file = log_file

    def engine_config(self) -> EngineConfig:
        """Validated engine parameters. Raises ConfigurationError."""
        try:
            mode = StrategyMode(self.strategy_mode)
        except ValueError as e:
            raise ConfigurationError(f"Unknown strategy mode: {self.strategy_mode!r}") from e
        return EngineConfig(
            strategy_mode=mode,
            timeframe=self.timeframe,
            initial_capital=self.initial_capital,
            leverage=self.leverage,
            taker_fee=self.taker_fee,
            maintenance_margin_rate=self.maintenance_margin_rate,
            funding_rate=self.funding_rate,
            base_slippage=self.base_slippage,
            volatility_slippage_mult=self.volatility_slippage_mult,
            stop_slippage_atr=self.stop_slippage_atr,
            use_regime_sizing=self.use_regime_sizing,
            position_fraction=self.position_fraction,
            regime_fractions=dict(self.regime_fractions),
            profit_protection=self.profit_protection,
            take_profit_pct=self.take_profit_pct,
            rsi_exit=self.rsi_exit,
        ).validate()

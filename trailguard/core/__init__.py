"""Core: types, errors, logging, config."""

from trailguard.core.types import (
    Candle,
    Direction,
    EquityPoint,
    ExitReason,
    IndicatorSnapshot,
    Position,
    Regime,
    Signal,
    StrategyMode,
    Trade,
)
from trailguard.core.errors import ConfigurationError, DataError, NetworkError, TrailguardError
from trailguard.core.logger import setup_logging
from trailguard.core.config import Config, EngineConfig, load_config

__all__ = [
    "Candle",
    "Direction",
    "EquityPoint",
    "ExitReason",
    "IndicatorSnapshot",
    "Position",
    "Regime",
    "Signal",
    "StrategyMode",
    "Trade",
    "ConfigurationError",
    "DataError",
    "NetworkError",
    "TrailguardError",
    "setup_logging",
    "Config",
    "EngineConfig",
    "load_config",
]

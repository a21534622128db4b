"""
Error taxonomy. Per-bar indicator gaps are not errors (bars are skipped);
liquidations are modeled outcomes, recorded as trades.
"""

from __future__ import annotations


class TrailguardError(Exception):
    """Base class for all trailguard errors."""


class DataError(TrailguardError, ValueError):
    """No candles, or candles that cannot be simulated. Fatal before the run starts."""


class ConfigurationError(TrailguardError, ValueError):
    """Invalid engine configuration (leverage, tiers, fractions, fees)."""


class NetworkError(TrailguardError):
    """Market-data provider gave up after its bounded retries."""

"""
Profit-protection trailing stop.

Two phases. Below `profit_threshold_atr` of unrealized profit the stop sits
`initial_stop_atr` ATRs away from price so pre-profit noise cannot shake the
trade out. Once the threshold is reached the distance comes from an ascending
tier table (more profit, tighter trail), scaled by a per-regime multiplier:
ranges reverse fast and get tighter trails, trends get slightly wider ones.

The candidate is stateless. Callers persist it with merge_stop, which only
ever tightens.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Tuple

from trailguard.core.errors import ConfigurationError
from trailguard.core.types import Direction, Regime


@dataclass(frozen=True)
class ProfitTier:
    profit_atr: float
    trail_atr: float


@dataclass(frozen=True)
class RegimeMultiplier:
    initial: float = 1.0
    profit: float = 1.0


def _default_tiers() -> Tuple[ProfitTier, ...]:
    return (
        ProfitTier(profit_atr=0.5, trail_atr=1.0),
        ProfitTier(profit_atr=1.5, trail_atr=0.75),
        ProfitTier(profit_atr=3.0, trail_atr=0.5),
    )


def _default_regime_multipliers() -> Dict[Regime, RegimeMultiplier]:
    return {
        Regime.BULL: RegimeMultiplier(initial=1.0, profit=1.2),
        Regime.BEAR: RegimeMultiplier(initial=1.0, profit=1.2),
        Regime.RANGE: RegimeMultiplier(initial=1.0, profit=0.8),
    }


@dataclass(frozen=True)
class ProfitProtection:
    """Stop-distance schedule. Tiers must be ascending by profit_atr."""
    profit_threshold_atr: float = 0.5
    initial_stop_atr: float = 2.0
    base_trail_atr: float = 1.0
    tiers: Tuple[ProfitTier, ...] = field(default_factory=_default_tiers)
    regime_multipliers: Dict[Regime, RegimeMultiplier] = field(default_factory=_default_regime_multipliers)

    def validate(self) -> None:
        if not self.tiers:
            raise ConfigurationError("profit protection needs at least one tier")
        thresholds = [t.profit_atr for t in self.tiers]
        if thresholds != sorted(thresholds) or len(set(thresholds)) != len(thresholds):
            raise ConfigurationError(f"profit tiers must be strictly ascending: {thresholds}")
        if any(t.trail_atr <= 0 for t in self.tiers):
            raise ConfigurationError("tier trail_atr must be positive")
        if self.initial_stop_atr <= 0 or self.base_trail_atr <= 0:
            raise ConfigurationError("stop distances must be positive")
        missing = [r.value for r in Regime if r not in self.regime_multipliers]
        if missing:
            raise ConfigurationError(f"missing regime multipliers for {missing}")

    @staticmethod
    def profit_in_atr(price: float, entry_price: float, atr: float, direction: Direction) -> float:
        return direction.sign * (price - entry_price) / atr

    def trail_multiplier(self, profit_atr: float) -> float:
        """Trail of the highest tier reached; base trail when none is."""
        trail = self.base_trail_atr
        for tier in self.tiers:
            if profit_atr >= tier.profit_atr:
                trail = tier.trail_atr
            else:
                break
        return trail

    def is_protected(self, profit_atr: float) -> bool:
        return profit_atr >= self.profit_threshold_atr

    def candidate_stop(
        self,
        price: float,
        entry_price: float,
        atr: float,
        direction: Direction,
        regime: Regime,
    ) -> float:
        """Stop price suggested for this bar, before the monotonic merge."""
        mult = self.regime_multipliers[regime]
        profit_atr = self.profit_in_atr(price, entry_price, atr, direction)
        if not self.is_protected(profit_atr):
            distance = self.initial_stop_atr * atr * mult.initial
        else:
            distance = self.trail_multiplier(profit_atr) * mult.profit * atr
        return price - direction.sign * distance


def merge_stop(direction: Direction, current: float, candidate: float) -> float:
    """Longs only ratchet up, shorts only ratchet down."""
    if direction is Direction.LONG:
        return max(current, candidate)
    return min(current, candidate)

"""Risk: profit-protection trailing stop, sizing, liquidation and execution costs."""

from trailguard.risk.manager import RiskManager, RiskResult
from trailguard.risk.trailing import ProfitProtection, ProfitTier, RegimeMultiplier, merge_stop

__all__ = ["RiskManager", "RiskResult", "ProfitProtection", "ProfitTier", "RegimeMultiplier", "merge_stop"]

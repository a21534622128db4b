"""
Exit policies. The simulator evaluates an ordered list each bar and the first
policy returning a decision closes the position. Policies marked before_trail
(liquidation) see the position before the stop is updated for the bar.
"""

from __future__ import annotations
import math
from dataclasses import dataclass
from typing import List, Optional, Protocol

from trailguard.core.types import Direction, ExitReason, IndicatorSnapshot, Position
from trailguard.risk.manager import RiskManager
from trailguard.risk.trailing import ProfitProtection


@dataclass(frozen=True)
class ExitDecision:
    reason: ExitReason
    price: float
    slippage: float = 0.0
    full_margin_loss: bool = False


class ExitPolicy(Protocol):
    before_trail: bool

    def check(self, position: Position, price: float, snapshot: IndicatorSnapshot) -> Optional[ExitDecision]:
        ...


class LiquidationExit:
    """Close at the liquidation price once the close crosses it. Takes the whole margin."""

    before_trail = True

    def __init__(self, risk: RiskManager):
        self.risk = risk

    def check(self, position: Position, price: float, snapshot: IndicatorSnapshot) -> Optional[ExitDecision]:
        if not self.risk.is_liquidated(price, position.liquidation_price, position.direction):
            return None
        return ExitDecision(ExitReason.LIQUIDATION, position.liquidation_price, full_margin_loss=True)


class TrailingStopExit:
    """
    Stop hit on the close. Fill is the stop moved against the position by a
    fraction of ATR. Protected positions exit as profit protection.
    """

    before_trail = False

    def __init__(self, risk: RiskManager, protection: ProfitProtection):
        self.risk = risk
        self.protection = protection

    def check(self, position: Position, price: float, snapshot: IndicatorSnapshot) -> Optional[ExitDecision]:
        stop = position.stop_price
        if position.direction is Direction.LONG:
            hit = price <= stop
        else:
            hit = price >= stop
        if not hit:
            return None
        fill = self.risk.stop_fill_price(stop, position.direction, snapshot.atr)
        if self.protection.is_protected(position.max_profit_atr):
            reason = ExitReason.PROFIT_PROTECTION
        else:
            reason = ExitReason.INITIAL_STOP
        return ExitDecision(reason, fill, slippage=abs(stop - fill))


class TakeProfitExit:
    """
    Optional fixed target (percent move from entry) and/or RSI exhaustion exit,
    filled at the close. rsi_exit is the long-side level; shorts use 100 - rsi_exit.
    """

    before_trail = False

    def __init__(self, take_profit_pct: Optional[float] = None, rsi_exit: Optional[float] = None):
        self.take_profit_pct = take_profit_pct
        self.rsi_exit = rsi_exit

    def check(self, position: Position, price: float, snapshot: IndicatorSnapshot) -> Optional[ExitDecision]:
        sign = position.direction.sign
        if self.take_profit_pct is not None:
            change_pct = sign * (price - position.entry_price) / position.entry_price * 100
            if change_pct >= self.take_profit_pct:
                return ExitDecision(ExitReason.TAKE_PROFIT, price)
        if self.rsi_exit is not None and not math.isnan(snapshot.rsi):
            if position.direction is Direction.LONG and snapshot.rsi >= self.rsi_exit:
                return ExitDecision(ExitReason.TAKE_PROFIT, price)
            if position.direction is Direction.SHORT and snapshot.rsi <= 100 - self.rsi_exit:
                return ExitDecision(ExitReason.TAKE_PROFIT, price)
        return None


def default_exit_policies(
    risk: RiskManager,
    protection: ProfitProtection,
    take_profit_pct: Optional[float] = None,
    rsi_exit: Optional[float] = None,
) -> List[ExitPolicy]:
    policies: List[ExitPolicy] = [LiquidationExit(risk), TrailingStopExit(risk, protection)]
    if take_profit_pct is not None or rsi_exit is not None:
        policies.append(TakeProfitExit(take_profit_pct, rsi_exit))
    return policies

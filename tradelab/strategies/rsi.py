"""
RSI Strategy
==============
Uses a simple-average RSI over the last *period* close-to-close
changes.  BUY when RSI recovers up through the oversold level, SELL
when it falls back down through the overbought level.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Sequence

from tradelab.models import (
    DECIMAL_SCALE,
    HUNDRED,
    QUANTITY_SCALE,
    ZERO,
    PriceBar,
    Signal,
    StrategyType,
    divide,
)
from tradelab.ta_utils import closes

from .base import TradingStrategy, require_positive


def relative_strength_index(values: List[Decimal], index: int, period: int) -> Decimal:
    """RSI at *index* from simple averages of gains and losses."""
    gains = ZERO
    losses = ZERO
    for i in range(index - period + 1, index + 1):
        change = values[i] - values[i - 1]
        if change > 0:
            gains += change
        else:
            losses += abs(change)

    avg_gain = divide(gains, Decimal(period), DECIMAL_SCALE)
    avg_loss = divide(losses, Decimal(period), DECIMAL_SCALE)
    if avg_loss == 0:
        return HUNDRED

    rs = divide(avg_gain, avg_loss, DECIMAL_SCALE)
    return HUNDRED - divide(HUNDRED, 1 + rs, QUANTITY_SCALE)


@dataclass(frozen=True)
class RSIStrategy(TradingStrategy):
    period: int = 14
    overbought_level: int = 70
    oversold_level: int = 30

    strategy_type = StrategyType.RSI

    def __post_init__(self):
        require_positive(period=self.period)

    def generate_signal(self, prices: Sequence[PriceBar], index: int) -> Signal:
        if index < self.period + 1:
            return Signal.HOLD

        values = closes(prices)
        current = relative_strength_index(values, index, self.period)
        prev = relative_strength_index(values, index - 1, self.period)
        overbought = Decimal(self.overbought_level)
        oversold = Decimal(self.oversold_level)

        if prev < oversold <= current:
            return Signal.BUY
        if prev > overbought >= current:
            return Signal.SELL
        return Signal.HOLD

    def name(self) -> str:
        return f"RSI ({self.period}, {self.oversold_level}/{self.overbought_level})"

    def parameters(self) -> Dict[str, Any]:
        return {
            "period": self.period,
            "overbought_level": self.overbought_level,
            "oversold_level": self.oversold_level,
        }

    @property
    def minimum_data_points(self) -> int:
        return self.period + 2

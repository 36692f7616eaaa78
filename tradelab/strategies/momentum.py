"""Momentum strategy: trade the *period*-day percentage change crossing a threshold."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Sequence

from tradelab.models import PriceBar, Signal, StrategyType, to_decimal
from tradelab.ta_utils import closes, crossed_above, crossed_below, percent_change

from .base import TradingStrategy, require_positive


@dataclass(frozen=True)
class MomentumStrategy(TradingStrategy):
    period: int = 20
    entry_threshold: float = 0.0
    exit_threshold: float = 0.0

    strategy_type = StrategyType.MOMENTUM

    def __post_init__(self):
        require_positive(period=self.period)

    def generate_signal(self, prices: Sequence[PriceBar], index: int) -> Signal:
        if index < self.period + 1:
            return Signal.HOLD

        values = closes(prices)
        current = self.momentum(values, index)
        prev = self.momentum(values, index - 1)

        if crossed_above(prev, current, to_decimal(float(self.entry_threshold))):
            return Signal.BUY
        if crossed_below(prev, current, to_decimal(float(self.exit_threshold))):
            return Signal.SELL
        return Signal.HOLD

    def momentum(self, values: List[Decimal], index: int) -> Decimal:
        return percent_change(values[index], values[index - self.period])

    def name(self) -> str:
        return f"Momentum ({self.period} days)"

    def parameters(self) -> Dict[str, Any]:
        return {
            "period": self.period,
            "entry_threshold": self.entry_threshold,
            "exit_threshold": self.exit_threshold,
        }

    @property
    def minimum_data_points(self) -> int:
        return self.period + 2

"""
Bollinger Band Strategy
=========================
Mean-reversion on a ``period``-day band of ``std_dev_multiplier``
population standard deviations around the SMA.

  - BUY : previous close at/below the lower band, current close back above it
  - SELL: previous close at/above the upper band, current close back below it
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, NamedTuple, Sequence

from tradelab.models import PriceBar, Signal, StrategyType, to_decimal
from tradelab.ta_utils import closes, sma, std_dev

from .base import TradingStrategy, require_positive


class BollingerBands(NamedTuple):
    middle: Decimal
    upper: Decimal
    lower: Decimal
    std_dev: Decimal


@dataclass(frozen=True)
class BollingerBandStrategy(TradingStrategy):
    period: int = 20
    std_dev_multiplier: float = 2.0

    strategy_type = StrategyType.BOLLINGER_BAND

    def __post_init__(self):
        require_positive(period=self.period)

    def generate_signal(self, prices: Sequence[PriceBar], index: int) -> Signal:
        if index < self.period:
            return Signal.HOLD

        values = closes(prices)
        bands = self.bands(values, index)
        prev_bands = self.bands(values, index - 1)
        close = values[index]
        prev_close = values[index - 1]

        if prev_close <= prev_bands.lower and close > bands.lower:
            return Signal.BUY
        if prev_close >= prev_bands.upper and close < bands.upper:
            return Signal.SELL
        return Signal.HOLD

    def bands(self, values: List[Decimal], index: int) -> BollingerBands:
        middle = sma(values, index, self.period)
        deviation = std_dev(values, index, self.period, middle)
        width = deviation * to_decimal(float(self.std_dev_multiplier))
        return BollingerBands(middle, middle + width, middle - width, deviation)

    def name(self) -> str:
        return f"Bollinger Band ({self.period}, {self.std_dev_multiplier:.1f})"

    def parameters(self) -> Dict[str, Any]:
        return {
            "period": self.period,
            "std_dev_multiplier": self.std_dev_multiplier,
        }

    @property
    def minimum_data_points(self) -> int:
        return self.period + 1

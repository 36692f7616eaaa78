"""
Moving-Average Crossover Strategy
===================================
BUY on a golden cross (short MA moves above long MA), SELL on a dead
cross.  Either simple or exponential averages can be used; the EMA is
seeded with the SMA of the first *period* closes.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Sequence

from tradelab.models import QUANTITY_SCALE, PriceBar, Signal, StrategyType
from tradelab.ta_utils import closes, ema_series, is_dead_cross, is_golden_cross, sma

from .base import TradingStrategy, require_positive


class MAType(str, Enum):
    SMA = "SMA"
    EMA = "EMA"


@dataclass(frozen=True)
class MovingAverageCrossStrategy(TradingStrategy):
    short_period: int = 20
    long_period: int = 60
    ma_type: MAType = MAType.SMA

    strategy_type = StrategyType.MOVING_AVERAGE

    def __post_init__(self):
        require_positive(short_period=self.short_period, long_period=self.long_period)

    def generate_signal(self, prices: Sequence[PriceBar], index: int) -> Signal:
        if index < max(self.short_period, self.long_period):
            return Signal.HOLD

        values = closes(prices)
        short_ma, prev_short_ma = self._moving_average(values, index, self.short_period)
        long_ma, prev_long_ma = self._moving_average(values, index, self.long_period)

        if is_golden_cross(prev_short_ma, short_ma, prev_long_ma, long_ma):
            return Signal.BUY
        if is_dead_cross(prev_short_ma, short_ma, prev_long_ma, long_ma):
            return Signal.SELL
        return Signal.HOLD

    def _moving_average(self, values: List[Decimal], index: int, period: int):
        """Return ``(ma[index], ma[index - 1])``."""
        if self.ma_type == MAType.EMA:
            series = ema_series(values[:index + 1], period, seed_places=QUANTITY_SCALE)
            return series[index], series[index - 1]
        return (
            sma(values, index, period, QUANTITY_SCALE),
            sma(values, index - 1, period, QUANTITY_SCALE),
        )

    def name(self) -> str:
        return f"MA Cross ({self.short_period}/{self.long_period} {self.ma_type.value})"

    def parameters(self) -> Dict[str, Any]:
        return {
            "short_period": self.short_period,
            "long_period": self.long_period,
            "ma_type": self.ma_type.value,
        }

    @property
    def minimum_data_points(self) -> int:
        return max(self.short_period, self.long_period) + 1

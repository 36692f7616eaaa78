"""
MACD Strategy
===============
MACD line = EMA(fast) − EMA(slow); signal line = EMA(signal) of the
MACD line, seeded with the average of its first *signal* values.

  - BUY : MACD crosses above the signal line (golden cross)
  - SELL: MACD crosses below the signal line (dead cross)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from tradelab.models import DECIMAL_SCALE, ZERO, PriceBar, Signal, StrategyType, divide
from tradelab.ta_utils import closes, ema_multiplier, ema_series, is_dead_cross, is_golden_cross

from .base import TradingStrategy, require_positive


@dataclass(frozen=True)
class MACDStrategy(TradingStrategy):
    fast_period: int = 12
    slow_period: int = 26
    signal_period: int = 9

    strategy_type = StrategyType.MACD

    def __post_init__(self):
        require_positive(
            fast_period=self.fast_period,
            slow_period=self.slow_period,
            signal_period=self.signal_period,
        )

    @property
    def _first_macd_index(self) -> int:
        return max(self.fast_period, self.slow_period) - 1

    def generate_signal(self, prices: Sequence[PriceBar], index: int) -> Signal:
        if index < self.minimum_data_points:
            return Signal.HOLD

        macd, signal = self.macd_lines(closes(prices[:index + 1]))
        if is_golden_cross(macd[index - 1], macd[index], signal[index - 1], signal[index]):
            return Signal.BUY
        if is_dead_cross(macd[index - 1], macd[index], signal[index - 1], signal[index]):
            return Signal.SELL
        return Signal.HOLD

    def macd_lines(
        self, values: List[Decimal],
    ) -> Tuple[List[Optional[Decimal]], List[Optional[Decimal]]]:
        """
        Return ``(macd, signal)`` aligned with *values*.

        Until enough MACD values exist to seed the signal EMA, the signal
        line simply mirrors the MACD line.
        """
        fast = ema_series(values, self.fast_period)
        slow = ema_series(values, self.slow_period)
        start = self._first_macd_index

        macd: List[Optional[Decimal]] = [None] * len(values)
        for i in range(start, len(values)):
            macd[i] = fast[i] - slow[i]

        signal: List[Optional[Decimal]] = list(macd)
        seed_end = start + self.signal_period
        if len(values) <= seed_end:
            return macd, signal

        k = ema_multiplier(self.signal_period)
        current = divide(
            sum(macd[start:seed_end], ZERO), Decimal(self.signal_period), DECIMAL_SCALE,
        )
        for i in range(seed_end, len(values)):
            current = (macd[i] - current) * k + current
            signal[i] = current
        return macd, signal

    def name(self) -> str:
        return f"MACD ({self.fast_period}/{self.slow_period}/{self.signal_period})"

    def parameters(self) -> Dict[str, Any]:
        return {
            "fast_period": self.fast_period,
            "slow_period": self.slow_period,
            "signal_period": self.signal_period,
        }

    @property
    def minimum_data_points(self) -> int:
        return self._first_macd_index + 1 + self.signal_period

"""
TradeLab – Core Data Models
=============================
Value objects shared by the strategies, the backtest engine and the
price collectors: daily price bars, trading signals, strategy types and
the backtest request.

All money and ratio figures are ``decimal.Decimal`` so that repeated
runs over identical inputs stay bit-for-bit reproducible.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Dict, Optional, Union


# ─────────────────────────────────────────────────────────────────
# Numeric helpers
# ─────────────────────────────────────────────────────────────────

DECIMAL_SCALE = 6       # intermediate money / ratio maths
QUANTITY_SCALE = 4      # share quantity, ratio display
DISPLAY_SCALE = 2       # money display

HUNDRED = Decimal("100")
ZERO = Decimal("0")

Number = Union[int, float, Decimal, str]


def to_decimal(value: Number) -> Decimal:
    """Convert ints, floats and numeric strings without binary float noise."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def round_half_up(value: Decimal, places: int) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def round_down(value: Decimal, places: int) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_DOWN)


def divide(numerator: Decimal, denominator: Decimal, places: int) -> Decimal:
    """Divide and round half-up to *places* fractional digits."""
    return round_half_up(numerator / denominator, places)


def decimal_to_float(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


# ─────────────────────────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────────────────────────

class Signal(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class StrategyType(str, Enum):
    MOVING_AVERAGE = "MOVING_AVERAGE"
    RSI = "RSI"
    BOLLINGER_BAND = "BOLLINGER_BAND"
    MOMENTUM = "MOMENTUM"
    MACD = "MACD"

    @property
    def label(self) -> str:
        return _STRATEGY_LABELS[self][0]

    @property
    def description(self) -> str:
        return _STRATEGY_LABELS[self][1]


_STRATEGY_LABELS = {
    StrategyType.MOVING_AVERAGE: ("Moving Average", "Moving-average crossover strategy"),
    StrategyType.RSI: ("RSI", "Relative Strength Index strategy"),
    StrategyType.BOLLINGER_BAND: ("Bollinger Band", "Bollinger Band mean-reversion strategy"),
    StrategyType.MOMENTUM: ("Momentum", "Price momentum strategy"),
    StrategyType.MACD: ("MACD", "MACD / signal-line crossover strategy"),
}


# ─────────────────────────────────────────────────────────────────
# Price data
# ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PriceBar:
    """One daily OHLCV bar."""
    date: date
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: int = 0


# ─────────────────────────────────────────────────────────────────
# Backtest request
# ─────────────────────────────────────────────────────────────────

@dataclass
class BacktestRequest:
    """
    Everything needed to run one backtest.

    ``commission_rate``, ``slippage``, ``position_size_percent`` and the
    optional stop-loss / take-profit levels are all percentages
    (``0.1`` means 0.1 %).
    """
    symbol: str
    strategy_type: Union[StrategyType, str]
    start_date: date
    end_date: date
    initial_capital: Decimal
    strategy_params: Dict[str, Any] = field(default_factory=dict)
    position_size_percent: Decimal = Decimal("100")
    commission_rate: Decimal = Decimal("0.015")
    slippage: Decimal = Decimal("0.1")
    stop_loss_percent: Optional[Decimal] = None
    take_profit_percent: Optional[Decimal] = None

    def __post_init__(self):
        self.initial_capital = to_decimal(self.initial_capital)
        self.position_size_percent = to_decimal(self.position_size_percent)
        self.commission_rate = to_decimal(self.commission_rate)
        self.slippage = to_decimal(self.slippage)
        if self.stop_loss_percent is not None:
            self.stop_loss_percent = to_decimal(self.stop_loss_percent)
        if self.take_profit_percent is not None:
            self.take_profit_percent = to_decimal(self.take_profit_percent)

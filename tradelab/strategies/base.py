"""
Strategy Interface
====================
Every strategy is a stateless signal generator: given the full price
series and a bar index it answers BUY, SELL or HOLD using only bars up
to and including that index.  Instances hold nothing but their own
tunable constants, so one instance can be used from any thread.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Sequence

from tradelab.exceptions import StrategyConfigurationError
from tradelab.models import PriceBar, Signal, StrategyType


class TradingStrategy(ABC):
    """Abstract base for all signal generators."""

    strategy_type: StrategyType

    @abstractmethod
    def generate_signal(self, prices: Sequence[PriceBar], index: int) -> Signal:
        """Signal for bar *index*; HOLD while the indicator is warming up."""

    @abstractmethod
    def name(self) -> str:
        """Human-readable name, e.g. ``"RSI (14, 30/70)"``."""

    @abstractmethod
    def parameters(self) -> Dict[str, Any]:
        """The tunable constants this instance was built with."""

    @property
    def minimum_data_points(self) -> int:
        return 1


# ── Parameter coercion ────────────────────────────────────────────

def get_int(params: Mapping[str, Any], key: str, default: int) -> int:
    """Read an integer parameter; numbers truncate, strings are parsed."""
    value = params.get(key)
    if value is None:
        return default
    try:
        if isinstance(value, str):
            return int(value.strip())
        return int(value)
    except (TypeError, ValueError):
        raise StrategyConfigurationError(
            f"Parameter '{key}' must be an integer, got {value!r}"
        )


def get_float(params: Mapping[str, Any], key: str, default: float) -> float:
    """Read a floating-point parameter; numbers widen, strings are parsed."""
    value = params.get(key)
    if value is None:
        return default
    try:
        if isinstance(value, str):
            return float(value.strip())
        return float(value)
    except (TypeError, ValueError):
        raise StrategyConfigurationError(
            f"Parameter '{key}' must be a number, got {value!r}"
        )


def require_positive(**periods: int) -> None:
    for key, value in periods.items():
        if value <= 0:
            raise StrategyConfigurationError(
                f"Parameter '{key}' must be positive, got {value}"
            )

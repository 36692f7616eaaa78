"""
TradeLab – Strategy Factory
=============================
Builds a strategy instance from a type name and a free-form parameter
mapping, applying per-type defaults.  Parameter values may be ints,
floats or numeric strings; they are cast here so strategies only ever
see the types they declare.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Union

from tradelab.exceptions import StrategyConfigurationError
from tradelab.models import StrategyType

from .base import TradingStrategy, get_float, get_int
from .bollinger import BollingerBandStrategy
from .macd import MACDStrategy
from .momentum import MomentumStrategy
from .moving_average import MAType, MovingAverageCrossStrategy
from .rsi import RSIStrategy

__all__ = [
    "TradingStrategy",
    "MovingAverageCrossStrategy",
    "RSIStrategy",
    "BollingerBandStrategy",
    "MomentumStrategy",
    "MACDStrategy",
    "MAType",
    "create_strategy",
    "resolve_strategy_type",
    "default_parameters",
    "available_strategies",
]


def resolve_strategy_type(strategy_type: Union[StrategyType, str]) -> StrategyType:
    """Normalise a type name; unknown names are a configuration error."""
    if isinstance(strategy_type, StrategyType):
        return strategy_type
    try:
        return StrategyType(str(strategy_type).strip().upper())
    except ValueError:
        raise StrategyConfigurationError(
            f"Unsupported strategy type: {strategy_type!r}. "
            f"Expected one of {', '.join(t.value for t in StrategyType)}"
        )


def _ma_type(params: Mapping[str, Any]) -> MAType:
    value = params.get("ma_type")
    if value is None:
        return MAType.SMA
    try:
        return MAType(str(value).strip().upper())
    except ValueError:
        raise StrategyConfigurationError(f"Unsupported moving-average type: {value!r}")


def create_strategy(
    strategy_type: Union[StrategyType, str],
    params: Optional[Mapping[str, Any]] = None,
) -> TradingStrategy:
    """Build a fresh strategy instance; missing parameters take defaults."""
    params = params or {}
    kind = resolve_strategy_type(strategy_type)

    if kind == StrategyType.MOVING_AVERAGE:
        return MovingAverageCrossStrategy(
            short_period=get_int(params, "short_period", 20),
            long_period=get_int(params, "long_period", 60),
            ma_type=_ma_type(params),
        )
    if kind == StrategyType.RSI:
        return RSIStrategy(
            period=get_int(params, "period", 14),
            overbought_level=get_int(params, "overbought_level", 70),
            oversold_level=get_int(params, "oversold_level", 30),
        )
    if kind == StrategyType.BOLLINGER_BAND:
        return BollingerBandStrategy(
            period=get_int(params, "period", 20),
            std_dev_multiplier=get_float(params, "std_dev_multiplier", 2.0),
        )
    if kind == StrategyType.MOMENTUM:
        return MomentumStrategy(
            period=get_int(params, "period", 20),
            entry_threshold=get_float(params, "entry_threshold", 0.0),
            exit_threshold=get_float(params, "exit_threshold", 0.0),
        )
    if kind == StrategyType.MACD:
        return MACDStrategy(
            fast_period=get_int(params, "fast_period", 12),
            slow_period=get_int(params, "slow_period", 26),
            signal_period=get_int(params, "signal_period", 9),
        )
    raise StrategyConfigurationError(f"Unsupported strategy type: {kind!r}")


def default_parameters(strategy_type: Union[StrategyType, str]) -> Dict[str, Any]:
    return create_strategy(strategy_type).parameters()


def available_strategies() -> List[Dict[str, Any]]:
    """Catalogue of every strategy type with its default parameters."""
    return [
        {
            "type": kind.value,
            "label": kind.label,
            "description": kind.description,
            "parameters": default_parameters(kind),
        }
        for kind in StrategyType
    ]

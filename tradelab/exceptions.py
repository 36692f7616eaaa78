"""
TradeLab Exceptions
=====================
Error hierarchy shared by the engine, the optimiser and the API layer.

Every error carries an HTTP-style ``code`` so the FastAPI handlers in
``tradelab.api.error_handlers`` can render it without a lookup table.
"""

from __future__ import annotations

from typing import Any, Optional


class TradeLabError(Exception):
    """Base exception for all TradeLab errors."""

    def __init__(
        self,
        message: str = "An error occurred",
        code: int = 500,
        detail: Optional[str] = None,
    ):
        self.message = message
        self.code = code
        self.detail = detail
        super().__init__(message)


class StrategyConfigurationError(TradeLabError):
    """Unknown strategy type or an unusable strategy parameter."""

    def __init__(self, reason: str):
        super().__init__(
            message="Invalid strategy configuration",
            code=400,
            detail=reason,
        )


class InvalidParameterRangeError(TradeLabError):
    """A malformed optimisation range or an oversized grid."""

    def __init__(self, parameter: str, reason: str):
        self.parameter = parameter
        super().__init__(
            message=f"Invalid range for parameter '{parameter}'",
            code=400,
            detail=reason,
        )


class OptimizationError(TradeLabError):
    """Raised when no parameter combination produced a usable result."""

    def __init__(self, total_combinations: int, last_error: str = ""):
        self.total_combinations = total_combinations
        super().__init__(
            message="Optimization failed: no valid results",
            code=422,
            detail=(
                f"All {total_combinations} parameter combination(s) failed. "
                f"Last error: {last_error or 'n/a'}"
            ),
        )


class ResultNotFoundError(TradeLabError):
    """Raised when a stored backtest result id does not exist."""

    def __init__(self, result_id: Any):
        super().__init__(
            message=f"Backtest result '{result_id}' not found",
            code=404,
            detail=f"No stored backtest result with id {result_id}.",
        )


class ConfigurationError(TradeLabError):
    """Packaged configuration missing, unreadable or failing its schema."""

    def __init__(self, reason: str):
        super().__init__(
            message="Invalid configuration",
            code=500,
            detail=reason,
        )


class PriceDataUnavailableError(TradeLabError):
    """Raised when no price bars exist for the requested symbol and period."""

    def __init__(self, symbol: str, start: Any, end: Any):
        super().__init__(
            message=f"No price data for '{symbol}'",
            code=404,
            detail=f"No daily bars available for '{symbol}' between {start} and {end}.",
        )


class ComparisonError(TradeLabError):
    """Too few stored backtests to compare."""

    def __init__(self, reason: str):
        super().__init__(
            message="Backtest comparison failed",
            code=400,
            detail=reason,
        )

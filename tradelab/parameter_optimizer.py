"""
Grid-Search Parameter Optimizer
=================================
Finds the strategy parameters that maximise a chosen target metric by
brute force over the Cartesian product of per-parameter ranges.

Each range is ``{min, max, step}``.  When both ``min`` and ``step`` are
whole numbers the generated values are ints, otherwise floats; the
strategy factory casts on that basis, so the distinction matters.

Targets:
    TOTAL_RETURN   : total return (%)
    SHARPE_RATIO   : Sharpe ratio
    PROFIT_FACTOR  : profit factor
    MIN_DRAWDOWN   : negated max drawdown (smaller drawdown wins)
    CALMAR_RATIO   : CAGR / max drawdown

The price series is fetched once by the caller and shared read-only by
every worker.  Each combination builds its own strategy and runs the
engine independently on a thread pool; a combination that raises is
logged and dropped.  Results keep grid order, and the best one is picked
with a strict ``>`` so the first of equal targets wins.

⚠ HISTORICAL SIMULATION: not guaranteed future performance.
"""

from __future__ import annotations

import itertools
import logging
import math
import sys
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from tradelab.backtest_engine import BacktestEngine, BacktestResult, get_backtest_engine
from tradelab.exceptions import InvalidParameterRangeError, OptimizationError
from tradelab.models import (
    QUANTITY_SCALE,
    ZERO,
    BacktestRequest,
    PriceBar,
    StrategyType,
    divide,
    to_decimal,
)
from tradelab.strategies import create_strategy, resolve_strategy_type

logger = logging.getLogger(__name__)

# ── Constants ────────────────────────────────────────────────────
DEFAULT_MAX_COMBINATIONS = 10_000
DEFAULT_INITIAL_CAPITAL = Decimal("10000000")
FLOAT_DIGITS = 10           # strip accumulated float noise from grid values
RANGE_EPSILON = 1e-9

ParameterValue = Union[int, float]


class OptimizationTarget(str, Enum):
    TOTAL_RETURN = "TOTAL_RETURN"
    SHARPE_RATIO = "SHARPE_RATIO"
    PROFIT_FACTOR = "PROFIT_FACTOR"
    MIN_DRAWDOWN = "MIN_DRAWDOWN"
    CALMAR_RATIO = "CALMAR_RATIO"


# ─── Data Classes ─────────────────────────────────────────────────

@dataclass(frozen=True)
class ParameterRange:
    """Inclusive ``min..max`` range walked in ``step`` increments."""
    min: ParameterValue
    max: ParameterValue
    step: ParameterValue = 1

    def _bounds(self) -> Tuple[float, float, float]:
        step = float(self.step)
        return float(self.min), float(self.max), step if step > 0 else 1.0

    def count(self) -> int:
        """Number of grid values, without generating them."""
        start, stop, step = self._bounds()
        if stop < start:
            return 0
        steps = (stop - start) / step + RANGE_EPSILON
        if math.isinf(steps):
            return sys.maxsize
        return int(math.floor(steps)) + 1

    def values(self) -> List[ParameterValue]:
        start, _, step = self._bounds()
        integral = start.is_integer() and step.is_integer()
        values: List[ParameterValue] = []
        for k in range(self.count()):
            v = start + k * step
            values.append(int(v) if integral else round(v, FLOAT_DIGITS))
        return values


@dataclass
class ParameterResult:
    """Headline figures for one evaluated combination."""
    parameters: Dict[str, ParameterValue]
    target_value: Decimal
    total_return: Decimal
    max_drawdown: Decimal
    sharpe_ratio: Decimal
    profit_factor: Decimal
    total_trades: int
    win_rate: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "parameters": dict(self.parameters),
            "target_value": float(self.target_value),
            "total_return": float(self.total_return),
            "max_drawdown": float(self.max_drawdown),
            "sharpe_ratio": float(self.sharpe_ratio),
            "profit_factor": float(self.profit_factor),
            "total_trades": self.total_trades,
            "win_rate": float(self.win_rate),
        }


@dataclass
class OptimizationRequest:
    symbol: str
    strategy_type: Union[StrategyType, str]
    start_date: date
    end_date: date
    parameter_ranges: Dict[str, ParameterRange] = field(default_factory=dict)
    target: OptimizationTarget = OptimizationTarget.TOTAL_RETURN
    initial_capital: Decimal = DEFAULT_INITIAL_CAPITAL
    position_size_percent: Decimal = Decimal("100")
    commission_rate: Decimal = Decimal("0.015")
    slippage: Decimal = Decimal("0.1")

    def __post_init__(self):
        self.target = OptimizationTarget(self.target)
        self.initial_capital = to_decimal(self.initial_capital)

    def to_backtest_request(self, params: Mapping[str, Any]) -> BacktestRequest:
        """Per-combination request; optimisation never uses stop-loss / take-profit."""
        return BacktestRequest(
            symbol=self.symbol,
            strategy_type=self.strategy_type,
            strategy_params=dict(params),
            start_date=self.start_date,
            end_date=self.end_date,
            initial_capital=self.initial_capital,
            position_size_percent=self.position_size_percent,
            commission_rate=self.commission_rate,
            slippage=self.slippage,
        )


@dataclass
class OptimizationResult:
    best_parameters: Dict[str, ParameterValue]
    best_result: BacktestResult
    all_results: List[ParameterResult]
    total_combinations: int
    execution_time_ms: int
    target_type: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "best_parameters": dict(self.best_parameters),
            "best_result": self.best_result.to_dict(),
            "all_results": [r.to_dict() for r in self.all_results],
            "total_combinations": self.total_combinations,
            "execution_time_ms": self.execution_time_ms,
            "target_type": self.target_type,
        }


# ─── Grid generation ──────────────────────────────────────────────

def generate_parameter_combinations(
    ranges: Optional[Mapping[str, ParameterRange]],
) -> List[Dict[str, ParameterValue]]:
    """
    Cartesian product of every range, in declaration order.

    No ranges at all yields a single empty combination, i.e. one run on
    the strategy defaults.
    """
    if not ranges:
        return [{}]
    names = list(ranges)
    value_lists = [ranges[name].values() for name in names]
    return [dict(zip(names, combo)) for combo in itertools.product(*value_lists)]


def target_value(result: BacktestResult, target: OptimizationTarget) -> Decimal:
    if target == OptimizationTarget.SHARPE_RATIO:
        return result.sharpe_ratio
    if target == OptimizationTarget.PROFIT_FACTOR:
        return result.profit_factor
    if target == OptimizationTarget.MIN_DRAWDOWN:
        return -result.max_drawdown
    if target == OptimizationTarget.CALMAR_RATIO:
        if result.max_drawdown > 0:
            return divide(result.cagr, result.max_drawdown, QUANTITY_SCALE)
        return ZERO
    return result.total_return


# ─── Optimizer ────────────────────────────────────────────────────

class ParameterOptimizer:
    """
    Usage::

        optimizer = ParameterOptimizer(max_workers=8)
        outcome = optimizer.optimize(request, prices)
        outcome.best_parameters   # {"short_period": 10, "long_period": 50}
    """

    def __init__(
        self,
        engine: Optional[BacktestEngine] = None,
        max_workers: Optional[int] = None,
        max_combinations: int = DEFAULT_MAX_COMBINATIONS,
    ):
        self.engine = engine or get_backtest_engine()
        self.max_workers = max_workers
        self.max_combinations = max_combinations

    def _validate_ranges(self, ranges: Mapping[str, ParameterRange]) -> None:
        for name, rng in ranges.items():
            if float(rng.max) < float(rng.min):
                raise InvalidParameterRangeError(
                    name, f"min ({rng.min}) is greater than max ({rng.max})",
                )

        total = 1
        for rng in ranges.values():
            total *= rng.count()
            if total > self.max_combinations:
                raise InvalidParameterRangeError(
                    "parameter_ranges",
                    f"Too many combinations: more than {self.max_combinations}",
                )

    def optimize(
        self,
        request: OptimizationRequest,
        prices: Sequence[PriceBar],
    ) -> OptimizationResult:
        """Run the full grid and re-run the winner to produce its full result."""
        started = time.perf_counter()
        kind = resolve_strategy_type(request.strategy_type)
        self._validate_ranges(request.parameter_ranges)

        combinations = generate_parameter_combinations(request.parameter_ranges)
        total = len(combinations)
        logger.info(
            "Optimizing %s on %s: %d combination(s), target=%s",
            kind.value, request.symbol, total, request.target.value,
        )

        results, last_error = self._evaluate_all(request, prices, combinations)
        if not results:
            raise OptimizationError(total, last_error)

        best = results[0]
        for candidate in results[1:]:
            if candidate.target_value > best.target_value:
                best = candidate

        best_request = request.to_backtest_request(best.parameters)
        best_result = self.engine.execute(
            best_request,
            create_strategy(best_request.strategy_type, best_request.strategy_params),
            prices,
        )

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "Optimization finished: %d/%d valid, best %s target=%s return=%s%% in %dms",
            len(results), total, best.parameters, best.target_value,
            best.total_return, elapsed_ms,
        )
        return OptimizationResult(
            best_parameters=best.parameters,
            best_result=best_result,
            all_results=results,
            total_combinations=total,
            execution_time_ms=elapsed_ms,
            target_type=request.target.value,
        )

    # ── parallel evaluation ───────────────────────────────────────

    def _evaluate_all(
        self,
        request: OptimizationRequest,
        prices: Sequence[PriceBar],
        combinations: List[Dict[str, ParameterValue]],
    ) -> Tuple[List[ParameterResult], str]:
        total = len(combinations)
        log_interval = max(1, total // 10)
        lock = threading.Lock()
        completed = 0
        last_error = ""

        def evaluate(params: Dict[str, ParameterValue]) -> Optional[ParameterResult]:
            nonlocal completed, last_error
            try:
                result = self._evaluate(request, prices, params)
            except Exception as exc:
                logger.warning("Parameter combination %s failed: %s", params, exc)
                with lock:
                    completed += 1
                    last_error = str(exc)
                return None

            with lock:
                completed += 1
                done = completed
            if done % log_interval == 0 or done == total:
                logger.info(
                    "Optimization progress: %d/%d (%.0f%%)", done, total, done / total * 100,
                )
            return result

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = [pool.submit(evaluate, params) for params in combinations]
            outcomes = [f.result() for f in futures]
        return [r for r in outcomes if r is not None], last_error

    def _evaluate(
        self,
        request: OptimizationRequest,
        prices: Sequence[PriceBar],
        params: Dict[str, ParameterValue],
    ) -> ParameterResult:
        backtest_request = request.to_backtest_request(params)
        strategy = create_strategy(backtest_request.strategy_type, params)
        result = self.engine.execute(backtest_request, strategy, prices)
        return ParameterResult(
            parameters=params,
            target_value=target_value(result, request.target),
            total_return=result.total_return,
            max_drawdown=result.max_drawdown,
            sharpe_ratio=result.sharpe_ratio,
            profit_factor=result.profit_factor,
            total_trades=result.total_trades,
            win_rate=result.win_rate,
        )


# ── Module-level singleton ────────────────────────────────────────

_optimizer: Optional[ParameterOptimizer] = None


def get_parameter_optimizer() -> ParameterOptimizer:
    global _optimizer
    if _optimizer is None:
        from tradelab.config import get_config_manager

        settings = get_config_manager().get_optimizer_settings()
        _optimizer = ParameterOptimizer(
            max_workers=settings.get("max_workers"),
            max_combinations=settings.get("max_combinations", DEFAULT_MAX_COMBINATIONS),
        )
    return _optimizer

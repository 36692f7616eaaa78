"""
Service Layer
===============
Bridges API routes → price provider + backtest engine + optimizer.

Responsibilities:
  1. Fill request gaps from the configured backtest defaults
  2. Fetch the price series once per request (synthetic fallback allowed)
  3. Run the CPU-bound simulation off the event loop
  4. Attach chart series and keep every result in the ``ResultStore``

Error handling strategy:
  - Unknown strategy / bad parameter  → StrategyConfigurationError (400)
  - Bad optimisation range            → InvalidParameterRangeError (400)
  - No price bars at all              → PriceDataUnavailableError (404)
  - Every combination failed          → OptimizationError (422)
  - Fewer than two results to compare → ComparisonError (400)
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from tradelab.backtest_engine import BacktestEngine, BacktestResult, get_backtest_engine
from tradelab.chart_data import ChartData, build_chart_data
from tradelab.comparison import MIN_COMPARED, BacktestComparison, compare_backtests
from tradelab.data_collectors import PriceDataProvider, PriceHistory, get_price_provider
from tradelab.exceptions import ComparisonError, PriceDataUnavailableError, ResultNotFoundError
from tradelab.models import BacktestRequest, PriceBar
from tradelab.parameter_optimizer import (
    OptimizationRequest,
    OptimizationResult,
    ParameterOptimizer,
    get_parameter_optimizer,
)
from tradelab.strategies import available_strategies, create_strategy

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 20

# Used for any request field the caller and the config both leave out
BACKTEST_DEFAULTS: Dict[str, Any] = {
    "initial_capital": 10_000_000,
    "position_size_percent": 100,
    "commission_rate": 0.015,
    "slippage": 0.1,
}

# Ranking key per top-performer metric; anything else compares the newest runs
TOP_PERFORMER_METRICS = {
    "return": "total_return",
    "total_return": "total_return",
    "sharpe": "sharpe_ratio",
    "sharpe_ratio": "sharpe_ratio",
}


# ══════════════════════════════════════════════════════════════════
# Stored runs
# ══════════════════════════════════════════════════════════════════

@dataclass
class BacktestRun:
    """A stored result together with its chart series and data origin."""
    result: BacktestResult
    chart: ChartData
    synthetic: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "result": self.result.to_dict(),
            "chart": self.chart.to_dict(),
            "synthetic_data": self.synthetic,
        }


@dataclass
class OptimizationRun:
    optimization: OptimizationResult
    best_run: BacktestRun

    def to_dict(self) -> Dict[str, Any]:
        data = self.optimization.to_dict()
        data["best_result"] = self.best_run.result.to_dict()
        data["chart"] = self.best_run.chart.to_dict()
        data["synthetic_data"] = self.best_run.synthetic
        return data


class ResultStore:
    """
    In-memory store of backtest runs.

    - Sequential integer ids starting at 1
    - Thread-safe via RLock
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._runs: Dict[int, BacktestRun] = {}
        self._next_id = 1

    def save(self, run: BacktestRun) -> BacktestRun:
        with self._lock:
            run.result.id = self._next_id
            run.result.executed_at = datetime.now(timezone.utc)
            self._runs[self._next_id] = run
            self._next_id += 1
            return run

    def get(self, result_id: int) -> Optional[BacktestRun]:
        with self._lock:
            return self._runs.get(result_id)

    def recent(self, limit: int = DEFAULT_HISTORY_LIMIT) -> List[BacktestRun]:
        """Newest first."""
        with self._lock:
            ids = sorted(self._runs, reverse=True)[:max(0, limit)]
            return [self._runs[i] for i in ids]

    def __len__(self) -> int:
        with self._lock:
            return len(self._runs)


# ══════════════════════════════════════════════════════════════════
# Service
# ══════════════════════════════════════════════════════════════════

class BacktestService:
    """
    Long-lived service shared by every request of one app instance.

    Usage (from a route handler)::

        svc = BacktestService.from_config()
        run = await svc.run_backtest(request)
    """

    def __init__(
        self,
        provider: Optional[PriceDataProvider] = None,
        engine: Optional[BacktestEngine] = None,
        optimizer: Optional[ParameterOptimizer] = None,
        store: Optional[ResultStore] = None,
        defaults: Optional[Dict[str, Any]] = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ):
        self.provider = provider or get_price_provider()
        self.engine = engine or get_backtest_engine()
        self.optimizer = optimizer or ParameterOptimizer(engine=self.engine)
        self.store = store or ResultStore()
        self.defaults = {**BACKTEST_DEFAULTS, **(defaults or {})}
        self.history_limit = history_limit

    @classmethod
    def from_config(cls) -> "BacktestService":
        from tradelab.config import get_config_manager

        config = get_config_manager()
        return cls(
            provider=get_price_provider(),
            engine=get_backtest_engine(),
            optimizer=get_parameter_optimizer(),
            defaults=config.get_backtest_defaults(),
            history_limit=config.get_history_limit(),
        )

    async def close(self) -> None:
        await self.provider.close()

    def default(self, key: str, value: Any) -> Any:
        """``value`` unless it is None, else the configured default."""
        return value if value is not None else self.defaults.get(key)

    # ── 1.  RUN BACKTEST ──────────────────────────────────────────

    async def run_backtest(self, request: BacktestRequest) -> BacktestRun:
        """Fetch prices, build the strategy, simulate and store the run."""
        start = time.perf_counter()
        strategy = create_strategy(request.strategy_type, request.strategy_params)
        history = await self._load_prices(request.symbol, request.start_date, request.end_date)

        logger.info(
            "Backtest start: %s on %s (%s ~ %s, %d bars)",
            strategy.name(), request.symbol, request.start_date, request.end_date, len(history),
        )
        result = await asyncio.to_thread(self.engine.execute, request, strategy, history.bars)
        result.execution_time_ms = int((time.perf_counter() - start) * 1000)

        run = self.store.save(self._to_run(result, history.bars, history.synthetic))
        logger.info(
            "Backtest #%d finished: return=%s%% trades=%d in %dms",
            result.id, result.total_return, result.total_trades, result.execution_time_ms,
        )
        return run

    # ── 2.  OPTIMIZE ──────────────────────────────────────────────

    async def optimize_strategy(self, request: OptimizationRequest) -> OptimizationRun:
        """Grid-search over one shared price series; the winner is stored."""
        history = await self._load_prices(request.symbol, request.start_date, request.end_date)
        outcome = await asyncio.to_thread(self.optimizer.optimize, request, history.bars)

        outcome.best_result.execution_time_ms = outcome.execution_time_ms
        best_run = self.store.save(
            self._to_run(outcome.best_result, history.bars, history.synthetic),
        )
        return OptimizationRun(optimization=outcome, best_run=best_run)

    # ── 3.  HISTORY / LOOKUP ──────────────────────────────────────

    def get_history(self, limit: Optional[int] = None) -> List[BacktestResult]:
        """Stored result summaries, newest first."""
        limit = limit if limit is not None else self.history_limit
        return [run.result for run in self.store.recent(limit)]

    def get_result(self, result_id: int) -> BacktestRun:
        run = self.store.get(result_id)
        if run is None:
            raise ResultNotFoundError(result_id)
        return run

    def get_available_strategies(self) -> List[Dict[str, Any]]:
        return available_strategies()

    # ── 4.  COMPARISON ────────────────────────────────────────────

    def compare_backtests(self, result_ids: Sequence[int]) -> BacktestComparison:
        """Compare stored results by id; unknown ids are skipped."""
        ids = list(dict.fromkeys(result_ids))
        if len(ids) < MIN_COMPARED:
            raise ComparisonError(f"At least {MIN_COMPARED} distinct result ids are required")
        runs = [run for run in (self.store.get(i) for i in ids) if run is not None]
        logger.info("Comparing %d of %d requested backtest(s)", len(runs), len(ids))
        return compare_backtests([(run.result, run.chart) for run in runs])

    def compare_top_performers(self, metric: str = "return", limit: int = 5) -> BacktestComparison:
        """Compare the best ``limit`` stored results by return or Sharpe, else the newest."""
        runs = self.store.recent(len(self.store))
        key = TOP_PERFORMER_METRICS.get(metric.lower())
        if key is not None:
            runs = sorted(runs, key=lambda run: getattr(run.result, key), reverse=True)
        return self.compare_backtests([run.result.id for run in runs[:limit]])

    def compare_strategy_variants(self, strategy_name: str, limit: int = 5) -> BacktestComparison:
        """Compare the newest results whose strategy name contains *strategy_name*."""
        needle = strategy_name.lower()
        variants = [
            run for run in self.store.recent(len(self.store))
            if needle in run.result.strategy_name.lower()
        ]
        if len(variants) < MIN_COMPARED:
            raise ComparisonError(f"Fewer than {MIN_COMPARED} stored variants of '{strategy_name}'")
        return self.compare_backtests([run.result.id for run in variants[:limit]])

    # ── helpers ───────────────────────────────────────────────────

    async def _load_prices(self, symbol, start, end) -> PriceHistory:
        history = await self.provider.get_price_history(symbol, start, end)
        if not history.bars:
            raise PriceDataUnavailableError(symbol, start, end)
        return history

    @staticmethod
    def _to_run(result: BacktestResult, prices: Sequence[PriceBar], synthetic: bool) -> BacktestRun:
        return BacktestRun(
            result=result,
            chart=build_chart_data(result, prices),
            synthetic=synthetic,
        )

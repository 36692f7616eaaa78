"""
Backtest Routes
=================
POST /api/v1/backtest                  – Run one strategy over a date range.
POST /api/v1/backtest/optimize         – Grid-search a strategy's parameters.
GET  /api/v1/backtest/history          – Most recent stored results.
GET  /api/v1/backtest/result/{id}      – One stored result with chart series.
GET  /api/v1/backtest/strategies       – Available strategies and defaults.
POST /api/v1/backtest/compare          – Compare stored results by id.
GET  /api/v1/backtest/compare/top      – Compare the best stored results.
GET  /api/v1/backtest/compare/variants – Compare variants of one strategy.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, Field, model_validator

from tradelab.api.dependencies import get_service, verify_api_key
from tradelab.models import BacktestRequest
from tradelab.parameter_optimizer import (
    OptimizationRequest,
    OptimizationTarget,
    ParameterRange,
)

router = APIRouter()


# ══════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════

class _PeriodRequest(BaseModel):
    symbol: str = Field(
        ..., min_length=1, max_length=20,
        description="Ticker symbol, e.g. AAPL, 005930.KS",
    )
    strategy_type: str = Field(
        ...,
        description="MOVING_AVERAGE | RSI | BOLLINGER_BAND | MOMENTUM | MACD",
        json_schema_extra={"examples": ["MOVING_AVERAGE"]},
    )
    start_date: date
    end_date: date
    initial_capital: Optional[float] = Field(None, gt=0)
    position_size_percent: Optional[float] = Field(None, gt=0, le=100)
    commission_rate: Optional[float] = Field(None, ge=0, lt=100)
    slippage: Optional[float] = Field(None, ge=0, lt=100)

    @model_validator(mode="after")
    def _check_period(self):
        if self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class BacktestRunRequest(_PeriodRequest):
    """Request body for a single backtest."""
    strategy_params: Dict[str, Any] = Field(
        default_factory=dict,
        json_schema_extra={"examples": [{"short_period": 5, "long_period": 20}]},
    )
    stop_loss_percent: Optional[float] = Field(None, gt=0)
    take_profit_percent: Optional[float] = Field(None, gt=0)


class ParameterRangeModel(BaseModel):
    min: float
    max: float
    step: float = 1


class OptimizeRequest(_PeriodRequest):
    """Request body for grid-search optimisation."""
    parameter_ranges: Dict[str, ParameterRangeModel] = Field(
        default_factory=dict,
        json_schema_extra={"examples": [{
            "short_period": {"min": 5, "max": 15, "step": 5},
            "long_period": {"min": 20, "max": 60, "step": 20},
        }]},
    )
    target: OptimizationTarget = OptimizationTarget.TOTAL_RETURN


class CompareRequest(BaseModel):
    result_ids: List[int] = Field(..., json_schema_extra={"examples": [[1, 2, 3]]})


# ══════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════

class BacktestResponse(BaseModel):
    result: Dict[str, Any]
    chart: Dict[str, Any]
    synthetic_data: bool = False


class OptimizationResponse(BaseModel):
    best_parameters: Dict[str, Any]
    best_result: Dict[str, Any]
    all_results: List[Dict[str, Any]]
    total_combinations: int
    execution_time_ms: int
    target_type: str
    chart: Dict[str, Any]
    synthetic_data: bool = False


class BacktestSummary(BaseModel):
    id: Optional[int] = None
    strategy_name: str
    strategy_type: str
    symbol: str
    start_date: str
    end_date: str
    initial_capital: float
    final_capital: float
    total_return: float
    cagr: float
    max_drawdown: float
    sharpe_ratio: float
    profit_factor: float
    total_trades: int
    win_rate: float
    executed_at: Optional[str] = None
    execution_time_ms: int = 0


class ComparisonResponse(BaseModel):
    backtests: List[Dict[str, Any]]
    rankings: Dict[str, List[Dict[str, Any]]]
    chart: Dict[str, Any]
    summary: Dict[str, Any]
    generated_at: str


class StrategyInfo(BaseModel):
    type: str
    label: str
    description: str
    parameters: Dict[str, Any]


# ══════════════════════════════════════════════════════════════════
# Run / optimise
# ══════════════════════════════════════════════════════════════════

@router.post(
    "/backtest",
    response_model=BacktestResponse,
    summary="Run a backtest",
    description="Simulate one strategy on daily bars and store the result.",
)
async def run_backtest(
    body: BacktestRunRequest,
    service=Depends(get_service),
    _api_key: str = Depends(verify_api_key),
):
    request = BacktestRequest(
        symbol=body.symbol.strip().upper(),
        strategy_type=body.strategy_type,
        strategy_params=body.strategy_params,
        start_date=body.start_date,
        end_date=body.end_date,
        initial_capital=service.default("initial_capital", body.initial_capital),
        position_size_percent=service.default("position_size_percent", body.position_size_percent),
        commission_rate=service.default("commission_rate", body.commission_rate),
        slippage=service.default("slippage", body.slippage),
        stop_loss_percent=body.stop_loss_percent,
        take_profit_percent=body.take_profit_percent,
    )
    run = await service.run_backtest(request)
    return BacktestResponse(**run.to_dict())


@router.post(
    "/backtest/optimize",
    response_model=OptimizationResponse,
    summary="Optimise strategy parameters",
    description=(
        "Backtest every combination of the given parameter ranges and "
        "return the best one for the chosen target."
    ),
)
async def optimize_strategy(
    body: OptimizeRequest,
    service=Depends(get_service),
    _api_key: str = Depends(verify_api_key),
):
    request = OptimizationRequest(
        symbol=body.symbol.strip().upper(),
        strategy_type=body.strategy_type,
        start_date=body.start_date,
        end_date=body.end_date,
        parameter_ranges={
            name: ParameterRange(min=r.min, max=r.max, step=r.step)
            for name, r in body.parameter_ranges.items()
        },
        target=body.target,
        initial_capital=service.default("initial_capital", body.initial_capital),
        position_size_percent=service.default("position_size_percent", body.position_size_percent),
        commission_rate=service.default("commission_rate", body.commission_rate),
        slippage=service.default("slippage", body.slippage),
    )
    run = await service.optimize_strategy(request)
    return OptimizationResponse(**run.to_dict())


# ══════════════════════════════════════════════════════════════════
# Stored results
# ══════════════════════════════════════════════════════════════════

@router.get(
    "/backtest/history",
    response_model=List[BacktestSummary],
    summary="Recent backtests",
)
async def backtest_history(
    limit: Optional[int] = Query(None, ge=1, le=100),
    service=Depends(get_service),
    _api_key: str = Depends(verify_api_key),
):
    return [BacktestSummary(**r.to_summary_dict()) for r in service.get_history(limit)]


@router.get(
    "/backtest/result/{result_id}",
    response_model=BacktestResponse,
    summary="Stored backtest result",
)
async def backtest_result(
    result_id: int = Path(..., ge=1),
    service=Depends(get_service),
    _api_key: str = Depends(verify_api_key),
):
    return BacktestResponse(**service.get_result(result_id).to_dict())


@router.get(
    "/backtest/strategies",
    response_model=List[StrategyInfo],
    summary="Available strategies",
)
async def list_strategies(
    service=Depends(get_service),
    _api_key: str = Depends(verify_api_key),
):
    return [StrategyInfo(**s) for s in service.get_available_strategies()]


# ══════════════════════════════════════════════════════════════════
# Comparison
# ══════════════════════════════════════════════════════════════════

@router.post(
    "/backtest/compare",
    response_model=ComparisonResponse,
    summary="Compare stored backtests",
    description="Rank two or more stored results side by side.",
)
async def compare_backtests(
    body: CompareRequest,
    service=Depends(get_service),
    _api_key: str = Depends(verify_api_key),
):
    return ComparisonResponse(**service.compare_backtests(body.result_ids).to_dict())


@router.get(
    "/backtest/compare/top",
    response_model=ComparisonResponse,
    summary="Compare the best stored backtests",
)
async def compare_top_performers(
    metric: str = Query("return", description="return | sharpe | anything else: newest"),
    limit: int = Query(5, ge=2, le=20),
    service=Depends(get_service),
    _api_key: str = Depends(verify_api_key),
):
    return ComparisonResponse(**service.compare_top_performers(metric, limit).to_dict())


@router.get(
    "/backtest/compare/variants",
    response_model=ComparisonResponse,
    summary="Compare variants of one strategy",
)
async def compare_strategy_variants(
    strategy_name: str = Query(..., min_length=1),
    limit: int = Query(5, ge=2, le=20),
    service=Depends(get_service),
    _api_key: str = Depends(verify_api_key),
):
    return ComparisonResponse(**service.compare_strategy_variants(strategy_name, limit).to_dict())

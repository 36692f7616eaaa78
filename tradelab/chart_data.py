"""
Chart Series
==============
Derived series the dashboard plots next to a backtest result:

  - equity curve   : sampled every ``CHART_SAMPLING_INTERVAL`` bars,
                     linearly interpolated from initial to final capital
  - drawdown curve : negative % decline of that curve from its running peak
  - benchmark      : buy-and-hold value of the initial capital
  - monthly table  : trades grouped by exit month
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Sequence

from tradelab.backtest_engine import BacktestResult
from tradelab.models import (
    DISPLAY_SCALE,
    HUNDRED,
    QUANTITY_SCALE,
    ZERO,
    PriceBar,
    divide,
    round_half_up,
)

CHART_SAMPLING_INTERVAL = 5     # one point per trading week


@dataclass
class MonthlyPerformance:
    month: str                      # YYYY-MM
    trade_count: int = 0
    profit: Decimal = ZERO
    return_pct: Decimal = ZERO      # sum of per-trade returns

    def to_dict(self) -> Dict[str, Any]:
        return {
            "month": self.month,
            "trade_count": self.trade_count,
            "profit": float(round_half_up(self.profit, DISPLAY_SCALE)),
            "return_pct": float(round_half_up(self.return_pct, QUANTITY_SCALE)),
        }


@dataclass
class ChartData:
    equity_labels: List[str] = field(default_factory=list)
    equity_curve: List[Decimal] = field(default_factory=list)
    drawdown_curve: List[Decimal] = field(default_factory=list)
    benchmark_curve: List[Decimal] = field(default_factory=list)
    monthly_performance: List[MonthlyPerformance] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "equity_labels": list(self.equity_labels),
            "equity_curve": [float(v) for v in self.equity_curve],
            "drawdown_curve": [float(v) for v in self.drawdown_curve],
            "benchmark_curve": [float(v) for v in self.benchmark_curve],
            "monthly_performance": [m.to_dict() for m in self.monthly_performance],
        }


def monthly_performance(result: BacktestResult) -> List[MonthlyPerformance]:
    months: Dict[str, MonthlyPerformance] = {}
    for trade in result.trades:
        key = trade.exit_date.strftime("%Y-%m")
        entry = months.setdefault(key, MonthlyPerformance(month=key))
        entry.trade_count += 1
        entry.profit += trade.profit
        entry.return_pct += trade.profit_percent
    return [months[key] for key in sorted(months)]


def build_chart_data(result: BacktestResult, prices: Sequence[PriceBar]) -> ChartData:
    """Compute every chart series for *result* over *prices*."""
    chart = ChartData(monthly_performance=monthly_performance(result))
    if not prices:
        return chart

    initial = result.initial_capital
    profit_delta = result.final_capital - initial
    first_close = prices[0].close
    peak = initial

    for i in range(0, len(prices), CHART_SAMPLING_INTERVAL):
        bar = prices[i]
        chart.equity_labels.append(bar.date.isoformat())

        progress = Decimal(i) / Decimal(len(prices))
        equity = round_half_up(initial + profit_delta * progress, DISPLAY_SCALE)
        chart.equity_curve.append(equity)

        if equity > peak:
            peak = equity
        if peak > 0:
            chart.drawdown_curve.append(-(divide(peak - equity, peak, QUANTITY_SCALE) * HUNDRED))
        else:
            chart.drawdown_curve.append(ZERO)

        if first_close > 0:
            chart.benchmark_curve.append(divide(initial * bar.close, first_close, DISPLAY_SCALE))
        else:
            chart.benchmark_curve.append(initial)

    return chart

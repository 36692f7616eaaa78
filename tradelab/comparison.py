"""
Backtest Comparison
=====================
Side-by-side view of two or more stored backtests:

  - per-backtest headline figures with a chart colour
  - rankings per metric plus a weighted overall score
  - equity curves rebased to percent change, drawdown curves and
    monthly returns keyed by result id
  - a summary (best / lowest-risk strategy, averages, common period)

Overall score (0..100):
    30 × return / best return
  + 30 × Sharpe / best Sharpe
  + 20 × win rate / best win rate
  + 20 × (1 − drawdown / worst drawdown)

A term is skipped when its best (or worst) value is not positive.
Ties keep the order the results were passed in.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from tradelab.backtest_engine import BacktestResult
from tradelab.chart_data import ChartData
from tradelab.exceptions import ComparisonError
from tradelab.models import DISPLAY_SCALE, HUNDRED, QUANTITY_SCALE, ZERO, divide, round_half_up

COLOR_PALETTE = (
    "#3B82F6",  # blue
    "#EF4444",  # red
    "#10B981",  # green
    "#F59E0B",  # amber
    "#8B5CF6",  # purple
    "#EC4899",  # pink
    "#06B6D4",  # cyan
    "#84CC16",  # lime
)

MIN_COMPARED = 2

SCORE_WEIGHTS = {
    "total_return": Decimal("30"),
    "sharpe_ratio": Decimal("30"),
    "win_rate": Decimal("20"),
    "max_drawdown": Decimal("20"),
}

# metric name → higher is better
RANKED_METRICS: Tuple[Tuple[str, bool], ...] = (
    ("total_return", True),
    ("sharpe_ratio", True),
    ("max_drawdown", False),
    ("win_rate", True),
    ("profit_factor", True),
    ("cagr", True),
)

Entry = Tuple[BacktestResult, ChartData]


@dataclass
class RankEntry:
    rank: int
    result_id: Optional[int]
    strategy_name: str
    value: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rank": self.rank,
            "result_id": self.result_id,
            "strategy_name": self.strategy_name,
            "value": float(self.value),
        }


@dataclass
class ComparisonSummary:
    total_backtests: int
    best_return_strategy: str
    best_return: Decimal
    lowest_risk_strategy: str
    lowest_drawdown: Decimal
    best_sharpe_strategy: str
    best_sharpe: Decimal
    avg_return: Decimal
    avg_sharpe: Decimal
    avg_max_drawdown: Decimal
    profitable_ratio: Decimal
    common_start_date: str
    common_end_date: str

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for key, value in self.__dict__.items():
            data[key] = float(value) if isinstance(value, Decimal) else value
        return data


@dataclass
class BacktestComparison:
    backtests: List[Dict[str, Any]]
    rankings: Dict[str, List[RankEntry]]
    summary: ComparisonSummary
    labels: List[str] = field(default_factory=list)
    equity_curves: Dict[int, List[Decimal]] = field(default_factory=dict)
    drawdown_curves: Dict[int, List[Decimal]] = field(default_factory=dict)
    monthly_returns: List[Dict[str, Any]] = field(default_factory=list)
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "backtests": self.backtests,
            "rankings": {
                metric: [r.to_dict() for r in entries]
                for metric, entries in self.rankings.items()
            },
            "chart": {
                "labels": list(self.labels),
                "equity_curves": {
                    str(k): [float(v) for v in curve] for k, curve in self.equity_curves.items()
                },
                "drawdown_curves": {
                    str(k): [float(v) for v in curve] for k, curve in self.drawdown_curves.items()
                },
                "monthly_returns": self.monthly_returns,
            },
            "summary": self.summary.to_dict(),
            "generated_at": self.generated_at.isoformat(),
        }


# ─── Rankings ─────────────────────────────────────────────────────

def rank_by(
    results: Sequence[BacktestResult],
    value_of: Callable[[BacktestResult], Decimal],
    descending: bool = True,
) -> List[RankEntry]:
    ordered = sorted(results, key=value_of, reverse=descending)
    return [
        RankEntry(rank=i + 1, result_id=r.id, strategy_name=r.strategy_name, value=value_of(r))
        for i, r in enumerate(ordered)
    ]


def overall_scores(results: Sequence[BacktestResult]) -> List[Decimal]:
    """Weighted 0..100 score per result, in input order."""
    best = {name: max(getattr(r, name) for r in results) for name in SCORE_WEIGHTS}
    scores = []
    for r in results:
        score = ZERO
        for name in ("total_return", "sharpe_ratio", "win_rate"):
            if best[name] > 0:
                score += divide(getattr(r, name), best[name], QUANTITY_SCALE) * SCORE_WEIGHTS[name]
        if best["max_drawdown"] > 0:
            ratio = divide(r.max_drawdown, best["max_drawdown"], QUANTITY_SCALE)
            score += (1 - ratio) * SCORE_WEIGHTS["max_drawdown"]
        scores.append(round_half_up(score, DISPLAY_SCALE))
    return scores


def rank_by_overall_score(results: Sequence[BacktestResult]) -> List[RankEntry]:
    scored = list(zip(results, overall_scores(results)))
    # sorted() is stable, so equal scores keep input order
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return [
        RankEntry(rank=i + 1, result_id=r.id, strategy_name=r.strategy_name, value=score)
        for i, (r, score) in enumerate(scored)
    ]


# ─── Chart series ─────────────────────────────────────────────────

def normalize_to_percent(curve: Sequence[Decimal]) -> List[Decimal]:
    """Rebase a value curve to percent change from its first point."""
    if not curve:
        return []
    initial = curve[0]
    if initial == 0:
        return list(curve)
    return [divide(v - initial, initial, QUANTITY_SCALE) * HUNDRED for v in curve]


def monthly_returns(entries: Sequence[Entry]) -> List[Dict[str, Any]]:
    months: Dict[str, Dict[str, float]] = {}
    for result, chart in entries:
        for month in chart.monthly_performance:
            months.setdefault(month.month, {})[str(result.id)] = float(
                round_half_up(month.return_pct, QUANTITY_SCALE),
            )
    return [{"month": m, "returns": months[m]} for m in sorted(months)]


# ─── Summary ──────────────────────────────────────────────────────

def _average(values: Sequence[Decimal]) -> Decimal:
    return divide(sum(values, ZERO), Decimal(len(values)), QUANTITY_SCALE)


def summarize(results: Sequence[BacktestResult]) -> ComparisonSummary:
    best_return = max(results, key=lambda r: r.total_return)
    lowest_drawdown = min(results, key=lambda r: r.max_drawdown)
    best_sharpe = max(results, key=lambda r: r.sharpe_ratio)
    profitable = sum(1 for r in results if r.total_return > 0)

    return ComparisonSummary(
        total_backtests=len(results),
        best_return_strategy=best_return.strategy_name,
        best_return=best_return.total_return,
        lowest_risk_strategy=lowest_drawdown.strategy_name,
        lowest_drawdown=lowest_drawdown.max_drawdown,
        best_sharpe_strategy=best_sharpe.strategy_name,
        best_sharpe=best_sharpe.sharpe_ratio,
        avg_return=_average([r.total_return for r in results]),
        avg_sharpe=_average([r.sharpe_ratio for r in results]),
        avg_max_drawdown=_average([r.max_drawdown for r in results]),
        profitable_ratio=divide(Decimal(profitable) * HUNDRED, Decimal(len(results)), DISPLAY_SCALE),
        common_start_date=max(r.start_date for r in results).isoformat(),
        common_end_date=min(r.end_date for r in results).isoformat(),
    )


# ─── Entry point ──────────────────────────────────────────────────

def compare_backtests(entries: Sequence[Entry]) -> BacktestComparison:
    """Build the full comparison for stored ``(result, chart)`` pairs."""
    if len(entries) < MIN_COMPARED:
        raise ComparisonError(
            f"At least {MIN_COMPARED} stored backtests are required, got {len(entries)}",
        )

    results = [result for result, _ in entries]
    backtests = []
    for i, result in enumerate(results):
        item = result.to_summary_dict()
        item.update({
            "sortino_ratio": float(result.sortino_ratio),
            "avg_holding_days": float(result.avg_holding_days),
            "color": COLOR_PALETTE[i % len(COLOR_PALETTE)],
        })
        backtests.append(item)

    rankings = {
        metric: rank_by(results, lambda r, m=metric: getattr(r, m), descending)
        for metric, descending in RANKED_METRICS
    }
    rankings["overall_score"] = rank_by_overall_score(results)

    return BacktestComparison(
        backtests=backtests,
        rankings=rankings,
        summary=summarize(results),
        labels=list(entries[0][1].equity_labels),
        equity_curves={r.id: normalize_to_percent(c.equity_curve) for r, c in entries},
        drawdown_curves={r.id: list(c.drawdown_curve) for r, c in entries},
        monthly_returns=monthly_returns(entries),
    )

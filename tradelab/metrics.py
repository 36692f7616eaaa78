"""
Performance Metrics
=====================
Post-simulation pass that turns a trade ledger and the final capital
into return and risk-adjusted figures.

Every division rounds half-up at a fixed scale and every degenerate
denominator maps to a documented sentinel instead of raising:

  - no trades                → win rate, averages, Sharpe, Sortino = 0
  - no losing amount         → profit factor = MAX_RATIO_VALUE
  - zero return volatility   → Sharpe = 0
  - zero downside deviation  → Sortino = MAX_RATIO_VALUE
  - ``days <= 0``            → CAGR = 0, Sharpe / Sortino = 0
  - CAGR over the cap        → MAX_CAGR_VALUE
  - zero max drawdown        → Calmar = 0
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, Sequence

from tradelab.models import (
    DECIMAL_SCALE,
    DISPLAY_SCALE,
    HUNDRED,
    QUANTITY_SCALE,
    ZERO,
    divide,
    round_half_up,
    to_decimal,
)
from tradelab.ta_utils import sqrt_decimal

if TYPE_CHECKING:
    from tradelab.backtest_engine import Trade

# ─── Constants ────────────────────────────────────────────────────

RISK_FREE_RATE = Decimal("3")           # annual, percent
MAX_RATIO_VALUE = Decimal("999.99")     # stands in for an infinite ratio
MAX_CAGR_VALUE = Decimal("999999.99")   # caps CAGR annualised from very short spans
MAX_CAGR_FLOAT = float(MAX_CAGR_VALUE)
TRADING_DAYS_PER_YEAR = 252.0
DAYS_PER_YEAR = 365.0


@dataclass(frozen=True)
class PerformanceMetrics:
    total_return: Decimal
    cagr: Decimal
    win_rate: Decimal
    avg_win: Decimal
    avg_loss: Decimal
    profit_factor: Decimal
    avg_holding_days: Decimal
    sharpe_ratio: Decimal
    sortino_ratio: Decimal


# ── Return ──────────────────────────────────────────────────────

def total_return(initial_capital: Decimal, final_capital: Decimal) -> Decimal:
    """Total return in percent."""
    return divide(final_capital - initial_capital, initial_capital, DECIMAL_SCALE) * HUNDRED


def cagr(initial_capital: Decimal, final_capital: Decimal, days: int) -> Decimal:
    """Compound annual growth rate in percent; 0 for an empty period, capped above."""
    years = days / DAYS_PER_YEAR
    if years <= 0:
        return ZERO
    growth = float(divide(final_capital, initial_capital, DECIMAL_SCALE))
    if growth <= 0:
        return Decimal("-100")
    try:
        value = (math.pow(growth, 1.0 / years) - 1) * 100
    except OverflowError:
        return MAX_CAGR_VALUE
    if value > MAX_CAGR_FLOAT:
        return MAX_CAGR_VALUE
    return round_half_up(to_decimal(value), DECIMAL_SCALE)


# ── Trade statistics ────────────────────────────────────────────

def win_rate(winning_trades: int, total_trades: int) -> Decimal:
    if total_trades == 0:
        return ZERO
    return divide(Decimal(winning_trades), Decimal(total_trades), QUANTITY_SCALE) * HUNDRED


def average_amount(total_amount: Decimal, count: int) -> Decimal:
    if count == 0:
        return ZERO
    return divide(total_amount, Decimal(count), DISPLAY_SCALE)


def profit_factor(total_win_amount: Decimal, total_loss_amount: Decimal) -> Decimal:
    if total_loss_amount == 0:
        return MAX_RATIO_VALUE
    return divide(total_win_amount, total_loss_amount, QUANTITY_SCALE)


def average_holding_days(trades: Sequence["Trade"]) -> Decimal:
    if not trades:
        return ZERO
    total = sum(t.holding_days for t in trades)
    return divide(Decimal(total), Decimal(len(trades)), DISPLAY_SCALE)


# ── Risk-adjusted ratios ────────────────────────────────────────

def return_std_dev(trades: Sequence["Trade"]) -> Decimal:
    """Population standard deviation of per-trade ``profit_percent``."""
    returns = [t.profit_percent for t in trades]
    n = Decimal(len(returns))
    mean = divide(sum(returns, ZERO), n, DECIMAL_SCALE)
    squared = sum(((r - mean) ** 2 for r in returns), ZERO)
    return sqrt_decimal(divide(squared, n, DECIMAL_SCALE))


def downside_deviation(trades: Sequence["Trade"]) -> Decimal:
    """Root of the squared losing returns averaged over *all* trades."""
    negatives = [t.profit_percent for t in trades if t.profit_percent < 0]
    if not negatives:
        return ZERO
    squared = sum((r ** 2 for r in negatives), ZERO)
    return sqrt_decimal(divide(squared, Decimal(len(trades)), DECIMAL_SCALE))


def annualize_return(total_return_pct: Decimal, days: int) -> Decimal:
    return total_return_pct * to_decimal(DAYS_PER_YEAR / days)


def annualize_volatility(volatility: Decimal, trade_count: int) -> Decimal:
    return volatility * to_decimal(math.sqrt(TRADING_DAYS_PER_YEAR / trade_count))


def sharpe_ratio(trades: Sequence["Trade"], total_return_pct: Decimal, days: int) -> Decimal:
    if not trades:
        return ZERO
    std = return_std_dev(trades)
    if std == 0 or days <= 0:
        return ZERO
    annual_return = annualize_return(total_return_pct, days)
    annual_std = annualize_volatility(std, len(trades))
    return divide(annual_return - RISK_FREE_RATE, annual_std, QUANTITY_SCALE)


def sortino_ratio(trades: Sequence["Trade"], total_return_pct: Decimal, days: int) -> Decimal:
    if not trades:
        return ZERO
    downside = downside_deviation(trades)
    if downside == 0:
        return MAX_RATIO_VALUE
    if days <= 0:
        return ZERO
    annual_return = annualize_return(total_return_pct, days)
    annual_downside = annualize_volatility(downside, len(trades))
    return divide(annual_return - RISK_FREE_RATE, annual_downside, QUANTITY_SCALE)


def calmar_ratio(cagr_pct: Optional[Decimal], max_drawdown: Optional[Decimal]) -> Decimal:
    """CAGR over the absolute max drawdown; 0 when either is missing or DD is 0."""
    if cagr_pct is None or max_drawdown is None or max_drawdown == 0:
        return ZERO
    return divide(cagr_pct, abs(max_drawdown), QUANTITY_SCALE)


# ── Aggregate ───────────────────────────────────────────────────

def calculate_metrics(
    initial_capital: Decimal,
    final_capital: Decimal,
    trades: Sequence["Trade"],
    days: int,
    winning_trades: int,
    losing_trades: int,
    total_win_amount: Decimal,
    total_loss_amount: Decimal,
) -> PerformanceMetrics:
    """Compute every summary figure for a finished simulation."""
    ret = total_return(initial_capital, final_capital)
    return PerformanceMetrics(
        total_return=ret,
        cagr=cagr(initial_capital, final_capital, days),
        win_rate=win_rate(winning_trades, winning_trades + losing_trades),
        avg_win=average_amount(total_win_amount, winning_trades),
        avg_loss=average_amount(total_loss_amount, losing_trades),
        profit_factor=profit_factor(total_win_amount, total_loss_amount),
        avg_holding_days=average_holding_days(trades),
        sharpe_ratio=sharpe_ratio(trades, ret, days),
        sortino_ratio=sortino_ratio(trades, ret, days),
    )

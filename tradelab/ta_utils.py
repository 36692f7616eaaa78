"""
Shared Technical Analysis Utilities
======================================
Canonical Decimal implementations of SMA, EMA, population standard
deviation and the crossover predicates used by every strategy.  Every
strategy that needs these indicators should import from here instead
of reimplementing them.

All functions operate on plain Python lists of ``Decimal`` closes
(no NumPy required) and round half-up at each division so results are
reproducible.
"""

from __future__ import annotations

import math
from decimal import Decimal
from typing import List, Optional, Sequence

from tradelab.models import DECIMAL_SCALE, HUNDRED, ZERO, PriceBar, divide, to_decimal


def closes(prices: Sequence[PriceBar]) -> List[Decimal]:
    """Extract the close column from a price series."""
    return [bar.close for bar in prices]


# ── SMA ─────────────────────────────────────────────────────────

def sma(values: Sequence[Decimal], index: int, period: int,
        places: int = DECIMAL_SCALE) -> Decimal:
    """Simple average of the *period* values ending at *index*."""
    if period <= 0 or index < period - 1:
        raise ValueError(f"Insufficient data: index={index}, period={period}")
    window = values[index - period + 1:index + 1]
    return divide(sum(window, ZERO), Decimal(period), places)


# ── EMA ─────────────────────────────────────────────────────────

def ema_multiplier(period: int) -> Decimal:
    """``2 / (period + 1)`` taken from its float value, as a Decimal."""
    return to_decimal(2.0 / (period + 1))


def ema_series(values: Sequence[Decimal], period: int,
               seed_places: int = DECIMAL_SCALE) -> List[Optional[Decimal]]:
    """
    Compute a full EMA series.

    The first ``period - 1`` entries are ``None``; entry ``period - 1``
    is the SMA seed, then each subsequent value uses::

        k = 2 / (period + 1)
        ema[i] = (values[i] - ema[i-1]) * k + ema[i-1]
    """
    if period <= 0:
        raise ValueError(f"EMA period must be positive, got {period}")
    result: List[Optional[Decimal]] = [None] * len(values)
    if len(values) < period:
        return result

    k = ema_multiplier(period)
    current = sma(values, period - 1, period, seed_places)
    result[period - 1] = current
    for i in range(period, len(values)):
        current = (values[i] - current) * k + current
        result[i] = current
    return result


# ── Dispersion ──────────────────────────────────────────────────

def sqrt_decimal(value: Decimal) -> Decimal:
    """Square root through float, the same way the ratio maths does it."""
    if value <= 0:
        return ZERO
    return to_decimal(math.sqrt(float(value)))


def std_dev(values: Sequence[Decimal], index: int, period: int,
            mean: Decimal) -> Decimal:
    """Population standard deviation of the window ending at *index*."""
    window = values[index - period + 1:index + 1]
    squared = sum(((v - mean) * (v - mean) for v in window), ZERO)
    variance = divide(squared, Decimal(period), DECIMAL_SCALE)
    return sqrt_decimal(variance)


def percent_change(current: Decimal, past: Decimal,
                   places: int = DECIMAL_SCALE) -> Decimal:
    """``(current - past) / past * 100``; zero when *past* is zero."""
    if past == 0:
        return ZERO
    return divide(current - past, past, places) * HUNDRED


# ── Crossovers ──────────────────────────────────────────────────

def crossed_above(prev: Decimal, current: Decimal, threshold: Decimal) -> bool:
    return prev <= threshold and current > threshold


def crossed_below(prev: Decimal, current: Decimal, threshold: Decimal) -> bool:
    return prev >= threshold and current < threshold


def is_golden_cross(prev_fast: Decimal, fast: Decimal,
                    prev_slow: Decimal, slow: Decimal) -> bool:
    """Fast line moves from at-or-below the slow line to above it."""
    return prev_fast <= prev_slow and fast > slow


def is_dead_cross(prev_fast: Decimal, fast: Decimal,
                  prev_slow: Decimal, slow: Decimal) -> bool:
    """Fast line moves from at-or-above the slow line to below it."""
    return prev_fast >= prev_slow and fast < slow

"""
Synthetic Price Generator
===========================
Deterministic fallback series used when no real market data can be
fetched.  A pseudo-random walk with a slight upward bias, one bar per
weekday from ``start`` through ``end`` inclusive.

The generator is seeded from a 32-bit polynomial hash of the symbol
(``s[0]*31^(n-1) + ... + s[n-1]``) rather than ``hash()``, which is
salted per process, so the same symbol and date range reproduce the
same series in every process.
"""

from __future__ import annotations

import random
from datetime import date, timedelta
from decimal import Decimal
from typing import List

from tradelab.models import DISPLAY_SCALE, PriceBar, round_half_up, to_decimal

# ── Constants ────────────────────────────────────────────────────
SAMPLE_BASE_PRICE = Decimal("100")
SAMPLE_DAILY_CHANGE_RANGE = 0.06    # ±3 % around the bias
SAMPLE_DAILY_CHANGE_BIAS = 0.48     # < 0.5 gives a slight upward drift
SAMPLE_INTRADAY_RANGE = 0.02
SAMPLE_OPEN_VARIATION = 0.01
SAMPLE_BASE_VOLUME = 100_000
LAST_WEEKDAY = 4                    # Friday, with Monday == 0


def symbol_seed(symbol: str) -> int:
    """Signed 32-bit ``31 * h + ord(c)`` string hash."""
    h = 0
    for ch in symbol:
        h = (31 * h + ord(ch)) & 0xFFFFFFFF
    return h - (1 << 32) if h >= (1 << 31) else h


def generate_sample_prices(symbol: str, start: date, end: date) -> List[PriceBar]:
    """Weekday-only synthetic OHLCV bars for *symbol* over ``[start, end]``."""
    rng = random.Random(symbol_seed(symbol))
    price = SAMPLE_BASE_PRICE
    bars: List[PriceBar] = []

    day = start
    while day <= end:
        if day.weekday() <= LAST_WEEKDAY:
            change = (rng.random() - SAMPLE_DAILY_CHANGE_BIAS) * SAMPLE_DAILY_CHANGE_RANGE
            price = price * (1 + to_decimal(change))
            bars.append(_sample_bar(day, price, rng))
        day += timedelta(days=1)
    return bars


def _sample_bar(day: date, close: Decimal, rng: random.Random) -> PriceBar:
    high = close * to_decimal(1 + rng.random() * SAMPLE_INTRADAY_RANGE)
    low = close * to_decimal(1 - rng.random() * SAMPLE_INTRADAY_RANGE)
    open_ = close * to_decimal(1 + (rng.random() - 0.5) * SAMPLE_OPEN_VARIATION)
    return PriceBar(
        date=day,
        open=round_half_up(open_, DISPLAY_SCALE),
        high=round_half_up(high, DISPLAY_SCALE),
        low=round_half_up(low, DISPLAY_SCALE),
        close=round_half_up(close, DISPLAY_SCALE),
        volume=SAMPLE_BASE_VOLUME + rng.randrange(SAMPLE_BASE_VOLUME),
    )

"""
Price Data Provider
=====================
Single entry point the service layer uses to obtain daily bars.

Tries the live Yahoo chart collector first.  When it fails or returns
no bars and fallback is enabled, a deterministic synthetic series is
generated instead and the result is flagged ``synthetic=True`` so
callers can tell the two apart.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from tradelab.models import PriceBar

from .sample_data import generate_sample_prices
from .yahoo_collector import YahooChartCollector

logger = logging.getLogger(__name__)


@dataclass
class PriceHistory:
    symbol: str
    bars: List[PriceBar] = field(default_factory=list)
    synthetic: bool = False
    source: str = "yahoo"

    def __len__(self) -> int:
        return len(self.bars)


class PriceDataProvider:
    """
    Usage::

        provider = PriceDataProvider()
        history = await provider.get_price_history("AAPL", start, end)
        history.bars, history.synthetic
    """

    def __init__(
        self,
        collector: Optional[YahooChartCollector] = None,
        fallback_enabled: bool = True,
    ):
        self.collector = collector or YahooChartCollector()
        self.fallback_enabled = fallback_enabled

    async def close(self) -> None:
        await self.collector.close()

    async def get_price_history(self, symbol: str, start: date, end: date) -> PriceHistory:
        bars: List[PriceBar] = []
        try:
            bars = await self.collector.get_price_history(symbol, start, end)
        except Exception as exc:
            logger.error("Price collector failed for %s: %s", symbol, exc)

        if bars:
            return PriceHistory(symbol=symbol, bars=bars)

        if not self.fallback_enabled:
            logger.warning("No price data for %s (%s ~ %s), fallback disabled", symbol, start, end)
            return PriceHistory(symbol=symbol, source="none")

        logger.warning(
            "No price data for %s (%s ~ %s); using synthetic sample series",
            symbol, start, end,
        )
        return PriceHistory(
            symbol=symbol,
            bars=generate_sample_prices(symbol, start, end),
            synthetic=True,
            source="synthetic",
        )


# ── Module-level singleton ────────────────────────────────────────

_provider: Optional[PriceDataProvider] = None


def get_price_provider() -> PriceDataProvider:
    global _provider
    if _provider is None:
        from tradelab.config import get_config_manager

        settings = get_config_manager().get_data_source_settings()
        _provider = PriceDataProvider(
            collector=YahooChartCollector(
                base_url=settings.get("base_url"),
                timeout=settings.get("timeout", 30.0),
            ),
            fallback_enabled=settings.get("fallback_enabled", True),
        )
    return _provider

"""
Yahoo Finance Chart Collector
===============================
Pulls daily OHLCV history from the public Yahoo Finance chart API.

API base : https://query1.finance.yahoo.com
Endpoint : ``/v8/finance/chart/{symbol}?period1=…&period2=…&interval=1d``

The response carries parallel arrays (``timestamp`` plus
``indicators.quote[0].{open,high,low,close,volume}``) that may contain
nulls on halted days.  Bars without a close are dropped; missing
open/high/low fall back to the close and missing volume to 0.
"""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx

from tradelab.models import PriceBar, to_decimal

logger = logging.getLogger(__name__)


class YahooChartCollector:
    """
    Async collector that wraps the Yahoo Finance chart endpoint.

    Usage::

        yc = YahooChartCollector()
        bars = await yc.get_price_history("AAPL", date(2023, 1, 1), date(2023, 12, 31))
        await yc.close()
    """

    DEFAULT_BASE = "https://query1.finance.yahoo.com"
    USER_AGENT = "Mozilla/5.0 (compatible; TradeLab/1.0)"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        rate_limit_sleep: float = 0.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base = (base_url or os.getenv("TRADELAB_YAHOO_BASE_URL") or self.DEFAULT_BASE).rstrip("/")
        self.timeout = timeout
        self.rate_limit_sleep = rate_limit_sleep
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    # ── helpers ────────────────────────────────────────────────────

    def _get_client(self) -> httpx.AsyncClient:
        """Return a long-lived httpx client (connection pooling)."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        """Close the underlying httpx client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> Dict[str, str]:
        return {"Accept": "application/json", "User-Agent": self.USER_AGENT}

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET request with optional rate-limit sleep and connection pooling."""
        url = f"{self._base}{path}"
        client = self._get_client()
        resp = await client.get(url, params=params or {}, headers=self._headers())
        resp.raise_for_status()
        if self.rate_limit_sleep:
            await asyncio.sleep(self.rate_limit_sleep)
        return resp.json()

    # ── public API ─────────────────────────────────────────────────

    async def get_price_history(self, symbol: str, start: date, end: date) -> List[PriceBar]:
        """
        Daily bars for *symbol* between *start* and *end* inclusive,
        sorted by date.  Returns ``[]`` when the request or parsing fails.
        """
        params = {
            "period1": _epoch(start),
            "period2": _epoch(end + timedelta(days=1)),
            "interval": "1d",
            "events": "history",
        }
        try:
            data = await self._get(f"/v8/finance/chart/{symbol}", params)
            bars = self._parse_chart(data)
        except (httpx.HTTPError, ValueError, KeyError, TypeError, IndexError) as exc:
            logger.error("Yahoo chart error for %s: %s", symbol, exc)
            return []

        bars = [b for b in bars if start <= b.date <= end]
        logger.info("Fetched %d bar(s) for %s (%s ~ %s)", len(bars), symbol, start, end)
        return bars

    @staticmethod
    def _parse_chart(data: Dict[str, Any]) -> List[PriceBar]:
        chart = data.get("chart") or {}
        if chart.get("error"):
            raise ValueError(chart["error"].get("description") or str(chart["error"]))
        results = chart.get("result") or []
        if not results:
            return []

        result = results[0]
        timestamps = result.get("timestamp") or []
        quote = (result.get("indicators", {}).get("quote") or [{}])[0]
        offset = int(result.get("meta", {}).get("gmtoffset") or 0)

        opens = quote.get("open") or []
        highs = quote.get("high") or []
        lows = quote.get("low") or []
        closes = quote.get("close") or []
        volumes = quote.get("volume") or []

        def at(series: List[Any], i: int) -> Any:
            return series[i] if i < len(series) else None

        by_date: Dict[date, PriceBar] = {}
        for i, ts in enumerate(timestamps):
            close = at(closes, i)
            if close is None:
                continue
            bar_date = datetime.fromtimestamp(ts + offset, tz=timezone.utc).date()
            close_d = to_decimal(close)
            by_date[bar_date] = PriceBar(
                date=bar_date,
                open=_or_close(at(opens, i), close_d),
                high=_or_close(at(highs, i), close_d),
                low=_or_close(at(lows, i), close_d),
                close=close_d,
                volume=int(at(volumes, i) or 0),
            )
        return [by_date[d] for d in sorted(by_date)]


def _epoch(day: date) -> int:
    return int(datetime.combine(day, time.min, tzinfo=timezone.utc).timestamp())


def _or_close(value: Any, close):
    return to_decimal(value) if value is not None else close

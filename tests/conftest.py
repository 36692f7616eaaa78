"""
Shared Test Fixtures & Configuration
=======================================
Pytest conftest with reusable fixtures for the entire test suite.
"""

from __future__ import annotations

import os
import sys
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Sequence

import httpx
import pytest
from fastapi.testclient import TestClient

# ── Ensure project root is on sys.path ────────────────────────────
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from tradelab.models import PriceBar, Signal, StrategyType  # noqa: E402
from tradelab.strategies import TradingStrategy  # noqa: E402


# ══════════════════════════════════════════════════════════════════
# Price-series helpers
# ══════════════════════════════════════════════════════════════════

def make_bars(closes: Sequence, start: date = date(2024, 1, 1)) -> List[PriceBar]:
    """One bar per calendar day with open/high/low equal to the close."""
    bars = []
    for i, close in enumerate(closes):
        price = Decimal(str(close))
        bars.append(PriceBar(
            date=start + timedelta(days=i),
            open=price, high=price, low=price, close=price,
            volume=1000,
        ))
    return bars


class ScriptedStrategy(TradingStrategy):
    """Emits pre-set signals by bar index; HOLD everywhere else."""

    strategy_type = StrategyType.MOVING_AVERAGE

    def __init__(self, script: Dict[int, Signal]):
        self.script = dict(script)

    def generate_signal(self, prices, index):
        return self.script.get(index, Signal.HOLD)

    def name(self):
        return "Scripted"

    def parameters(self):
        return {"script": {i: s.value for i, s in self.script.items()}}


class FailingStrategy(ScriptedStrategy):

    def generate_signal(self, prices, index):
        raise RuntimeError("indicator blew up")


@pytest.fixture()
def bars():
    return make_bars


@pytest.fixture()
def scripted():
    return ScriptedStrategy


@pytest.fixture()
def failing_strategy():
    return FailingStrategy({})


# ══════════════════════════════════════════════════════════════════
# Offline price source
# ══════════════════════════════════════════════════════════════════

def _unavailable(request: httpx.Request) -> httpx.Response:
    return httpx.Response(503, json={"chart": {"result": None, "error": None}})


@pytest.fixture()
def offline_transport():
    """Transport whose every request fails, forcing the synthetic fallback."""
    return httpx.MockTransport(_unavailable)


# ══════════════════════════════════════════════════════════════════
# FastAPI Test Client
# ══════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """Create the FastAPI app once, wired to an offline price source."""
    from tradelab.api.app import create_app
    from tradelab.api.service_layer import BacktestService
    from tradelab.backtest_engine import BacktestEngine
    from tradelab.data_collectors import PriceDataProvider, YahooChartCollector
    from tradelab.parameter_optimizer import ParameterOptimizer

    engine = BacktestEngine()
    service = BacktestService(
        provider=PriceDataProvider(
            collector=YahooChartCollector(transport=httpx.MockTransport(_unavailable)),
            fallback_enabled=True,
        ),
        engine=engine,
        optimizer=ParameterOptimizer(engine=engine, max_workers=4, max_combinations=100),
    )
    return create_app(service=service)


@pytest.fixture(scope="session")
def client(app):
    """Sync TestClient wrapping the FastAPI app."""
    with TestClient(app) as c:
        yield c

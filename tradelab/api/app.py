"""
FastAPI Application Factory
==============================
Main entry-point for the TradeLab REST API.

Run with::

    uvicorn tradelab.api.app:app --host 0.0.0.0 --port 8000 --reload
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from tradelab import __version__
from tradelab.config import configure_logging

from .error_handlers import register_error_handlers
from .service_layer import BacktestService

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════
# Lifespan (startup / shutdown hooks)
# ══════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup: apply logging config, build the backtest service.
    Shutdown: close the price collector's HTTP client.
    """
    configure_logging()
    logger.info("TradeLab API starting up …")

    # ── Startup ───────────────────────────────────────────────────
    app.state.startup_time = time.time()
    app.state.ready = False

    if getattr(app.state, "backtest_service", None) is None:
        app.state.backtest_service = BacktestService.from_config()
    app.state.ready = True
    logger.info("TradeLab API ready")

    yield  # ── Application runs ──

    # ── Shutdown ──────────────────────────────────────────────────
    logger.info("TradeLab API shutting down …")
    await app.state.backtest_service.close()
    logger.info("Shutdown complete")


# ══════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════

def create_app(service: Optional[BacktestService] = None) -> FastAPI:
    """
    Build and return the fully-configured FastAPI application.

    A pre-built ``service`` replaces the one assembled from config at
    startup.
    """
    app = FastAPI(
        title="TradeLab API",
        description=(
            "Strategy backtesting engine. Simulates rule-based trading "
            "strategies over daily price history and grid-searches their "
            "parameters."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.backtest_service = service

    # ── CORS ──────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],           # tighten in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Request-timing middleware ─────────────────────────────────
    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Process-Time-Ms"] = f"{elapsed_ms:.1f}"
        return response

    # ── Error handlers ────────────────────────────────────────────
    register_error_handlers(app)

    # ── Routers ───────────────────────────────────────────────────
    from .routes import backtest_router, health_router

    app.include_router(
        backtest_router,
        prefix="/api/v1",
        tags=["backtest"],
    )
    app.include_router(
        health_router,
        prefix="/api/v1",
        tags=["health"],
    )

    return app


# ── Module-level app for ``uvicorn tradelab.api.app:app`` ────────
app = create_app()

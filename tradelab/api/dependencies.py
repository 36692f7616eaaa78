"""
FastAPI Dependencies
======================
Shared dependency-injection functions for the API routes.

Provides:
  - ``get_service``     → the app's long-lived BacktestService
  - ``verify_api_key``  → Simple API-key guard
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Optional

from fastapi import Header, HTTPException, Request, status

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════
# Configuration
# ══════════════════════════════════════════════════════════════════

@lru_cache()
def _api_keys() -> frozenset:
    """Load valid API keys from env (comma-separated)."""
    raw = os.getenv("TRADELAB_API_KEYS", "")
    if not raw:
        return frozenset()
    return frozenset(k.strip() for k in raw.split(",") if k.strip())


# ══════════════════════════════════════════════════════════════════
# Auth / API Key
# ══════════════════════════════════════════════════════════════════

async def verify_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
) -> str:
    """
    Validate the ``X-API-Key`` header.

    If no keys are configured (dev mode), any request is accepted.
    Returns the validated key or ``"dev"`` in open mode.
    """
    valid_keys = _api_keys()
    if not valid_keys:
        return "dev"
    if not x_api_key or x_api_key not in valid_keys:
        logger.warning("Rejected request with invalid API key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )
    return x_api_key


# ══════════════════════════════════════════════════════════════════
# Backtest Service
# ══════════════════════════════════════════════════════════════════

async def get_service(request: Request):
    """
    Return the ``BacktestService`` created at startup; built on demand
    when the app runs without its lifespan.
    """
    service = getattr(request.app.state, "backtest_service", None)
    if service is None:
        from .service_layer import BacktestService

        service = BacktestService.from_config()
        request.app.state.backtest_service = service
    return service

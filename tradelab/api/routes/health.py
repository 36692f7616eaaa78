"""
Health Route
==============
GET /api/v1/health – Liveness plus a summary of the service components.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from tradelab import __version__

router = APIRouter()
logger = logging.getLogger(__name__)


# ── Response Models ───────────────────────────────────────────────

class ComponentHealth(BaseModel):
    """Status of a single service component."""
    name: str
    status: str = "unknown"         # healthy | degraded | down
    detail: str = ""


class HealthResponse(BaseModel):
    """Top-level health envelope."""
    status: str = "healthy"         # healthy | degraded
    version: str = __version__
    uptime_seconds: float = 0
    timestamp: str = ""
    components: List[ComponentHealth] = Field(default_factory=list)


# ── Liveness ──────────────────────────────────────────────────────

@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns 200 if the API process is alive.",
)
async def health(request: Request):
    startup = getattr(request.app.state, "startup_time", time.time())
    service = getattr(request.app.state, "backtest_service", None)
    components: List[ComponentHealth] = []
    overall = "healthy"

    if not getattr(request.app.state, "ready", False):
        overall = "degraded"
        components.append(ComponentHealth(
            name="startup", status="degraded", detail="Startup has not completed",
        ))

    if service is None:
        overall = "degraded"
        components.append(ComponentHealth(
            name="backtest_service", status="down", detail="Not initialised",
        ))
    else:
        components.append(ComponentHealth(
            name="result_store", status="healthy",
            detail=f"{len(service.store)} stored result(s)",
        ))
        fallback = service.provider.fallback_enabled
        components.append(ComponentHealth(
            name="price_data",
            status="healthy",
            detail="Synthetic fallback enabled" if fallback else "Live data only",
        ))

    return HealthResponse(
        status=overall,
        uptime_seconds=round(time.time() - startup, 1),
        timestamp=datetime.now(timezone.utc).isoformat(),
        components=components,
    )

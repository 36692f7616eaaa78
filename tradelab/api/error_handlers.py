"""
Error Handlers
================
Centralised exception handling for the TradeLab API.

Strategy:
  - TradeLabError       → its own HTTP code with ``{"error", "detail", "code"}``
  - Validation error    → 422 with structured detail
  - Unexpected errors   → 500 with generic message (no internals leaked)

The exception classes themselves live in ``tradelab.exceptions`` so the
engine and optimiser can raise them without importing FastAPI.
"""

from __future__ import annotations

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from tradelab.exceptions import TradeLabError

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════
# Handler Registration
# ══════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI app."""

    @app.exception_handler(TradeLabError)
    async def tradelab_error_handler(request: Request, exc: TradeLabError):
        log = logger.error if exc.code >= 500 else logger.warning
        log(
            "TradeLabError %d on %s %s: %s – %s",
            exc.code, request.method, request.url.path, exc.message, exc.detail,
        )
        return JSONResponse(
            status_code=exc.code,
            content={
                "error": exc.message,
                "detail": exc.detail,
                "code": exc.code,
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning("Validation error: %s", exc.errors())
        return JSONResponse(
            status_code=422,
            content={
                "error": "Validation error",
                "detail": _format_validation_errors(exc.errors()),
                "code": 422,
            },
        )

    @app.exception_handler(ValidationError)
    async def pydantic_validation_handler(request: Request, exc: ValidationError):
        logger.warning("Pydantic validation error: %s", exc.errors())
        return JSONResponse(
            status_code=422,
            content={
                "error": "Validation error",
                "detail": _format_validation_errors(exc.errors()),
                "code": 422,
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception on %s %s: %s",
            request.method, request.url.path,
            traceback.format_exc(),
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": "An unexpected error occurred. Please try again later.",
                "code": 500,
            },
        )


# ══════════════════════════════════════════════════════════════════
# Helpers
# ══════════════════════════════════════════════════════════════════

def _format_validation_errors(errors: list) -> str:
    """
    Convert Pydantic / FastAPI validation errors into a
    human-readable string.
    """
    parts = []
    for err in errors:
        loc = " → ".join(str(l) for l in err.get("loc", []))
        msg = err.get("msg", "")
        parts.append(f"{loc}: {msg}")
    return "; ".join(parts) if parts else "Unknown validation error"

"""
TradeLab – API Integration Layer
===================================
Public API::

    from tradelab.api import create_app

    app = create_app()
    # uvicorn tradelab.api.app:app --reload
"""

from .app import create_app
from .service_layer import BacktestService, ResultStore
from .dependencies import get_service, verify_api_key
from .error_handlers import register_error_handlers

__all__ = [
    "create_app",
    "BacktestService",
    "ResultStore",
    "get_service",
    "verify_api_key",
    "register_error_handlers",
]

"""
TradeLab – Launch the backtesting API.

Usage:
    python run_web.py

Local:   http://localhost:8000/docs
"""

import os
import sys

import uvicorn

if __name__ == "__main__":
    print("\n" + "=" * 50)
    print("  TradeLab – Strategy Backtesting API")
    print("  Local: http://localhost:8000/docs")
    print("=" * 50 + "\n")

    # Disable reload on Windows to avoid multiprocessing permission errors
    is_windows = sys.platform.startswith("win")

    uvicorn.run(
        "tradelab.api.app:app",
        host=os.getenv("TRADELAB_HOST", "0.0.0.0"),
        port=int(os.getenv("TRADELAB_PORT", "8000")),
        reload=not is_windows,
        reload_dirs=["tradelab"] if not is_windows else None,
        log_level="info",
    )

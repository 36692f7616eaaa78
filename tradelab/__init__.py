"""TradeLab – strategy backtesting and grid-search optimisation."""

__version__ = "1.0.0"

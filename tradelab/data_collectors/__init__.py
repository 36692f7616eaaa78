"""Daily price sources: the live Yahoo chart collector and the synthetic fallback."""

from .price_provider import PriceDataProvider, PriceHistory, get_price_provider
from .sample_data import generate_sample_prices, symbol_seed
from .yahoo_collector import YahooChartCollector

__all__ = [
    "PriceDataProvider",
    "PriceHistory",
    "get_price_provider",
    "YahooChartCollector",
    "generate_sample_prices",
    "symbol_seed",
]

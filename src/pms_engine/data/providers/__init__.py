"""
Price data for valuation.

Provides pluggable price sources (network, in-memory, file-cached) and the
PriceOracle the engines consume, with non-trading-day fallback and a
thread-safe price cache.
"""

from pms_engine.data.providers.base import DataProviderError, PriceOracle, PriceSource
from pms_engine.data.providers.cache import CachedPriceSource, FileCache
from pms_engine.data.providers.eodhd_provider import EODHDPriceSource, get_eodhd_price_source
from pms_engine.data.providers.oracle import HistoricalPriceOracle
from pms_engine.data.providers.static_provider import InMemoryPriceSource

__all__ = [
    "DataProviderError",
    "PriceOracle",
    "PriceSource",
    "CachedPriceSource",
    "FileCache",
    "EODHDPriceSource",
    "get_eodhd_price_source",
    "HistoricalPriceOracle",
    "InMemoryPriceSource",
]

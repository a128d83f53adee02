"""
Abstract base classes for price data.

A PriceSource fetches raw closing-price history in bulk. A PriceOracle is
what the engines consume: a single unit price for a symbol on a date.
Keeping them apart lets any source be wrapped with caching and with the
non-trading-day fallback policy.
"""

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal

import pandas as pd

from pms_engine.exceptions import DataProviderError
from pms_engine.models import AssetClass

PRICE_COLUMNS = ["date", "symbol", "close"]

__all__ = ["PRICE_COLUMNS", "PriceSource", "PriceOracle", "DataProviderError", "empty_price_frame"]


def empty_price_frame() -> pd.DataFrame:
    """Return an empty frame with the price columns."""
    return pd.DataFrame(columns=PRICE_COLUMNS)


class PriceSource(ABC):
    """
    Abstract base class for market price sources.

    Implementations return closing prices for trading days only; days
    without data are simply absent from the result.
    """

    @abstractmethod
    def get_prices(
        self,
        symbols: list[str],
        start_date: date,
        end_date: date,
    ) -> pd.DataFrame:
        """
        Fetch historical close prices for symbols.

        Args:
            symbols: List of instrument symbols
            start_date: Start date (inclusive)
            end_date: End date (inclusive)

        Returns:
            DataFrame with columns: date, symbol, close
            - date: Trading date (datetime.date)
            - symbol: Instrument symbol (upper case)
            - close: Close price

        Raises:
            DataProviderError: If data cannot be fetched
        """
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the name of this price source."""
        pass


class PriceOracle(ABC):
    """
    Unit-price lookup used by valuation.

    Contract: cash-class assets price at exactly 1. For other classes a
    date with no data (weekend, holiday) resolves to the most recent prior
    price; a lookup that cannot be answered at all raises
    UpstreamUnavailableError rather than returning 0.
    """

    @abstractmethod
    def get_price(self, symbol: str, asset_class: AssetClass, as_of: date) -> Decimal:
        """
        Get the unit price of a symbol on a date.

        Raises:
            UpstreamUnavailableError: If the price cannot be obtained
        """
        pass

    def prefetch(self, symbols: list[str], start_date: date, end_date: date) -> None:
        """
        Warm the oracle for a date range in one batch.

        Default implementation does nothing; caching oracles override it.
        """
        return None

"""
In-memory price source.

Serves prices from a DataFrame or a nested dictionary. Used for embedding
the engine where prices are already loaded, and by the test suite.
"""

from datetime import date
from decimal import Decimal
from typing import Mapping, Union

import pandas as pd

from pms_engine.data.providers.base import PRICE_COLUMNS, PriceSource, empty_price_frame

PriceValue = Union[Decimal, float, int, str]


class InMemoryPriceSource(PriceSource):
    """
    Price source backed by a DataFrame with columns date, symbol, close.

    Example:
        >>> source = InMemoryPriceSource.from_dict({
        ...     "AAPL": {date(2024, 1, 2): "185.64", date(2024, 1, 3): "184.25"},
        ... })
    """

    def __init__(self, prices: pd.DataFrame | None = None):
        if prices is None or prices.empty:
            self._prices = empty_price_frame()
        else:
            missing = set(PRICE_COLUMNS) - set(prices.columns)
            if missing:
                raise ValueError(f"Price frame is missing columns: {sorted(missing)}")
            df = prices[PRICE_COLUMNS].copy()
            df["symbol"] = df["symbol"].astype(str).str.upper()
            df["date"] = pd.to_datetime(df["date"]).dt.date
            df["close"] = df["close"].astype(float)
            self._prices = df.sort_values(["date", "symbol"]).reset_index(drop=True)
        self.request_count = 0

    @classmethod
    def from_dict(
        cls,
        prices: Mapping[str, Mapping[date, PriceValue]],
    ) -> "InMemoryPriceSource":
        """Build a source from {symbol: {date: close}}."""
        records = [
            (price_date, symbol, float(close))
            for symbol, series in prices.items()
            for price_date, close in series.items()
        ]
        return cls(pd.DataFrame(records, columns=PRICE_COLUMNS))

    @property
    def name(self) -> str:
        return "InMemory"

    def get_prices(
        self,
        symbols: list[str],
        start_date: date,
        end_date: date,
    ) -> pd.DataFrame:
        self.request_count += 1
        if not symbols or self._prices.empty:
            return empty_price_frame()

        wanted = {s.upper().strip() for s in symbols}
        df = self._prices
        mask = (
            df["symbol"].isin(wanted)
            & (df["date"] >= start_date)
            & (df["date"] <= end_date)
        )
        return df[mask].reset_index(drop=True)

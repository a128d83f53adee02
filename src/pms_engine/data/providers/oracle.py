"""
Price oracle with non-trading-day fallback and an in-process price cache.

The oracle is constructed explicitly and passed to each computation. Its
cache holds resolved (symbol, date) prices only; it never holds
accounting state.
"""

import logging
import threading
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

import pandas as pd

from pms_engine.data.providers.base import PriceOracle, PriceSource
from pms_engine.exceptions import PriceUnavailableError, UpstreamUnavailableError
from pms_engine.models import AssetClass

logger = logging.getLogger(__name__)

CASH_PRICE = Decimal("1")


class HistoricalPriceOracle(PriceOracle):
    """
    PriceOracle over a PriceSource.

    Cash-class assets price at 1. For any other asset the price on a date
    is the most recent close on or before that date, looking back at most
    lookback_days calendar days. Resolved prices are cached; the cache is
    guarded by a lock so concurrent computations may share one oracle.
    """

    def __init__(self, source: PriceSource, lookback_days: int = 7):
        """
        Args:
            source: Underlying price source
            lookback_days: Calendar days to look back for a prior close
        """
        if lookback_days < 0:
            raise ValueError("lookback_days must be >= 0")
        self._source = source
        self._lookback_days = lookback_days
        self._cache: dict[tuple[str, date], Decimal] = {}
        self._lock = threading.Lock()

    @property
    def source(self) -> PriceSource:
        return self._source

    @property
    def lookback_days(self) -> int:
        return self._lookback_days

    def get_price(self, symbol: str, asset_class: AssetClass, as_of: date) -> Decimal:
        """
        Get the unit price of a symbol on a date.

        Raises:
            PriceUnavailableError: No close within the lookback window
            UpstreamUnavailableError: The source failed
        """
        if asset_class.is_cash:
            return CASH_PRICE

        key = (symbol.upper(), as_of)
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached

        window_start = as_of - timedelta(days=self._lookback_days)
        df = self._fetch([key[0]], window_start, as_of)
        price = _latest_close(df, key[0], as_of, window_start)
        if price is None:
            raise PriceUnavailableError(key[0], as_of, self._lookback_days)

        with self._lock:
            self._cache[key] = price
        return price

    def prefetch(self, symbols: list[str], start_date: date, end_date: date) -> None:
        """
        Resolve and cache prices for every calendar day in a range.

        One source request covers all symbols. Days that cannot be resolved
        are left uncached so that a later get_price raises for them.
        """
        wanted = sorted({s.upper() for s in symbols})
        if not wanted or end_date < start_date:
            return

        window_start = start_date - timedelta(days=self._lookback_days)
        df = self._fetch(wanted, window_start, end_date)
        if df.empty:
            return

        days = pd.date_range(start_date, end_date, freq="D")
        resolved: dict[tuple[str, date], Decimal] = {}

        for symbol in wanted:
            closes = _close_series(df, symbol)
            if closes.empty:
                continue
            # Forward-fill onto the calendar, bounded by the lookback window
            calendar = closes.index.union(days)
            filled = closes.reindex(calendar).ffill()
            last_seen = pd.Series(closes.index, index=closes.index).reindex(calendar).ffill()
            for day in days:
                seen = last_seen[day]
                if pd.isna(seen) or (day - seen).days > self._lookback_days:
                    continue
                resolved[(symbol, day.date())] = Decimal(str(filled[day]))

        with self._lock:
            self._cache.update(resolved)
        logger.debug(
            "Prefetched %d prices for %d symbols from %s to %s",
            len(resolved), len(wanted), start_date, end_date,
        )

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    def _fetch(self, symbols: list[str], start_date: date, end_date: date) -> pd.DataFrame:
        try:
            return self._source.get_prices(symbols, start_date, end_date)
        except UpstreamUnavailableError:
            raise
        except Exception as e:
            raise UpstreamUnavailableError(
                f"Price source {self._source.name} failed for {symbols}: {e}"
            ) from e


def _close_series(df: pd.DataFrame, symbol: str) -> pd.Series:
    """Close prices of one symbol indexed by Timestamp, sorted, last value per day."""
    rows = df[df["symbol"].astype(str).str.upper() == symbol]
    if rows.empty:
        return pd.Series(dtype=float)
    series = pd.Series(
        rows["close"].astype(float).values,
        index=pd.to_datetime(rows["date"]),
    )
    series = series[~series.index.duplicated(keep="last")]
    return series.sort_index().dropna()


def _latest_close(
    df: pd.DataFrame,
    symbol: str,
    as_of: date,
    window_start: date,
) -> Optional[Decimal]:
    if df.empty:
        return None
    closes = _close_series(df, symbol)
    if closes.empty:
        return None
    in_window = closes[
        (closes.index >= pd.Timestamp(window_start)) & (closes.index <= pd.Timestamp(as_of))
    ]
    if in_window.empty:
        return None
    return Decimal(str(in_window.iloc[-1]))

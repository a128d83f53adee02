"""
Parquet cache for price sources.

Each (symbols, date range) request is stored as one parquet file so that
repeated valuations over the same range are reproducible and do not hit the
network again.
"""

import hashlib
import logging
import shutil
import threading
from datetime import date
from pathlib import Path
from typing import Optional

import pandas as pd

from pms_engine.data.providers.base import PriceSource

logger = logging.getLogger(__name__)


class FileCache:
    """
    Directory of parquet price frames keyed by request.

    The file name carries the date range and a digest of the normalized
    symbol set, so symbol order and case do not matter.
    """

    def __init__(self, cache_dir: str | Path = "data/cache"):
        self.cache_dir = Path(cache_dir)
        self.prices_dir = self.cache_dir / "prices"
        self.prices_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _cache_file(self, symbols: list[str], start_date: date, end_date: date) -> Path:
        normalized = ",".join(sorted({s.upper().strip() for s in symbols}))
        digest = hashlib.md5(normalized.encode()).hexdigest()[:12]
        return self.prices_dir / f"{start_date:%Y%m%d}_{end_date:%Y%m%d}_{digest}.parquet"

    def get_prices(
        self,
        symbols: list[str],
        start_date: date,
        end_date: date,
    ) -> Optional[pd.DataFrame]:
        """
        Load a cached price frame.

        Returns:
            The cached frame, or None on a miss or an unreadable file
        """
        path = self._cache_file(symbols, start_date, end_date)
        if not path.exists():
            return None

        try:
            df = pd.read_parquet(path)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable price cache file %s: %s", path, e)
            return None

        return df.assign(date=pd.to_datetime(df["date"]).dt.date)

    def save_prices(
        self,
        df: pd.DataFrame,
        symbols: list[str],
        start_date: date,
        end_date: date,
    ) -> None:
        """
        Store a price frame.

        The frame is written to a temporary file and renamed into place, so
        readers never see a partial file. Write failures are logged and
        otherwise ignored.
        """
        path = self._cache_file(symbols, start_date, end_date)
        partial = path.with_suffix(".tmp")

        with self._lock:
            try:
                df.to_parquet(partial, index=False)
                partial.replace(path)
            except (OSError, ValueError) as e:
                logger.warning("Could not write price cache file %s: %s", path, e)

    def clear(self) -> None:
        """Delete every cached frame."""
        with self._lock:
            shutil.rmtree(self.prices_dir, ignore_errors=True)
            self.prices_dir.mkdir(parents=True, exist_ok=True)


class CachedPriceSource(PriceSource):
    """
    PriceSource decorator that serves repeated requests from a FileCache.

    Only successful fetches are stored; errors from the wrapped source
    propagate unchanged.
    """

    def __init__(self, source: PriceSource, cache: Optional[FileCache] = None):
        self._source = source
        self._cache = cache or FileCache()

    @property
    def name(self) -> str:
        return f"Cached({self._source.name})"

    def get_prices(
        self,
        symbols: list[str],
        start_date: date,
        end_date: date,
    ) -> pd.DataFrame:
        df = self._cache.get_prices(symbols, start_date, end_date)
        if df is None:
            df = self._source.get_prices(symbols, start_date, end_date)
            self._cache.save_prices(df, symbols, start_date, end_date)
        return df

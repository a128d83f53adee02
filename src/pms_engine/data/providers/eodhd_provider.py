"""
EODHD price source implementation.

Uses the EODHD end-of-day API (https://eodhd.com/api/) to fetch historical
close prices, one request per symbol.
"""

import logging
import time
from datetime import date
from typing import Optional

import pandas as pd
import requests

from pms_engine.config import load_api_keys
from pms_engine.data.providers.base import (
    PRICE_COLUMNS,
    DataProviderError,
    PriceSource,
    empty_price_frame,
)

logger = logging.getLogger(__name__)


class EODHDPriceSource(PriceSource):
    """
    Price source over the EODHD end-of-day endpoint.

    Adjusted closes are preferred over raw closes so that splits and
    distributions do not show up as returns. Timeouts, transport errors and
    HTTP 429 responses are retried with linear backoff.
    """

    BASE_URL = "https://eodhd.com/api/eod"

    # Pause between consecutive symbol requests (seconds)
    REQUEST_INTERVAL = 0.1

    # Backoff unit after an HTTP 429 (seconds, multiplied by attempt number)
    RATE_LIMIT_BACKOFF = 5.0

    def __init__(
        self,
        api_key: Optional[str] = None,
        exchange: str = "US",
        max_retries: int = 3,
        retry_delay: float = 2.0,
        timeout: float = 30.0,
    ):
        """
        Args:
            api_key: EODHD API key (defaults to loading from config sources)
            exchange: Exchange suffix for symbols without one (e.g. "US", "TW")
            max_retries: Attempts per request, at least 1
            retry_delay: Backoff unit after a timeout or transport error (seconds)
            timeout: Per-request timeout (seconds)

        Raises:
            DataProviderError: If no API key is provided or configured
        """
        self._api_key = api_key or load_api_keys().get("eodhd_api_key")
        if not self._api_key:
            raise DataProviderError(
                "EODHD API key is not configured. Pass api_key, or set EODHD_API_KEY "
                "in the environment, in a .env file or in config/api_keys.yaml"
            )
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")

        self._exchange = exchange.upper()
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "EODHD"

    def get_prices(
        self,
        symbols: list[str],
        start_date: date,
        end_date: date,
    ) -> pd.DataFrame:
        """
        Fetch adjusted close prices for each symbol.

        A symbol that cannot be fetched fails the whole call, since a
        partially priced portfolio cannot be valued.

        Raises:
            DataProviderError: If any request fails after retries
        """
        wanted = sorted({s.upper().strip() for s in symbols if s.strip()})
        params = {"from": start_date.isoformat(), "to": end_date.isoformat()}

        frames = []
        for n, symbol in enumerate(wanted):
            if n:
                time.sleep(self.REQUEST_INTERVAL)
            payload = self._request(self._ticker(symbol), params)
            frame = _payload_to_frame(payload, symbol)
            if not frame.empty:
                frames.append(frame)

        if not frames:
            return empty_price_frame()

        df = pd.concat(frames, ignore_index=True)
        return df.sort_values(["date", "symbol"]).reset_index(drop=True)

    def _ticker(self, symbol: str) -> str:
        return symbol if "." in symbol else f"{symbol}.{self._exchange}"

    def _request(self, ticker: str, params: dict) -> list:
        """
        GET the end-of-day series of one ticker.

        Raises:
            DataProviderError: On an API error payload, an unparseable body,
                or when every attempt failed
        """
        url = f"{self.BASE_URL}/{ticker}"
        query = {**params, "api_token": self._api_key, "fmt": "json"}
        failure = ""

        for attempt in range(1, self._max_retries + 1):
            backoff = self._retry_delay
            try:
                response = requests.get(url, params=query, timeout=self._timeout)
                if response.status_code == 429:
                    failure = "rate limit exceeded (HTTP 429)"
                    backoff = self.RATE_LIMIT_BACKOFF
                else:
                    response.raise_for_status()
                    return _decode_payload(response, ticker)
            except requests.exceptions.Timeout:
                failure = "request timed out"
            except requests.exceptions.RequestException as e:
                failure = str(e)

            logger.warning(
                "EODHD request for %s failed (attempt %d/%d): %s",
                ticker, attempt, self._max_retries, failure,
            )
            if attempt < self._max_retries:
                time.sleep(backoff * attempt)

        raise DataProviderError(
            f"Failed to fetch {ticker} from EODHD after {self._max_retries} attempts: {failure}"
        )


def _decode_payload(response: requests.Response, ticker: str) -> list:
    try:
        payload = response.json()
    except ValueError as e:
        raise DataProviderError(f"Invalid JSON response from EODHD for {ticker}: {e}") from e

    if isinstance(payload, dict) and "error" in payload:
        raise DataProviderError(f"EODHD API error for {ticker}: {payload['error']}")
    if not isinstance(payload, list):
        return []
    return payload


def _payload_to_frame(payload: list, symbol: str) -> pd.DataFrame:
    """Rows without a parseable date or a numeric close are dropped."""
    raw = pd.DataFrame.from_records(payload)
    if raw.empty or "date" not in raw:
        return empty_price_frame()

    close = raw.get("adjusted_close", pd.Series(index=raw.index, dtype=float))
    if "close" in raw:
        close = close.fillna(raw["close"])

    frame = pd.DataFrame({
        "date": pd.to_datetime(raw["date"], format="%Y-%m-%d", errors="coerce"),
        "symbol": symbol,
        "close": pd.to_numeric(close, errors="coerce"),
    }).dropna(subset=["date", "close"])

    dropped = len(raw) - len(frame)
    if dropped:
        logger.debug("Dropped %d malformed EODHD rows for %s", dropped, symbol)

    frame = frame.assign(date=frame["date"].dt.date)
    return frame[PRICE_COLUMNS].reset_index(drop=True)


def get_eodhd_price_source(
    use_cache: bool = True,
    cache_dir: str = "data/cache",
    api_key: Optional[str] = None,
    exchange: str = "US",
) -> PriceSource:
    """
    Get an EODHD price source, optionally wrapped with the file cache.

    Raises:
        DataProviderError: If no API key is available
    """
    from pms_engine.data.providers.cache import CachedPriceSource, FileCache

    source = EODHDPriceSource(api_key=api_key, exchange=exchange)

    if use_cache:
        return CachedPriceSource(source, FileCache(cache_dir))

    return source

"""
Tests for the EODHD price source.

All HTTP calls are mocked to avoid real API calls during testing.
"""

from datetime import date
from unittest.mock import MagicMock, patch

import pytest
import requests

from pms_engine.data.providers.cache import CachedPriceSource
from pms_engine.data.providers.eodhd_provider import (
    EODHDPriceSource,
    get_eodhd_price_source,
)
from pms_engine.exceptions import DataProviderError, UpstreamUnavailableError


def ok_response(payload) -> MagicMock:
    response = MagicMock()
    response.status_code = 200
    response.json.return_value = payload
    return response


class TestEODHDPriceSourceInit:
    """Tests for EODHDPriceSource initialization."""

    def test_init_with_api_key(self):
        source = EODHDPriceSource(api_key="test-api-key")
        assert source.name == "EODHD"

    def test_init_without_api_key_raises(self):
        with patch(
            "pms_engine.data.providers.eodhd_provider.load_api_keys",
            return_value={},
        ):
            with pytest.raises(DataProviderError) as exc_info:
                EODHDPriceSource()

        assert "EODHD API key is not configured" in str(exc_info.value)

    def test_init_from_configured_key(self):
        with patch(
            "pms_engine.data.providers.eodhd_provider.load_api_keys",
            return_value={"eodhd_api_key": "from-config"},
        ):
            source = EODHDPriceSource()

        with patch("requests.get") as mock_get:
            mock_get.return_value = ok_response([])
            source.get_prices(["AAPL"], date(2024, 1, 2), date(2024, 1, 5))

        assert mock_get.call_args.kwargs["params"]["api_token"] == "from-config"


class TestGetPrices:
    """Tests for get_prices."""

    @pytest.fixture
    def source(self):
        return EODHDPriceSource(api_key="test-api-key")

    def test_single_symbol(self, source, sample_eodhd_price_data):
        with patch("requests.get") as mock_get:
            mock_get.return_value = ok_response(sample_eodhd_price_data["AAPL"])

            df = source.get_prices(["AAPL"], date(2024, 1, 2), date(2024, 1, 3))

        assert list(df.columns) == ["date", "symbol", "close"]
        assert len(df) == 2
        assert df["date"].iloc[0] == date(2024, 1, 2)
        assert df["close"].iloc[0] == pytest.approx(185.64)

        url = mock_get.call_args.args[0]
        params = mock_get.call_args.kwargs["params"]
        assert url.endswith("/eod/AAPL.US")
        assert params["from"] == "2024-01-02"
        assert params["to"] == "2024-01-03"
        assert params["fmt"] == "json"

    def test_multiple_symbols_sorted(self, source, sample_eodhd_price_data):
        with patch("requests.get") as mock_get:
            mock_get.side_effect = [
                ok_response(sample_eodhd_price_data["AAPL"]),
                ok_response(sample_eodhd_price_data["MSFT"]),
            ]

            df = source.get_prices(["MSFT", "AAPL"], date(2024, 1, 2), date(2024, 1, 3))

        assert mock_get.call_count == 2
        assert df["symbol"].tolist() == ["AAPL", "MSFT", "AAPL", "MSFT"]

    def test_empty_symbols(self, source):
        with patch("requests.get") as mock_get:
            df = source.get_prices([], date(2024, 1, 2), date(2024, 1, 3))

        assert df.empty
        mock_get.assert_not_called()

    def test_empty_response(self, source):
        with patch("requests.get") as mock_get:
            mock_get.return_value = ok_response([])
            df = source.get_prices(["AAPL"], date(2024, 1, 2), date(2024, 1, 3))

        assert df.empty
        assert list(df.columns) == ["date", "symbol", "close"]

    def test_symbols_normalized(self, source, sample_eodhd_price_data):
        """Lowercase and padded duplicates collapse to one request."""
        with patch("requests.get") as mock_get:
            mock_get.return_value = ok_response(sample_eodhd_price_data["AAPL"])

            df = source.get_prices(["aapl", " AAPL "], date(2024, 1, 2), date(2024, 1, 3))

        assert mock_get.call_count == 1
        assert df["symbol"].unique().tolist() == ["AAPL"]

    def test_falls_back_to_close(self, source):
        with patch("requests.get") as mock_get:
            mock_get.return_value = ok_response([{"date": "2024-01-02", "close": 99.5}])
            df = source.get_prices(["AAPL"], date(2024, 1, 2), date(2024, 1, 2))

        assert df["close"].tolist() == [99.5]

    def test_malformed_rows_skipped(self, source):
        with patch("requests.get") as mock_get:
            mock_get.return_value = ok_response([
                {"date": "2024-01-02", "adjusted_close": 100},
                {"date": "not-a-date", "adjusted_close": 101},
                {"adjusted_close": 102},
                {"date": "2024-01-05"},
            ])
            df = source.get_prices(["AAPL"], date(2024, 1, 2), date(2024, 1, 5))

        assert len(df) == 1


class TestExchangeSuffix:
    """Tests for ticker construction."""

    def _requested_url(self, source: EODHDPriceSource, symbol: str) -> str:
        with patch("requests.get") as mock_get:
            mock_get.return_value = ok_response([])
            source.get_prices([symbol], date(2024, 1, 2), date(2024, 1, 3))
        return mock_get.call_args.args[0]

    def test_custom_exchange(self):
        source = EODHDPriceSource(api_key="k", exchange="tw")
        assert self._requested_url(source, "2330").endswith("/eod/2330.TW")

    def test_explicit_suffix_kept(self):
        source = EODHDPriceSource(api_key="k")
        assert self._requested_url(source, "VOD.LSE").endswith("/eod/VOD.LSE")


class TestRateLimiting:
    """Tests for rate limiting and retry behavior."""

    @pytest.fixture
    def source(self):
        return EODHDPriceSource(api_key="test-api-key", max_retries=3, retry_delay=0.01)

    def test_rate_limit_retry(self, source):
        """Test that 429 responses trigger retry."""
        with patch("requests.get") as mock_get:
            rate_limit_response = MagicMock()
            rate_limit_response.status_code = 429

            mock_get.side_effect = [
                rate_limit_response,
                ok_response([{"date": "2024-01-02", "adjusted_close": 100}]),
            ]

            with patch("time.sleep"):
                df = source.get_prices(["AAPL"], date(2024, 1, 2), date(2024, 1, 5))

        assert mock_get.call_count == 2
        assert len(df) == 1

    def test_rate_limit_max_retries(self, source):
        with patch("requests.get") as mock_get:
            rate_limit_response = MagicMock()
            rate_limit_response.status_code = 429
            mock_get.return_value = rate_limit_response

            with patch("time.sleep"):
                with pytest.raises(DataProviderError) as exc_info:
                    source.get_prices(["AAPL"], date(2024, 1, 2), date(2024, 1, 5))

        assert "rate limit" in str(exc_info.value).lower()

    def test_request_timeout_retry(self, source):
        with patch("requests.get") as mock_get:
            mock_get.side_effect = [
                requests.exceptions.Timeout("Connection timed out"),
                ok_response([{"date": "2024-01-02", "adjusted_close": 100}]),
            ]

            with patch("time.sleep"):
                df = source.get_prices(["AAPL"], date(2024, 1, 2), date(2024, 1, 5))

        assert mock_get.call_count == 2
        assert len(df) == 1

    def test_persistent_timeout_fails(self, source):
        with patch("requests.get") as mock_get:
            mock_get.side_effect = requests.exceptions.Timeout("Connection timed out")

            with patch("time.sleep"):
                with pytest.raises(DataProviderError) as exc_info:
                    source.get_prices(["AAPL"], date(2024, 1, 2), date(2024, 1, 5))

        assert mock_get.call_count == 3
        assert "after 3 attempts" in str(exc_info.value)


class TestErrorHandling:
    """Tests for error handling."""

    @pytest.fixture
    def source(self):
        return EODHDPriceSource(api_key="test-api-key", max_retries=1, retry_delay=0.01)

    def test_invalid_json_response(self, source):
        with patch("requests.get") as mock_get:
            mock_response = MagicMock()
            mock_response.status_code = 200
            mock_response.json.side_effect = ValueError("Invalid JSON")
            mock_get.return_value = mock_response

            with pytest.raises(DataProviderError) as exc_info:
                source.get_prices(["AAPL"], date(2024, 1, 2), date(2024, 1, 5))

        assert "Invalid JSON" in str(exc_info.value)

    def test_api_error_response(self, source):
        """An error payload fails the request instead of pricing nothing."""
        with patch("requests.get") as mock_get:
            mock_get.return_value = ok_response({"error": "Invalid API key"})

            with pytest.raises(DataProviderError) as exc_info:
                source.get_prices(["AAPL"], date(2024, 1, 2), date(2024, 1, 5))

        assert "Invalid API key" in str(exc_info.value)

    def test_http_error(self, source):
        with patch("requests.get") as mock_get:
            mock_response = MagicMock()
            mock_response.status_code = 500
            mock_response.raise_for_status.side_effect = requests.exceptions.HTTPError("500 Server Error")
            mock_get.return_value = mock_response

            with pytest.raises(DataProviderError):
                source.get_prices(["AAPL"], date(2024, 1, 2), date(2024, 1, 5))

    def test_provider_error_is_upstream_unavailable(self, source):
        with patch("requests.get") as mock_get:
            mock_get.side_effect = requests.exceptions.ConnectionError("refused")

            with pytest.raises(UpstreamUnavailableError):
                source.get_prices(["AAPL"], date(2024, 1, 2), date(2024, 1, 5))


class TestHelperFunction:
    """Tests for get_eodhd_price_source."""

    def test_with_cache(self, tmp_path):
        source = get_eodhd_price_source(use_cache=True, cache_dir=str(tmp_path), api_key="test-key")

        assert isinstance(source, CachedPriceSource)
        assert source.name == "Cached(EODHD)"

    def test_without_cache(self):
        source = get_eodhd_price_source(use_cache=False, api_key="test-key")
        assert isinstance(source, EODHDPriceSource)

"""
Pytest fixtures for the portfolio analytics engine tests.

Provides common ledgers, price histories and stores used across test modules.
"""

import tempfile
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path

import pytest

from pms_engine.data.providers.oracle import HistoricalPriceOracle
from pms_engine.data.providers.static_provider import InMemoryPriceSource
from pms_engine.data.sources import InMemoryPortfolioStore
from pms_engine.models import AssetClass, ModelAllocation, TargetModel, Transaction

PORTFOLIO_ID = "TEST001"

DAY_1 = date(2024, 1, 1)


def day(n: int) -> date:
    """Calendar date of scenario day n (day 1 = 2024-01-01)."""
    return DAY_1 + timedelta(days=n - 1)


def daily_prices(segments: list[tuple[int, int, str]]) -> dict[date, str]:
    """Build {date: close} from (first_day, last_day, close) segments."""
    prices = {}
    for first, last, close in segments:
        for n in range(first, last + 1):
            prices[day(n)] = close
    return prices


@pytest.fixture
def scenario_transactions() -> list[Transaction]:
    """
    Deposit 15,500 on day 1, buy 100 @ 100 the same day, buy 50 @ 110 on
    day 15 and sell 30 @ 120 on day 32.
    """
    return [
        Transaction.deposit(PORTFOLIO_ID, Decimal("15500"), day(1)),
        Transaction.buy(PORTFOLIO_ID, "XYZ", Decimal("100"), Decimal("100"), day(1)),
        Transaction.buy(PORTFOLIO_ID, "XYZ", Decimal("50"), Decimal("110"), day(15)),
        Transaction.sell(PORTFOLIO_ID, "XYZ", Decimal("30"), Decimal("120"), day(32)),
    ]


@pytest.fixture
def scenario_prices() -> dict[str, dict[date, str]]:
    """XYZ closes at 115 on days 1-14, 125 on days 15-31 and 130 from day 32."""
    return {"XYZ": daily_prices([(1, 14, "115"), (15, 31, "125"), (32, 60, "130")])}


@pytest.fixture
def scenario_oracle(scenario_prices) -> HistoricalPriceOracle:
    return HistoricalPriceOracle(InMemoryPriceSource.from_dict(scenario_prices))


@pytest.fixture
def two_asset_prices() -> dict[str, dict[date, str]]:
    """A and B both close at 10 throughout January 2024."""
    return {
        "A": daily_prices([(1, 31, "10")]),
        "B": daily_prices([(1, 31, "10")]),
    }


@pytest.fixture
def two_asset_oracle(two_asset_prices) -> HistoricalPriceOracle:
    return HistoricalPriceOracle(InMemoryPriceSource.from_dict(two_asset_prices))


@pytest.fixture
def balanced_model() -> TargetModel:
    """60/40 model over A and B."""
    return TargetModel.create(
        model_id="MODEL-6040",
        name="60/40",
        allocations=[
            ModelAllocation("A", AssetClass.STOCK, Decimal("0.6")),
            ModelAllocation("B", AssetClass.STOCK, Decimal("0.4")),
        ],
    )


@pytest.fixture
def store(balanced_model) -> InMemoryPortfolioStore:
    """
    Store holding one portfolio worth 1,000: 70 A and 30 B at 10 each,
    assigned the 60/40 model.
    """
    store = InMemoryPortfolioStore()
    store.add_model(balanced_model)
    store.add_portfolio(PORTFOLIO_ID, model_id=balanced_model.model_id)
    store.append([
        Transaction.deposit(PORTFOLIO_ID, Decimal("1000"), day(1)),
        Transaction.buy(PORTFOLIO_ID, "A", Decimal("70"), Decimal("10"), day(1)),
        Transaction.buy(PORTFOLIO_ID, "B", Decimal("30"), Decimal("10"), day(1)),
    ])
    return store


@pytest.fixture
def temp_output_dir() -> Path:
    """Create a temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# =============================================================================
# EODHD Provider Fixtures
# =============================================================================


@pytest.fixture
def sample_eodhd_price_data() -> dict[str, list[dict]]:
    """
    Sample EODHD API price response data.

    Format matches the EODHD EOD endpoint:
    https://eodhd.com/api/eod/{symbol}.US
    """
    return {
        "AAPL": [
            {
                "date": "2024-01-02",
                "open": 184.22,
                "high": 185.88,
                "low": 183.43,
                "close": 185.64,
                "adjusted_close": 185.64,
                "volume": 82488700,
            },
            {
                "date": "2024-01-03",
                "open": 184.22,
                "high": 185.15,
                "low": 183.20,
                "close": 184.25,
                "adjusted_close": 184.25,
                "volume": 58414460,
            },
        ],
        "MSFT": [
            {
                "date": "2024-01-02",
                "open": 373.86,
                "high": 375.90,
                "low": 366.77,
                "close": 370.87,
                "adjusted_close": 370.87,
                "volume": 25258600,
            },
            {
                "date": "2024-01-03",
                "open": 369.01,
                "high": 373.26,
                "low": 368.51,
                "close": 370.60,
                "adjusted_close": 370.60,
                "volume": 23083500,
            },
        ],
    }

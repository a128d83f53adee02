"""
Tests for portfolio valuation and position summaries.
"""

from decimal import Decimal

import pytest

from pms_engine.data.providers.oracle import HistoricalPriceOracle
from pms_engine.data.providers.static_provider import InMemoryPriceSource
from pms_engine.exceptions import PriceUnavailableError, UpstreamUnavailableError
from pms_engine.models import AssetClass, PortfolioState, Transaction
from pms_engine.portfolio.holdings import (
    calculate_position_weights,
    calculate_unrealized_pnl,
    summarize_positions,
)
from pms_engine.portfolio.ledger import replay
from pms_engine.portfolio.valuation import market_value, portfolio_value, value_holdings

from conftest import PORTFOLIO_ID, day


class TestMarketValue:
    """Tests for market_value and value_holdings."""

    def test_cash_plus_holdings(self, scenario_transactions, scenario_oracle):
        state = replay(scenario_transactions, as_of=day(14))
        # 100 XYZ @ 115 + 5,500 cash
        assert market_value(state, day(14), scenario_oracle) == Decimal("17000")

    def test_value_holdings_by_symbol(self, scenario_transactions, scenario_oracle):
        state = replay(scenario_transactions, as_of=day(20))
        values = value_holdings(state, day(20), scenario_oracle)
        assert values == {"XYZ": Decimal("150") * Decimal("125")}

    def test_cash_only_portfolio_needs_no_prices(self):
        oracle = HistoricalPriceOracle(InMemoryPriceSource())
        state = replay([Transaction.deposit(PORTFOLIO_ID, Decimal("250"), day(1))])
        assert market_value(state, day(1), oracle) == Decimal("250")

    def test_cash_class_holding_priced_at_one(self):
        oracle = HistoricalPriceOracle(InMemoryPriceSource())
        txns = [
            Transaction.buy(
                PORTFOLIO_ID, "MMF", Decimal("40"), Decimal("1"), day(1),
                asset_class=AssetClass.CASH,
            ),
        ]
        state = replay(txns)
        assert market_value(state, day(3), oracle) == Decimal("0")
        assert value_holdings(state, day(3), oracle) == {"MMF": Decimal("40")}

    def test_missing_price_raises(self, scenario_transactions):
        oracle = HistoricalPriceOracle(InMemoryPriceSource())
        state = replay(scenario_transactions, as_of=day(1))
        with pytest.raises(UpstreamUnavailableError):
            market_value(state, day(1), oracle)

    def test_portfolio_value_replays_then_values(self, scenario_transactions, scenario_oracle):
        # 120 XYZ @ 130 + 3,600 cash
        assert portfolio_value(scenario_transactions, day(32), scenario_oracle) == Decimal("19200")

    def test_portfolio_value_before_first_transaction(self, scenario_transactions):
        oracle = HistoricalPriceOracle(InMemoryPriceSource())
        assert portfolio_value(scenario_transactions, day(0), oracle) == Decimal("0")


class TestPositionWeights:
    """Tests for calculate_position_weights."""

    def test_weights_against_total(self):
        weights = calculate_position_weights(
            {"A": Decimal("600"), "B": Decimal("300")},
            Decimal("1000"),
        )
        assert weights == {"A": Decimal("0.6"), "B": Decimal("0.3")}

    def test_zero_total(self):
        weights = calculate_position_weights({"A": Decimal("0")}, Decimal("0"))
        assert weights == {"A": Decimal("0")}


class TestUnrealizedPnl:
    """Tests for calculate_unrealized_pnl."""

    def test_gain(self):
        pnl, pct = calculate_unrealized_pnl(Decimal("10"), Decimal("100"), Decimal("110"))
        assert pnl == Decimal("100")
        assert pct == Decimal("0.1")

    def test_zero_cost(self):
        pnl, pct = calculate_unrealized_pnl(Decimal("10"), Decimal("0"), Decimal("5"))
        assert pnl == Decimal("50")
        assert pct == Decimal("0")


class TestSummarizePositions:
    """Tests for summarize_positions."""

    def test_sorted_by_market_value(self, store, two_asset_oracle):
        state = replay(store.fetch_transactions("TEST001"))
        summaries = summarize_positions(state, day(5), two_asset_oracle)

        assert [s.symbol for s in summaries] == ["A", "B"]
        assert summaries[0].market_value == Decimal("700")
        assert summaries[0].current_weight == Decimal("0.7")
        assert summaries[1].unrealized_pnl == Decimal("0")

    def test_weights_include_cash(self, two_asset_oracle):
        state = replay([
            Transaction.deposit(PORTFOLIO_ID, Decimal("1000"), day(1)),
            Transaction.buy(PORTFOLIO_ID, "A", Decimal("50"), Decimal("10"), day(1)),
        ])
        summaries = summarize_positions(state, day(2), two_asset_oracle)
        assert summaries[0].current_weight == Decimal("0.5")

    def test_empty_state(self, two_asset_oracle):
        state = PortfolioState(cash_balance=Decimal("0"), holdings={})
        assert summarize_positions(state, day(2), two_asset_oracle) == []

    def test_unknown_price_raises_price_unavailable(self):
        oracle = HistoricalPriceOracle(InMemoryPriceSource())
        state = replay([Transaction.buy(PORTFOLIO_ID, "A", Decimal("1"), Decimal("1"), day(1))])
        with pytest.raises(PriceUnavailableError):
            summarize_positions(state, day(2), oracle)

"""
Tests for time-weighted return.
"""

from decimal import Decimal

import pytest

from pms_engine.analytics.performance import (
    CONTRIBUTION_FLOW_KINDS,
    EXTERNAL_FLOW_KINDS,
    benchmark_period_return,
    chain_link,
    compute_twr,
    external_cash_flows,
    flow_kinds_for_policy,
    sub_periods,
)
from pms_engine.data.providers.oracle import HistoricalPriceOracle
from pms_engine.data.providers.static_provider import InMemoryPriceSource
from pms_engine.exceptions import InvalidDateRangeError
from pms_engine.models import Transaction, TransactionKind

from conftest import PORTFOLIO_ID, daily_prices, day


@pytest.fixture
def flow_transactions() -> list[Transaction]:
    """Fully invested on day 1, deposit on day 10, withdrawal on day 20."""
    return [
        Transaction.deposit(PORTFOLIO_ID, Decimal("10000"), day(1)),
        Transaction.buy(PORTFOLIO_ID, "X", Decimal("100"), Decimal("100"), day(1)),
        Transaction.deposit(PORTFOLIO_ID, Decimal("1000"), day(10)),
        Transaction.withdrawal(PORTFOLIO_ID, Decimal("500"), day(20)),
    ]


@pytest.fixture
def flow_oracle() -> HistoricalPriceOracle:
    """X closes at 100 on days 1-9, 110 on days 10-19 and 121 from day 20."""
    prices = {"X": daily_prices([(1, 9, "100"), (10, 19, "110"), (20, 40, "121")])}
    return HistoricalPriceOracle(InMemoryPriceSource.from_dict(prices))


class TestSubPeriods:
    """Tests for splitting a range at flow dates."""

    def test_no_flows(self):
        assert sub_periods(day(1), day(10), []) == [(day(1), day(10))]

    def test_split_at_flow_dates(self):
        assert sub_periods(day(1), day(30), [day(20), day(10)]) == [
            (day(1), day(9)),
            (day(10), day(19)),
            (day(20), day(30)),
        ]

    def test_flow_on_start_and_end(self):
        assert sub_periods(day(1), day(5), [day(1), day(5)]) == [
            (day(1), day(4)),
            (day(5), day(5)),
        ]

    def test_out_of_range_flows_ignored(self):
        assert sub_periods(day(5), day(6), [day(1), day(9)]) == [(day(5), day(6))]


class TestExternalCashFlows:
    """Tests for flow extraction."""

    def test_trades_are_not_flows(self, scenario_transactions):
        flows = external_cash_flows(scenario_transactions, day(1), day(40))
        assert flows == {day(1): Decimal("15500")}

    def test_range_is_inclusive(self, flow_transactions):
        flows = external_cash_flows(flow_transactions, day(10), day(20))
        assert flows == {day(10): Decimal("1000"), day(20): Decimal("-500")}

    def test_flow_policies(self):
        assert TransactionKind.DIVIDEND in EXTERNAL_FLOW_KINDS
        assert TransactionKind.DIVIDEND not in CONTRIBUTION_FLOW_KINDS
        assert flow_kinds_for_policy("contributions_only") == CONTRIBUTION_FLOW_KINDS
        with pytest.raises(ValueError):
            flow_kinds_for_policy("everything")


class TestComputeTWR:
    """Tests for compute_twr."""

    def test_scenario_matches_manual_chain_link(self, scenario_transactions, scenario_oracle):
        """
        Only the day-1 deposit is an external flow, so the range is a single
        sub-period from the 15,500 contributed to the day-32 close.
        """
        twr = compute_twr(scenario_transactions, day(1), day(32), scenario_oracle)

        # Day 32: 120 XYZ @ 130 + 3,600 cash
        end_value = Decimal("120") * Decimal("130") + Decimal("3600")
        expected = float((end_value / Decimal("15500") - 1) * 100)
        assert twr == pytest.approx(expected, abs=0.01)
        assert twr == pytest.approx(23.87, abs=0.01)

    def test_no_flows_reduces_to_value_ratio(self, scenario_transactions, scenario_oracle):
        """Without flows in range, TWR is V(end) / V(start - 1) - 1."""
        twr = compute_twr(scenario_transactions, day(2), day(20), scenario_oracle)

        start_value = Decimal("100") * Decimal("115") + Decimal("5500")
        end_value = Decimal("150") * Decimal("125")
        expected = float((end_value / start_value - 1) * 100)
        assert twr == pytest.approx(expected, rel=1e-9)

    def test_three_sub_periods(self, flow_transactions, flow_oracle):
        twr = compute_twr(flow_transactions, day(1), day(25), flow_oracle)

        factors = [
            Decimal("10000") / Decimal("10000"),
            # 10,000 + 1,000 deposit -> 100 X @ 110 + 1,000 cash
            Decimal("12000") / Decimal("11000"),
            # 12,000 - 500 withdrawal -> 100 X @ 121 + 500 cash
            Decimal("12600") / Decimal("11500"),
        ]
        cumulative = Decimal("1")
        for factor in factors:
            cumulative *= factor
        expected = float((cumulative - 1) * 100)
        assert twr == pytest.approx(expected, rel=1e-9)

    def test_policies_agree_without_income(self, flow_transactions, flow_oracle):
        """With only deposits and withdrawals in the ledger both policies agree."""
        broad = compute_twr(flow_transactions, day(1), day(25), flow_oracle)
        narrow = compute_twr(
            flow_transactions, day(1), day(25), flow_oracle, flow_kinds=CONTRIBUTION_FLOW_KINDS
        )
        assert broad == pytest.approx(narrow, rel=1e-12)

    def test_flow_on_end_date_is_neutralized(self, flow_transactions, flow_oracle):
        on_flow_day = compute_twr(flow_transactions, day(1), day(20), flow_oracle)
        after_flow_day = compute_twr(flow_transactions, day(1), day(25), flow_oracle)
        assert on_flow_day == pytest.approx(after_flow_day, rel=1e-9)

    def test_same_day_range_is_zero(self, scenario_transactions, scenario_oracle):
        assert compute_twr(scenario_transactions, day(5), day(5), scenario_oracle) == 0.0

    def test_inverted_range_raises(self, scenario_transactions, scenario_oracle):
        with pytest.raises(InvalidDateRangeError):
            compute_twr(scenario_transactions, day(10), day(5), scenario_oracle)

    def test_empty_ledger_is_zero(self, scenario_oracle):
        assert compute_twr([], day(1), day(10), scenario_oracle) == 0.0

    def test_zero_start_sub_period_skipped(self, flow_oracle):
        """Days before the first deposit have no value and are skipped."""
        txns = [
            Transaction.deposit(PORTFOLIO_ID, Decimal("1000"), day(5)),
            Transaction.buy(PORTFOLIO_ID, "X", Decimal("10"), Decimal("100"), day(5)),
        ]
        twr = compute_twr(txns, day(1), day(12), flow_oracle)
        # 10 X goes from 100 to 110
        assert twr == pytest.approx(10.0, rel=1e-9)

    def test_dividend_flow_policy(self, flow_oracle):
        txns = [
            Transaction.deposit(PORTFOLIO_ID, Decimal("1000"), day(1)),
            Transaction.buy(PORTFOLIO_ID, "X", Decimal("10"), Decimal("100"), day(1)),
            Transaction.dividend(PORTFOLIO_ID, "X", Decimal("50"), day(5)),
        ]
        as_flow = compute_twr(txns, day(1), day(8), flow_oracle)
        as_return = compute_twr(
            txns, day(1), day(8), flow_oracle, flow_kinds=CONTRIBUTION_FLOW_KINDS
        )
        assert as_flow == pytest.approx(0.0, abs=1e-9)
        assert as_return == pytest.approx(5.0, rel=1e-9)


class TestChainLink:
    """Tests for chain_link."""

    def test_product_of_factors(self):
        assert chain_link([1.1, 1.1]) == pytest.approx(21.0)

    def test_no_factors(self):
        assert chain_link([]) == 0.0

    def test_non_finite_is_zero(self):
        assert chain_link([float("inf")]) == 0.0
        assert chain_link([float("nan")]) == 0.0


class TestBenchmarkPeriodReturn:
    """Tests for the two-point benchmark return."""

    def test_return(self):
        assert benchmark_period_return(Decimal("100"), Decimal("110")) == pytest.approx(10.0)

    def test_missing_price(self):
        assert benchmark_period_return(None, Decimal("110")) is None
        assert benchmark_period_return(Decimal("100"), None) is None

    def test_zero_start(self):
        assert benchmark_period_return(Decimal("0"), Decimal("110")) is None

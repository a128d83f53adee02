"""
Portfolio valuation and mark-to-market calculations.

Combines a replayed PortfolioState with a PriceOracle. No caching happens
at this layer; any caching belongs to the oracle.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Iterable

from pms_engine.data.providers.base import PriceOracle
from pms_engine.models import PortfolioState, Transaction
from pms_engine.portfolio.ledger import DEFAULT_QUANTITY_EPSILON, replay

logger = logging.getLogger(__name__)


def price_holdings(
    state: PortfolioState,
    valuation_date: date,
    oracle: PriceOracle,
) -> dict[str, Decimal]:
    """
    Look up the unit price of every holding.

    Raises:
        UpstreamUnavailableError: If any price cannot be obtained
    """
    return {
        symbol: oracle.get_price(symbol, holding.asset_class, valuation_date)
        for symbol, holding in state.holdings.items()
    }


def value_holdings(
    state: PortfolioState,
    valuation_date: date,
    oracle: PriceOracle,
) -> dict[str, Decimal]:
    """
    Market value of each holding (quantity * price), by symbol.

    Raises:
        UpstreamUnavailableError: If any price cannot be obtained
    """
    prices = price_holdings(state, valuation_date, oracle)
    return {
        symbol: holding.quantity * prices[symbol]
        for symbol, holding in state.holdings.items()
    }


def market_value(
    state: PortfolioState,
    valuation_date: date,
    oracle: PriceOracle,
) -> Decimal:
    """
    Total market value: cash balance plus the value of every holding.

    Args:
        state: Replayed portfolio state
        valuation_date: Date to price holdings on
        oracle: Price oracle

    Returns:
        Total market value

    Raises:
        UpstreamUnavailableError: If any price cannot be obtained
    """
    holdings_value = sum(
        value_holdings(state, valuation_date, oracle).values(),
        Decimal("0"),
    )
    return state.cash_balance + holdings_value


def portfolio_value(
    transactions: Iterable[Transaction],
    valuation_date: date,
    oracle: PriceOracle,
    epsilon: Decimal = DEFAULT_QUANTITY_EPSILON,
) -> Decimal:
    """
    Value a ledger at the close of a date.

    Replays every transaction on or before valuation_date, then marks the
    resulting state to market.
    """
    state = replay(transactions, as_of=valuation_date, epsilon=epsilon)
    return market_value(state, valuation_date, oracle)

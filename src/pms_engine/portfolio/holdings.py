"""
Position-level views of a replayed portfolio.

Provides weights and mark-to-market summaries per holding.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from pms_engine.data.providers.base import PriceOracle
from pms_engine.models import PortfolioState, PositionSummary
from pms_engine.portfolio.valuation import price_holdings


def calculate_position_weights(
    holding_values: dict[str, Decimal],
    total_market_value: Decimal,
) -> dict[str, Decimal]:
    """
    Calculate current portfolio weights by symbol.

    Args:
        holding_values: Market value by symbol
        total_market_value: Total portfolio value including cash

    Returns:
        Dictionary mapping symbol to weight (0-1); all 0 if the total is 0
    """
    if total_market_value == Decimal("0"):
        return {symbol: Decimal("0") for symbol in holding_values}

    return {
        symbol: value / total_market_value
        for symbol, value in holding_values.items()
    }


def calculate_unrealized_pnl(
    quantity: Decimal,
    average_cost: Decimal,
    current_price: Decimal,
) -> tuple[Decimal, Decimal]:
    """
    Calculate unrealized P&L for a position.

    Returns:
        Tuple of (unrealized_pnl_amount, unrealized_pnl_pct)
    """
    market_value = quantity * current_price
    cost_basis = quantity * average_cost
    unrealized_pnl = market_value - cost_basis

    if cost_basis != Decimal("0"):
        unrealized_pnl_pct = unrealized_pnl / cost_basis
    else:
        unrealized_pnl_pct = Decimal("0")

    return unrealized_pnl, unrealized_pnl_pct


def summarize_positions(
    state: PortfolioState,
    valuation_date: date,
    oracle: PriceOracle,
    total_market_value: Optional[Decimal] = None,
) -> list[PositionSummary]:
    """
    Create mark-to-market summaries for every holding.

    Args:
        state: Replayed portfolio state
        valuation_date: Date to price holdings on
        oracle: Price oracle
        total_market_value: Optional pre-calculated total (incl. cash)

    Returns:
        List of PositionSummary objects sorted by market value descending
    """
    prices = price_holdings(state, valuation_date, oracle)
    values = {
        symbol: holding.quantity * prices[symbol]
        for symbol, holding in state.holdings.items()
    }
    if total_market_value is None:
        total_market_value = state.cash_balance + sum(values.values(), Decimal("0"))
    weights = calculate_position_weights(values, total_market_value)

    summaries = []
    for symbol, holding in state.holdings.items():
        pnl, pnl_pct = calculate_unrealized_pnl(
            holding.quantity, holding.average_cost, prices[symbol]
        )
        summaries.append(
            PositionSummary(
                symbol=symbol,
                asset_class=holding.asset_class,
                quantity=holding.quantity,
                average_cost=holding.average_cost,
                price=prices[symbol],
                market_value=values[symbol],
                total_cost=holding.total_cost,
                unrealized_pnl=pnl,
                unrealized_pnl_pct=pnl_pct,
                current_weight=weights[symbol],
            )
        )

    summaries.sort(key=lambda x: x.market_value, reverse=True)
    return summaries

"""
Ledger replay: folding transactions into a point-in-time portfolio state.

State is always produced by a full replay of every transaction on or
before the requested date. Nothing is updated incrementally, so the
snapshot stays consistent with the ledger even when historical
transactions are inserted after the fact.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from pms_engine.models import (
    Holding,
    PortfolioState,
    Transaction,
    TransactionKind,
)

logger = logging.getLogger(__name__)

DEFAULT_QUANTITY_EPSILON = Decimal("0.000001")


def sort_transactions(transactions: Iterable[Transaction]) -> list[Transaction]:
    """
    Sort transactions ascending by date.

    The sort is stable, so same-day transactions keep their input order.
    """
    return sorted(transactions, key=lambda t: t.occurred_on)


def calculate_new_average_cost(
    current_quantity: Decimal,
    current_average_cost: Decimal,
    buy_quantity: Decimal,
    buy_price: Decimal,
) -> Decimal:
    """
    Weighted average cost per unit after a purchase.

    Args:
        current_quantity: Units held before the purchase
        current_average_cost: Average cost per unit before the purchase
        buy_quantity: Units purchased
        buy_price: Price per unit of the purchase

    Returns:
        New average cost, or 0 if the resulting quantity is zero
    """
    new_quantity = current_quantity + buy_quantity
    if new_quantity == Decimal("0"):
        return Decimal("0")
    new_total_cost = current_quantity * current_average_cost + buy_quantity * buy_price
    return new_total_cost / new_quantity


def replay(
    transactions: Iterable[Transaction],
    as_of: Optional[date] = None,
    epsilon: Decimal = DEFAULT_QUANTITY_EPSILON,
) -> PortfolioState:
    """
    Replay a ledger into holdings and cash as of a date.

    Every transaction moves cash by its cash_amount. BUY updates the
    weighted average cost and adds quantity; SELL only removes quantity.
    A SELL of an unheld symbol, or of more units than held, is logged as a
    data-integrity warning and still applied.

    Args:
        transactions: Ledger transactions in any order
        as_of: Include only transactions on or before this date (None = all)
        epsilon: Holdings at or below this quantity are treated as closed

    Returns:
        PortfolioState with open holdings and the cash balance
    """
    ordered = sort_transactions(transactions)
    if as_of is not None:
        ordered = [t for t in ordered if t.occurred_on <= as_of]

    holdings: dict[str, Holding] = {}
    cash_balance = Decimal("0")
    warnings: list[str] = []

    for txn in ordered:
        cash_balance += txn.cash_amount

        if txn.kind == TransactionKind.BUY:
            _apply_buy(holdings, txn)
        elif txn.kind == TransactionKind.SELL:
            warning = _apply_sell(holdings, txn)
            if warning:
                logger.warning(warning)
                warnings.append(warning)
        # Remaining kinds are cash-only

    open_holdings = {
        symbol: holding
        for symbol, holding in holdings.items()
        if holding.quantity > epsilon
    }

    return PortfolioState(
        cash_balance=cash_balance,
        holdings=open_holdings,
        as_of=as_of,
        integrity_warnings=tuple(warnings),
    )


def _apply_buy(holdings: dict[str, Holding], txn: Transaction) -> None:
    holding = holdings.get(txn.symbol)
    if holding is None:
        holdings[txn.symbol] = Holding(
            symbol=txn.symbol,
            asset_class=txn.asset_class,
            quantity=txn.quantity,
            average_cost=txn.unit_price,
        )
        return

    holding.average_cost = calculate_new_average_cost(
        holding.quantity,
        holding.average_cost,
        txn.quantity,
        txn.unit_price,
    )
    holding.quantity += txn.quantity


def _apply_sell(holdings: dict[str, Holding], txn: Transaction) -> Optional[str]:
    """Reduce quantity; return a data-integrity message if the sell is not covered."""
    holding = holdings.get(txn.symbol)
    if holding is None:
        holdings[txn.symbol] = Holding(
            symbol=txn.symbol,
            asset_class=txn.asset_class,
            quantity=-txn.quantity,
            average_cost=Decimal("0"),
        )
        return (
            f"Sell of {txn.quantity} {txn.symbol} on {txn.occurred_on} in portfolio "
            f"{txn.portfolio_id}: symbol not held"
        )

    available = holding.quantity
    holding.quantity -= txn.quantity
    if txn.quantity > available:
        return (
            f"Sell of {txn.quantity} {txn.symbol} on {txn.occurred_on} in portfolio "
            f"{txn.portfolio_id} exceeds held quantity {available}"
        )
    return None

"""
Rebalancing trade generation.

Turns drift entries into the BUY/SELL trades that would bring each model
symbol back to its target weight. All trades are proposals only; nothing
is executed.
"""

import logging
from decimal import Decimal, ROUND_DOWN
from typing import Optional

from pms_engine.models import DriftEntry, PortfolioState, RebalancingTrade, TradeAction

logger = logging.getLogger(__name__)

DEFAULT_NEGLIGIBLE_TRADE_VALUE = Decimal("0.01")
QUANTITY_PRECISION = Decimal("0.000001")


def generate_rebalancing_trades(
    drift_entries: list[DriftEntry],
    total_market_value: Decimal,
    prices: Optional[dict[str, Decimal]] = None,
    negligible_trade_value: Decimal = DEFAULT_NEGLIGIBLE_TRADE_VALUE,
) -> list[RebalancingTrade]:
    """
    Generate trades that close the gap between current and target values.

    Args:
        drift_entries: Drift entries, one per model symbol
        total_market_value: Total portfolio value including cash
        prices: Optional current prices by symbol for quantity estimates
        negligible_trade_value: Trades smaller than this are dropped

    Returns:
        List of RebalancingTrade objects in drift entry order
    """
    prices = prices or {}
    trades = []

    for entry in drift_entries:
        target_value = total_market_value * entry.target_weight
        difference = target_value - entry.current_value
        trade_value = abs(difference)

        if trade_value < negligible_trade_value:
            continue

        action = TradeAction.BUY if difference > Decimal("0") else TradeAction.SELL

        estimated_quantity = None
        price = prices.get(entry.symbol)
        if price is not None and price > Decimal("0"):
            estimated_quantity = (trade_value / price).quantize(
                QUANTITY_PRECISION, rounding=ROUND_DOWN
            )

        trades.append(
            RebalancingTrade(
                symbol=entry.symbol,
                action=action,
                trade_value=trade_value,
                estimated_quantity=estimated_quantity,
            )
        )

    return trades


def calculate_trade_summary(trades: list[RebalancingTrade]) -> dict:
    """
    Calculate summary statistics for rebalancing trades.

    Args:
        trades: List of rebalancing trades

    Returns:
        Dictionary with summary statistics
    """
    buys = [t for t in trades if t.action == TradeAction.BUY]
    sells = [t for t in trades if t.action == TradeAction.SELL]

    total_buy_value = sum((t.trade_value for t in buys), Decimal("0"))
    total_sell_value = sum((t.trade_value for t in sells), Decimal("0"))

    return {
        "total_trades": len(trades),
        "buy_count": len(buys),
        "sell_count": len(sells),
        "total_buy_value": total_buy_value,
        "total_sell_value": total_sell_value,
        "net_trade_value": total_buy_value - total_sell_value,
    }


def validate_trades(
    trades: list[RebalancingTrade],
    state: PortfolioState,
) -> list[str]:
    """
    Check proposed trades against current holdings and cash.

    Args:
        trades: Proposed trades
        state: Current portfolio state

    Returns:
        List of validation warning messages
    """
    warnings = []

    for trade in trades:
        if trade.action != TradeAction.SELL or trade.estimated_quantity is None:
            continue
        holding = state.holdings.get(trade.symbol)
        held = holding.quantity if holding else Decimal("0")
        if trade.estimated_quantity > held:
            warnings.append(
                f"Sell of {trade.symbol} ({trade.estimated_quantity} units) "
                f"exceeds current holdings ({held} units)"
            )

    summary = calculate_trade_summary(trades)
    if summary["net_trade_value"] > state.cash_balance:
        warnings.append(
            f"Net buys of {summary['net_trade_value']} exceed cash balance "
            f"{state.cash_balance}"
        )

    for warning in warnings:
        logger.warning(warning)

    return warnings

"""
Portfolio state module.

Provides ledger replay into holdings and cash, valuation against a price
oracle, and position-level summaries.
"""

from pms_engine.portfolio.ledger import (
    calculate_new_average_cost,
    replay,
    sort_transactions,
)
from pms_engine.portfolio.valuation import (
    market_value,
    portfolio_value,
    price_holdings,
    value_holdings,
)
from pms_engine.portfolio.holdings import (
    calculate_position_weights,
    calculate_unrealized_pnl,
    summarize_positions,
)

__all__ = [
    "calculate_new_average_cost",
    "replay",
    "sort_transactions",
    "market_value",
    "portfolio_value",
    "price_holdings",
    "value_holdings",
    "calculate_position_weights",
    "calculate_unrealized_pnl",
    "summarize_positions",
]

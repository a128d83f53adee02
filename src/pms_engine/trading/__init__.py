"""
Rebalancing trade generation module.

Generates proposed trades that move a portfolio back to its target model.
All trades are proposals only - no execution occurs.
"""

from pms_engine.trading.rebalance import (
    calculate_trade_summary,
    generate_rebalancing_trades,
    validate_trades,
)

__all__ = [
    "calculate_trade_summary",
    "generate_rebalancing_trades",
    "validate_trades",
]

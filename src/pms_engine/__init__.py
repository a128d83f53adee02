"""
Portfolio accounting and analytics engine (pms-engine)

Replays an append-only transaction ledger into point-in-time holdings and
cash, values them against a price oracle, and computes time-weighted
return, risk metrics (volatility, Sharpe ratio, maximum drawdown) and
allocation drift with rebalancing trade proposals.

Trades are proposals only. Nothing is executed.
"""

__version__ = "0.1.0"

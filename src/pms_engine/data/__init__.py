"""
Data access for the engine: ledger/model/benchmark sources and price data.
"""

from pms_engine.data.sources import (
    BenchmarkSource,
    InMemoryPortfolioStore,
    ModelSource,
    TransactionSource,
)

__all__ = [
    "BenchmarkSource",
    "InMemoryPortfolioStore",
    "ModelSource",
    "TransactionSource",
]

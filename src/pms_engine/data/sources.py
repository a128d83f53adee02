"""
Read-only contracts for the ledger, model and benchmark stores.

The engine does not own persistence. These interfaces are what the
computations need from whatever stores transactions, target models and
benchmark prices; InMemoryPortfolioStore implements all three.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from pms_engine.exceptions import NotFoundError
from pms_engine.models import TargetModel, Transaction
from pms_engine.portfolio.ledger import sort_transactions


class TransactionSource(ABC):
    """Source of ledger transactions."""

    @abstractmethod
    def fetch_transactions(
        self,
        portfolio_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[Transaction]:
        """
        Fetch a portfolio's transactions, ascending by occurred_on.

        Args:
            portfolio_id: Portfolio identifier
            start_date: Earliest transaction date (inclusive), None = unbounded
            end_date: Latest transaction date (inclusive), None = unbounded

        Raises:
            NotFoundError: If the portfolio does not exist
            UpstreamUnavailableError: If the store cannot be read
        """
        pass


class ModelSource(ABC):
    """Source of target allocation models."""

    @abstractmethod
    def get_model(self, portfolio_id: str) -> Optional[TargetModel]:
        """
        Get the model assigned to a portfolio, or None if none is assigned.

        Raises:
            NotFoundError: If the portfolio or its assigned model does not exist
        """
        pass


class BenchmarkSource(ABC):
    """Source of benchmark assignments and benchmark price history."""

    @abstractmethod
    def get_benchmark_id(self, portfolio_id: str) -> Optional[str]:
        """Benchmark assigned to a portfolio, or None."""
        pass

    @abstractmethod
    def get_benchmark_prices(
        self,
        benchmark_id: str,
        dates: list[date],
    ) -> dict[date, Decimal]:
        """
        Benchmark prices recorded on exactly the given dates.

        Dates without a recorded price are absent from the result.

        Raises:
            NotFoundError: If the benchmark does not exist
        """
        pass


@dataclass
class _PortfolioRecord:
    portfolio_id: str
    model_id: Optional[str] = None
    benchmark_id: Optional[str] = None


class InMemoryPortfolioStore(TransactionSource, ModelSource, BenchmarkSource):
    """
    Dictionary-backed store for portfolios, transactions, models and benchmarks.

    Transactions are append-only; insertion order is kept as the tie-break
    for same-day transactions.
    """

    def __init__(self):
        self._portfolios: dict[str, _PortfolioRecord] = {}
        self._transactions: dict[str, list[Transaction]] = {}
        self._models: dict[str, TargetModel] = {}
        self._benchmarks: dict[str, dict[date, Decimal]] = {}
        self._lock = threading.Lock()

    def add_portfolio(
        self,
        portfolio_id: str,
        model_id: Optional[str] = None,
        benchmark_id: Optional[str] = None,
    ) -> None:
        with self._lock:
            self._portfolios[portfolio_id] = _PortfolioRecord(portfolio_id, model_id, benchmark_id)
            self._transactions.setdefault(portfolio_id, [])

    def assign_model(self, portfolio_id: str, model_id: Optional[str]) -> None:
        self._require_portfolio(portfolio_id).model_id = model_id

    def assign_benchmark(self, portfolio_id: str, benchmark_id: Optional[str]) -> None:
        self._require_portfolio(portfolio_id).benchmark_id = benchmark_id

    def add_model(self, model: TargetModel) -> None:
        with self._lock:
            self._models[model.model_id] = model

    def add_benchmark_prices(self, benchmark_id: str, prices: dict[date, Decimal]) -> None:
        with self._lock:
            self._benchmarks.setdefault(benchmark_id, {}).update(prices)

    def append(self, transactions: Iterable[Transaction]) -> None:
        """Append transactions to their portfolios' ledgers."""
        for txn in transactions:
            self._require_portfolio(txn.portfolio_id)
            with self._lock:
                self._transactions[txn.portfolio_id].append(txn)

    def fetch_transactions(
        self,
        portfolio_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[Transaction]:
        self._require_portfolio(portfolio_id)
        with self._lock:
            transactions = list(self._transactions[portfolio_id])
        return [
            t for t in sort_transactions(transactions)
            if (start_date is None or t.occurred_on >= start_date)
            and (end_date is None or t.occurred_on <= end_date)
        ]

    def get_model(self, portfolio_id: str) -> Optional[TargetModel]:
        record = self._require_portfolio(portfolio_id)
        if record.model_id is None:
            return None
        model = self._models.get(record.model_id)
        if model is None:
            raise NotFoundError("Model", record.model_id)
        return model

    def get_benchmark_id(self, portfolio_id: str) -> Optional[str]:
        return self._require_portfolio(portfolio_id).benchmark_id

    def get_benchmark_prices(
        self,
        benchmark_id: str,
        dates: list[date],
    ) -> dict[date, Decimal]:
        history = self._benchmarks.get(benchmark_id)
        if history is None:
            raise NotFoundError("Benchmark", benchmark_id)
        return {d: history[d] for d in dates if d in history}

    def _require_portfolio(self, portfolio_id: str) -> _PortfolioRecord:
        record = self._portfolios.get(portfolio_id)
        if record is None:
            raise NotFoundError("Portfolio", portfolio_id)
        return record

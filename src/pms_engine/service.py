"""
Portfolio-level entry point to the engine.

PortfolioAnalytics resolves a portfolio id through the injected ledger,
model and benchmark sources, then runs the pure engines (replay,
valuation, TWR, risk, drift, rebalancing) against the injected price
oracle. It holds no state between calls.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from pms_engine.analytics.drift import compute_drift
from pms_engine.analytics.performance import (
    benchmark_period_return,
    compute_twr,
    flow_kinds_for_policy,
)
from pms_engine.analytics.risk import compute_risk_metrics
from pms_engine.audit.decision_log import DecisionLogger, open_decision_logger
from pms_engine.config import EngineConfig, configure_logging, load_engine_config
from pms_engine.data.providers.base import PriceOracle, PriceSource
from pms_engine.data.providers.cache import CachedPriceSource, FileCache
from pms_engine.data.providers.oracle import HistoricalPriceOracle
from pms_engine.data.sources import BenchmarkSource, ModelSource, TransactionSource
from pms_engine.exceptions import (
    InvalidDateRangeError,
    NotConfiguredError,
    PriceUnavailableError,
)
from pms_engine.models import (
    DriftEntry,
    PerformanceReport,
    PortfolioState,
    RebalanceProposal,
    RiskMetrics,
    TargetModel,
    Transaction,
)
from pms_engine.portfolio.ledger import replay
from pms_engine.portfolio.valuation import market_value, price_holdings
from pms_engine.trading.rebalance import generate_rebalancing_trades, validate_trades

logger = logging.getLogger(__name__)


class PortfolioAnalytics:
    """
    Computes holdings, performance, risk and drift for stored portfolios.

    Example:
        >>> store = InMemoryPortfolioStore()
        >>> oracle = HistoricalPriceOracle(InMemoryPriceSource.from_dict(prices))
        >>> analytics = PortfolioAnalytics(store, oracle, model_source=store)
        >>> analytics.compute_twr("p1", date(2024, 1, 1), date(2024, 3, 31))
    """

    def __init__(
        self,
        transaction_source: TransactionSource,
        oracle: PriceOracle,
        model_source: Optional[ModelSource] = None,
        benchmark_source: Optional[BenchmarkSource] = None,
        config: Optional[EngineConfig] = None,
        decision_logger: Optional[DecisionLogger] = None,
    ):
        """
        Args:
            transaction_source: Ledger store
            oracle: Price oracle used for every valuation. It keeps its own
                lookback; use from_config to build it from price_lookback_days
            model_source: Target model store (required for drift/rebalance)
            benchmark_source: Benchmark store (required for benchmark returns)
            config: Engine settings (defaults apply when None)
            decision_logger: Optional audit log
        """
        self.transactions = transaction_source
        self.oracle = oracle
        self.models = model_source
        self.benchmarks = benchmark_source
        self.config = config or EngineConfig()
        self.decision_logger = decision_logger
        self._flow_kinds = flow_kinds_for_policy(self.config.twr_flow_policy)

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        price_source: PriceSource,
        store: TransactionSource,
        config_path: Optional[str] = None,
    ) -> "PortfolioAnalytics":
        """
        Wire an engine from its settings.

        Installs logging at config.log_level, wraps price_source in the file
        cache when cache_dir is set, builds the oracle with the configured
        lookback, and opens the decision log when decision_log_path is set.
        The store is also used as model and benchmark source when it
        implements those contracts.

        Args:
            config: Engine settings
            price_source: Underlying price source
            store: Ledger store, optionally also a model and benchmark store
            config_path: Where the settings came from, recorded in the audit log

        Returns:
            Configured PortfolioAnalytics
        """
        configure_logging(config.log_level)

        if config.cache_dir is not None:
            price_source = CachedPriceSource(price_source, FileCache(config.cache_dir))
        oracle = HistoricalPriceOracle(price_source, lookback_days=config.price_lookback_days)

        decision_logger = open_decision_logger(config.decision_log_path)
        if decision_logger:
            decision_logger.log_config_loaded(config, config_path or "<defaults>")

        logger.info(
            "Engine configured: prices from %s, lookback %d days",
            price_source.name, config.price_lookback_days,
        )
        return cls(
            store,
            oracle,
            model_source=store if isinstance(store, ModelSource) else None,
            benchmark_source=store if isinstance(store, BenchmarkSource) else None,
            config=config,
            decision_logger=decision_logger,
        )

    @classmethod
    def from_config_file(
        cls,
        config_path: str,
        price_source: PriceSource,
        store: TransactionSource,
    ) -> "PortfolioAnalytics":
        """
        Load settings from a YAML file and wire an engine from them.

        Raises:
            ConfigurationError: If the file cannot be loaded or is invalid
        """
        config = load_engine_config(config_path)
        return cls.from_config(config, price_source, store, config_path=str(config_path))

    def get_holdings(self, portfolio_id: str, as_of: Optional[date] = None) -> PortfolioState:
        """
        Replay the ledger into holdings and cash.

        Args:
            portfolio_id: Portfolio identifier
            as_of: Cut-off date (defaults to today)

        Raises:
            NotFoundError: If the portfolio does not exist
        """
        as_of = as_of or date.today()
        ledger = self.transactions.fetch_transactions(portfolio_id, end_date=as_of)
        state = replay(ledger, as_of=as_of, epsilon=self.config.quantity_epsilon)

        if self.decision_logger:
            self.decision_logger.log_holdings_replayed(portfolio_id, state)
        return state

    def get_market_value(self, portfolio_id: str, on: date) -> Decimal:
        """Total market value (cash plus holdings) at the close of a date."""
        state = self.get_holdings(portfolio_id, on)
        return market_value(state, on, self.oracle)

    def compute_twr(self, portfolio_id: str, start_date: date, end_date: date) -> float:
        """
        Time-weighted return over [start_date, end_date], in percent.

        Raises:
            NotFoundError: If the portfolio does not exist
            InvalidDateRangeError: If end_date is before start_date
            UpstreamUnavailableError: If a required price cannot be obtained
        """
        _check_range(start_date, end_date)
        ledger = self._ledger_through(portfolio_id, end_date)
        self._prefetch(ledger, start_date - timedelta(days=1), end_date)

        twr = compute_twr(
            ledger,
            start_date,
            end_date,
            self.oracle,
            flow_kinds=self._flow_kinds,
            epsilon=self.config.quantity_epsilon,
        )

        if self.decision_logger:
            self.decision_logger.log_twr_calculated(
                portfolio_id, start_date, end_date, twr, self.config.twr_flow_policy
            )
        return twr

    def compute_risk_metrics(self, portfolio_id: str, start_date: date, end_date: date) -> RiskMetrics:
        """
        Volatility, Sharpe ratio and maximum drawdown over a range.

        Raises:
            NotFoundError: If the portfolio does not exist
            InvalidDateRangeError: If end_date is before start_date
            UpstreamUnavailableError: If a required price cannot be obtained
        """
        _check_range(start_date, end_date)
        ledger = self._ledger_through(portfolio_id, end_date)
        self._prefetch(ledger, start_date - timedelta(days=1), end_date)

        metrics = compute_risk_metrics(
            ledger,
            start_date,
            end_date,
            self.oracle,
            risk_free_rate=self.config.risk_free_rate,
            trading_days=self.config.trading_days_per_year,
            max_workers=self.config.max_workers,
            flow_kinds=self._flow_kinds,
            epsilon=self.config.quantity_epsilon,
        )

        if self.decision_logger:
            self.decision_logger.log_risk_metrics_calculated(portfolio_id, start_date, end_date, metrics)
        return metrics

    def compute_drift(self, portfolio_id: str, as_of: Optional[date] = None) -> list[DriftEntry]:
        """
        Drift of each model symbol from its target weight.

        Raises:
            NotFoundError: If the portfolio or its model does not exist
            NotConfiguredError: If the portfolio has no model
        """
        as_of = as_of or date.today()
        _, _, entries, _, _ = self._drift(portfolio_id, as_of)
        return entries

    def propose_rebalance(self, portfolio_id: str, as_of: Optional[date] = None) -> RebalanceProposal:
        """
        Trades that would move the portfolio back to its model weights.

        Nothing is executed; the proposal is plain data. A model symbol
        that is not held and has no close in the lookback window still gets
        its trade, without an estimated quantity.

        Raises:
            NotFoundError: If the portfolio or its model does not exist
            NotConfiguredError: If the portfolio has no model
        """
        as_of = as_of or date.today()
        model, state, entries, total, prices = self._drift(portfolio_id, as_of)

        for allocation in model.allocations:
            if allocation.symbol in prices:
                continue
            try:
                prices[allocation.symbol] = self.oracle.get_price(
                    allocation.symbol, allocation.asset_class, as_of
                )
            except PriceUnavailableError as e:
                logger.warning("No quantity estimate for %s: %s", allocation.symbol, e)

        trades = generate_rebalancing_trades(
            entries,
            total,
            prices=prices,
            negligible_trade_value=self.config.negligible_trade_value,
        )
        validate_trades(trades, state)

        if self.decision_logger:
            self.decision_logger.log_rebalance_proposed(portfolio_id, trades, total)

        return RebalanceProposal(
            portfolio_id=portfolio_id,
            total_market_value=total,
            drift_entries=entries,
            trades=trades,
            as_of=as_of,
        )

    def benchmark_performance(
        self,
        portfolio_id: str,
        start_date: date,
        end_date: date,
    ) -> Optional[float]:
        """
        Two-point return of the portfolio's benchmark, in percent.

        Returns None when no benchmark is assigned or either date has no
        recorded benchmark price.
        """
        _check_range(start_date, end_date)
        if self.benchmarks is None:
            return None
        benchmark_id = self.benchmarks.get_benchmark_id(portfolio_id)
        if benchmark_id is None:
            return None

        prices = self.benchmarks.get_benchmark_prices(benchmark_id, [start_date, end_date])
        return benchmark_period_return(prices.get(start_date), prices.get(end_date))

    def build_report(self, portfolio_id: str, start_date: date, end_date: date) -> PerformanceReport:
        """
        Bundle performance, risk and holdings for external report rendering.

        The report lists the range's transactions newest first.
        """
        _check_range(start_date, end_date)
        twr = self.compute_twr(portfolio_id, start_date, end_date)
        metrics = self.compute_risk_metrics(portfolio_id, start_date, end_date)
        holdings = self.get_holdings(portfolio_id, end_date)
        in_range = self.transactions.fetch_transactions(portfolio_id, start_date, end_date)

        return PerformanceReport(
            portfolio_id=portfolio_id,
            start_date=start_date,
            end_date=end_date,
            portfolio_twr=twr,
            benchmark_performance=self.benchmark_performance(portfolio_id, start_date, end_date),
            volatility=metrics.volatility,
            sharpe_ratio=metrics.sharpe_ratio,
            max_drawdown=metrics.max_drawdown,
            holdings=holdings,
            transactions=list(reversed(in_range)),
        )

    def _drift(
        self,
        portfolio_id: str,
        as_of: date,
    ) -> tuple[TargetModel, PortfolioState, list[DriftEntry], Decimal, dict[str, Decimal]]:
        model = self._require_model(portfolio_id)
        state = self.get_holdings(portfolio_id, as_of)

        prices = price_holdings(state, as_of, self.oracle)
        values = {
            symbol: holding.quantity * prices[symbol]
            for symbol, holding in state.holdings.items()
        }
        total = state.cash_balance + sum(values.values(), Decimal("0"))

        entries = compute_drift(values, total, model.allocations, self.config.drift_threshold)

        if self.decision_logger:
            self.decision_logger.log_drift_analyzed(portfolio_id, entries, self.config.drift_threshold)
        return model, state, entries, total, prices

    def _require_model(self, portfolio_id: str) -> TargetModel:
        if self.models is None:
            raise NotConfiguredError(portfolio_id)
        model = self.models.get_model(portfolio_id)
        if model is None:
            raise NotConfiguredError(portfolio_id)
        model.check_weights(self.config.model_weight_tolerance)
        return model

    def _ledger_through(self, portfolio_id: str, end_date: date) -> list[Transaction]:
        return self.transactions.fetch_transactions(portfolio_id, end_date=end_date)

    def _prefetch(self, ledger: list[Transaction], start_date: date, end_date: date) -> None:
        symbols = sorted({
            t.symbol for t in ledger
            if t.is_trade and not t.asset_class.is_cash
        })
        if symbols:
            self.oracle.prefetch(symbols, start_date, end_date)


def _check_range(start_date: date, end_date: date) -> None:
    if end_date < start_date:
        raise InvalidDateRangeError(start_date, end_date)

"""
Risk metrics over a daily portfolio return series.

Volatility, Sharpe ratio and maximum drawdown are derived from calendar-day
returns of the marked-to-market portfolio value. Each day's valuation is an
independent replay of the ledger, so days can be valued on a thread pool.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from pms_engine.analytics.performance import EXTERNAL_FLOW_KINDS, compute_twr
from pms_engine.data.providers.base import PriceOracle
from pms_engine.exceptions import InvalidDateRangeError
from pms_engine.models import RiskMetrics, Transaction, TransactionKind
from pms_engine.portfolio.ledger import DEFAULT_QUANTITY_EPSILON, sort_transactions
from pms_engine.portfolio.valuation import portfolio_value

logger = logging.getLogger(__name__)

DEFAULT_RISK_FREE_RATE = 0.02
TRADING_DAYS_PER_YEAR = 252


def date_sequence(start_date: date, end_date: date) -> list[date]:
    """Every calendar day from start_date to end_date inclusive."""
    days = (end_date - start_date).days
    return [start_date + timedelta(days=i) for i in range(days + 1)]


def daily_values(
    transactions: Iterable[Transaction],
    dates: list[date],
    oracle: PriceOracle,
    epsilon: Decimal = DEFAULT_QUANTITY_EPSILON,
    max_workers: int = 1,
) -> pd.Series:
    """
    Portfolio value at the close of each date.

    Args:
        transactions: Full ledger
        dates: Dates to value
        oracle: Price oracle
        epsilon: Quantity epsilon passed to ledger replay
        max_workers: Thread pool size; 1 values the dates serially

    Returns:
        Series of Decimal values indexed by date
    """
    ledger = sort_transactions(transactions)

    def value(day: date) -> Decimal:
        return portfolio_value(ledger, day, oracle, epsilon)

    if max_workers > 1 and len(dates) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            values = list(executor.map(value, dates))
    else:
        values = [value(day) for day in dates]

    return pd.Series(values, index=dates, dtype=object)


def daily_return_series(
    transactions: Iterable[Transaction],
    start_date: date,
    end_date: date,
    oracle: PriceOracle,
    epsilon: Decimal = DEFAULT_QUANTITY_EPSILON,
    max_workers: int = 1,
) -> pd.Series:
    """
    Calendar-day returns r(d) = (V(d) - V(d-1)) / V(d-1) for d in the range.

    Days whose previous value is 0 are skipped.

    Returns:
        Float series indexed by date (possibly empty)

    Raises:
        InvalidDateRangeError: If end_date is before start_date
    """
    if end_date < start_date:
        raise InvalidDateRangeError(start_date, end_date)

    dates = date_sequence(start_date - timedelta(days=1), end_date)
    values = daily_values(transactions, dates, oracle, epsilon, max_workers)

    returns = {}
    for previous_day, day in zip(dates, dates[1:]):
        previous_value = values[previous_day]
        if previous_value == Decimal("0"):
            continue
        returns[day] = float((values[day] - previous_value) / previous_value)

    return pd.Series(returns, dtype=float)


def annualize_return(twr_pct: float, observations: int, trading_days: int = TRADING_DAYS_PER_YEAR) -> float:
    """
    Compound a period return to a trading-year horizon.

    Args:
        twr_pct: Period return in percent
        observations: Number of daily return observations in the period
        trading_days: Trading days per year

    Returns:
        Annualized return as a fraction; -1 for a non-positive growth factor,
        0 when there are no observations or the result overflows
    """
    if observations <= 0:
        return 0.0
    growth = 1.0 + twr_pct / 100.0
    if growth <= 0:
        return -1.0
    try:
        annualized = growth ** (trading_days / observations) - 1.0
    except OverflowError:
        logger.warning("Annualized return overflowed; reporting 0")
        return 0.0
    return annualized if math.isfinite(annualized) else 0.0


def annualized_volatility(returns: pd.Series, trading_days: int = TRADING_DAYS_PER_YEAR) -> float:
    """Sample standard deviation of daily returns scaled by sqrt(trading_days), as a fraction."""
    if len(returns) < 2:
        return 0.0
    std = float(np.std(returns.to_numpy(dtype=float), ddof=1))
    return std * math.sqrt(trading_days)


def max_drawdown(returns: pd.Series) -> float:
    """
    Most negative peak-to-trough move of the cumulative return index, as a fraction.

    The running peak starts at 1 (the value entering the series).
    """
    if returns.empty:
        return 0.0
    cumulative = (1.0 + returns).cumprod()
    peak = cumulative.cummax().clip(lower=1.0)
    drawdown = (cumulative - peak) / peak
    worst = float(drawdown.min())
    return min(worst, 0.0) if math.isfinite(worst) else 0.0


def sharpe_ratio(annualized_return: float, volatility: float, risk_free_rate: float) -> float:
    """Excess annualized return per unit of annualized volatility; 0 when undefined."""
    if volatility == 0:
        return 0.0
    ratio = (annualized_return - risk_free_rate) / volatility
    return ratio if math.isfinite(ratio) else 0.0


def metrics_from_returns(
    returns: pd.Series,
    twr_pct: float,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
    trading_days: int = TRADING_DAYS_PER_YEAR,
) -> RiskMetrics:
    """
    Derive risk metrics from a daily return series and the period TWR.

    volatility and max_drawdown are reported in percent.
    """
    observations = len(returns)
    if observations == 0:
        return RiskMetrics()

    volatility = annualized_volatility(returns, trading_days)
    annualized = annualize_return(twr_pct, observations, trading_days)

    return RiskMetrics(
        volatility=volatility * 100.0,
        sharpe_ratio=sharpe_ratio(annualized, volatility, risk_free_rate),
        max_drawdown=max_drawdown(returns) * 100.0,
        annualized_return=annualized,
        observations=observations,
    )


def compute_risk_metrics(
    transactions: Iterable[Transaction],
    start_date: date,
    end_date: date,
    oracle: PriceOracle,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
    trading_days: int = TRADING_DAYS_PER_YEAR,
    twr: Optional[float] = None,
    max_workers: int = 1,
    flow_kinds: frozenset[TransactionKind] = EXTERNAL_FLOW_KINDS,
    epsilon: Decimal = DEFAULT_QUANTITY_EPSILON,
) -> RiskMetrics:
    """
    Compute volatility, Sharpe ratio and maximum drawdown over a range.

    Args:
        transactions: Full ledger
        start_date: First day of the range
        end_date: Last day of the range
        oracle: Price oracle
        risk_free_rate: Annual risk-free rate (fraction)
        trading_days: Trading days per year
        twr: Pre-computed TWR for the range in percent (computed if None)
        max_workers: Thread pool size for daily valuations
        flow_kinds: External flow kinds used when computing the TWR
        epsilon: Quantity epsilon passed to ledger replay

    Returns:
        RiskMetrics; all zeros for an empty return series

    Raises:
        InvalidDateRangeError: If end_date is before start_date
        UpstreamUnavailableError: If a required price cannot be obtained
    """
    ledger = sort_transactions(transactions)
    returns = daily_return_series(ledger, start_date, end_date, oracle, epsilon, max_workers)
    if returns.empty:
        logger.info(f"No daily returns between {start_date} and {end_date}")
        return RiskMetrics()

    if twr is None:
        twr = compute_twr(ledger, start_date, end_date, oracle, flow_kinds, epsilon)

    metrics = metrics_from_returns(returns, twr, risk_free_rate, trading_days)
    logger.info(
        f"Risk {start_date} to {end_date}: volatility={metrics.volatility:.4f}% "
        f"sharpe={metrics.sharpe_ratio:.4f} max_drawdown={metrics.max_drawdown:.4f}%"
    )
    return metrics

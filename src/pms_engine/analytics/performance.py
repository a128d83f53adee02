"""
Time-weighted return.

TWR neutralizes the timing and size of external cash flows: the range is
split at every date on which a flow occurs, each sub-period's growth factor
is measured from the value entering it (plus the flows arriving that day)
to the close of its last day, and the factors are chain-linked.

Flows are assumed to arrive at the start of their day, so a sub-period
beginning on a flow date starts at V(day - 1) + flows(day) and the
previous sub-period ends at V(day - 1). Ending the earlier sub-period at
V(day) instead would count the day's flow as growth of that sub-period;
this module never values a sub-period's end on the next flow date.
"""

import logging
import math
from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, Iterable, Optional

from pms_engine.data.providers.base import PriceOracle
from pms_engine.exceptions import InvalidDateRangeError
from pms_engine.models import Transaction, TransactionKind
from pms_engine.portfolio.ledger import DEFAULT_QUANTITY_EPSILON, sort_transactions
from pms_engine.portfolio.valuation import portfolio_value

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)

# Everything that moves cash across the portfolio boundary.
EXTERNAL_FLOW_KINDS = frozenset({
    TransactionKind.CASH_DEPOSIT,
    TransactionKind.CASH_WITHDRAWAL,
    TransactionKind.DIVIDEND,
    TransactionKind.INTEREST,
    TransactionKind.FEE,
})

# Investor contributions only; income and fees count as return.
CONTRIBUTION_FLOW_KINDS = frozenset({
    TransactionKind.CASH_DEPOSIT,
    TransactionKind.CASH_WITHDRAWAL,
})

FLOW_POLICIES = {
    "all_external": EXTERNAL_FLOW_KINDS,
    "contributions_only": CONTRIBUTION_FLOW_KINDS,
}


def flow_kinds_for_policy(policy: str) -> frozenset[TransactionKind]:
    """
    Map a configured TWR flow policy name to its set of flow kinds.

    Raises:
        ValueError: If the policy name is unknown
    """
    try:
        return FLOW_POLICIES[policy]
    except KeyError:
        raise ValueError(
            f"Unknown TWR flow policy: {policy}. Expected one of {', '.join(FLOW_POLICIES)}"
        )


def external_cash_flows(
    transactions: Iterable[Transaction],
    start_date: date,
    end_date: date,
    flow_kinds: frozenset[TransactionKind] = EXTERNAL_FLOW_KINDS,
) -> dict[date, Decimal]:
    """
    Net external cash flow per date within [start_date, end_date].

    Dates whose flows net to exactly zero are still returned; they remain
    sub-period boundaries.
    """
    flows: dict[date, Decimal] = defaultdict(lambda: Decimal("0"))
    for txn in transactions:
        if txn.kind in flow_kinds and start_date <= txn.occurred_on <= end_date:
            flows[txn.occurred_on] += txn.cash_amount
    return dict(flows)


def sub_periods(
    start_date: date,
    end_date: date,
    flow_dates: Iterable[date],
) -> list[tuple[date, date]]:
    """
    Split [start_date, end_date] into inclusive sub-periods at each flow date.

    Every sub-period starts on start_date or a flow date and ends the day
    before the next one starts (or on end_date).
    """
    starts = sorted({start_date, *(d for d in flow_dates if start_date <= d <= end_date)})
    periods = []
    for i, period_start in enumerate(starts):
        period_end = starts[i + 1] - ONE_DAY if i + 1 < len(starts) else end_date
        periods.append((period_start, period_end))
    return periods


def chain_link(factors: Iterable[float]) -> float:
    """
    Chain-link sub-period growth factors into a percentage return.

    Returns 0 when the product is not finite.
    """
    cumulative = 1.0
    for factor in factors:
        cumulative *= factor
    result = (cumulative - 1.0) * 100.0
    if not math.isfinite(result):
        logger.warning("Non-finite chain-linked return; reporting 0")
        return 0.0
    return result


def twr_from_values(
    value_at: Callable[[date], Decimal],
    flows: dict[date, Decimal],
    start_date: date,
    end_date: date,
) -> float:
    """
    Time-weighted return from a valuation function and dated flows.

    Args:
        value_at: Portfolio value at the close of a date
        flows: Net external flow per date
        start_date: First day of the measured range
        end_date: Last day of the measured range

    Returns:
        TWR as a percentage
    """
    factors = []
    for period_start, period_end in sub_periods(start_date, end_date, flows):
        mv_before = value_at(period_start - ONE_DAY)
        mv_start_adjusted = mv_before + flows.get(period_start, Decimal("0"))
        if mv_start_adjusted == Decimal("0"):
            logger.warning(
                f"Skipping sub-period {period_start} to {period_end}: zero starting value"
            )
            continue

        mv_end = value_at(period_end)
        factor = mv_end / mv_start_adjusted
        logger.debug(
            f"Sub-period {period_start} to {period_end}: "
            f"start={mv_start_adjusted} end={mv_end} factor={factor}"
        )
        factors.append(float(factor))

    return chain_link(factors)


def compute_twr(
    transactions: Iterable[Transaction],
    start_date: date,
    end_date: date,
    oracle: PriceOracle,
    flow_kinds: frozenset[TransactionKind] = EXTERNAL_FLOW_KINDS,
    epsilon: Decimal = DEFAULT_QUANTITY_EPSILON,
) -> float:
    """
    Compute the time-weighted return of a ledger over a date range.

    Args:
        transactions: Full ledger of the portfolio
        start_date: First day of the range
        end_date: Last day of the range
        oracle: Price oracle used to value each boundary date
        flow_kinds: Transaction kinds treated as external cash flows
        epsilon: Quantity epsilon passed to ledger replay

    Returns:
        TWR as a percentage (e.g. 5.0 for +5%); 0 for a same-day range

    Raises:
        InvalidDateRangeError: If end_date is before start_date
        UpstreamUnavailableError: If a required price cannot be obtained
    """
    if end_date < start_date:
        raise InvalidDateRangeError(start_date, end_date)
    if end_date == start_date:
        return 0.0

    ledger = sort_transactions(transactions)
    flows = external_cash_flows(ledger, start_date, end_date, flow_kinds)

    values: dict[date, Decimal] = {}

    def value_at(day: date) -> Decimal:
        if day not in values:
            values[day] = portfolio_value(ledger, day, oracle, epsilon)
        return values[day]

    twr = twr_from_values(value_at, flows, start_date, end_date)
    logger.info(
        f"TWR {start_date} to {end_date}: {twr:.4f}% "
        f"({len(flows)} flow date(s))"
    )
    return twr


def benchmark_period_return(
    start_price: Optional[Decimal],
    end_price: Optional[Decimal],
) -> Optional[float]:
    """
    Two-point benchmark return in percent.

    Returns None when either price is missing or the start price is 0.
    """
    if start_price is None or end_price is None or start_price == Decimal("0"):
        return None
    return float((end_price - start_price) / start_price * Decimal("100"))

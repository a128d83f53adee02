"""
Analytics module for the portfolio engine.

Provides time-weighted return, risk metrics and drift analysis.
"""

from pms_engine.analytics.performance import (
    CONTRIBUTION_FLOW_KINDS,
    EXTERNAL_FLOW_KINDS,
    benchmark_period_return,
    compute_twr,
    flow_kinds_for_policy,
)
from pms_engine.analytics.risk import (
    compute_risk_metrics,
    daily_return_series,
    metrics_from_returns,
)
from pms_engine.analytics.drift import (
    compute_drift,
    summarize_drift,
)

__all__ = [
    "CONTRIBUTION_FLOW_KINDS",
    "EXTERNAL_FLOW_KINDS",
    "benchmark_period_return",
    "compute_twr",
    "flow_kinds_for_policy",
    "compute_risk_metrics",
    "daily_return_series",
    "metrics_from_returns",
    "compute_drift",
    "summarize_drift",
]

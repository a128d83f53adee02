"""
Drift analysis for portfolio vs target model weights.

This module calculates per-symbol drift of current weights from a target
allocation model, and portfolio-level drift statistics.
"""

from decimal import Decimal
from typing import Sequence

from pms_engine.models import DriftEntry, ModelAllocation

DEFAULT_DRIFT_THRESHOLD = Decimal("0.005")


def compute_drift(
    holding_values: dict[str, Decimal],
    total_market_value: Decimal,
    allocations: Sequence[ModelAllocation],
    drift_threshold: Decimal = DEFAULT_DRIFT_THRESHOLD,
) -> list[DriftEntry]:
    """
    Calculate drift for each model allocation.

    Holdings outside the model contribute to total_market_value but get
    no entry of their own. A model symbol that is not held has a current
    value of 0.

    Args:
        holding_values: Market value by symbol
        total_market_value: Total portfolio value including cash
        allocations: Model allocations; output follows their order
        drift_threshold: Threshold for flagging drift (default 0.5%)

    Returns:
        List of DriftEntry objects, one per allocation
    """
    entries = []

    for allocation in allocations:
        current_value = holding_values.get(allocation.symbol, Decimal("0"))
        if total_market_value != Decimal("0"):
            current_weight = current_value / total_market_value
        else:
            current_weight = Decimal("0")

        drift = current_weight - allocation.target_weight

        entries.append(
            DriftEntry(
                symbol=allocation.symbol,
                current_value=current_value,
                current_weight=current_weight,
                target_weight=allocation.target_weight,
                drift=drift,
                exceeds_threshold=abs(drift) > drift_threshold,
            )
        )

    return entries


def calculate_tracking_error(entries: list[DriftEntry]) -> Decimal:
    """
    Calculate portfolio-level tracking error.

    Uses simple sum of squared drifts as a tracking error proxy.
    """
    return sum((e.drift ** 2 for e in entries), Decimal("0"))


def calculate_active_share(entries: list[DriftEntry]) -> Decimal:
    """
    Calculate active share vs the model.

    Active share = 0.5 * sum(|current_weight - target_weight|)

    Returns:
        Active share (0 = identical to the model)
    """
    total_absolute_drift = sum((abs(e.drift) for e in entries), Decimal("0"))
    return total_absolute_drift / Decimal("2")


def get_entries_exceeding_threshold(entries: list[DriftEntry]) -> list[DriftEntry]:
    return [e for e in entries if e.exceeds_threshold]


def get_underweight_entries(
    entries: list[DriftEntry],
    min_drift: Decimal = Decimal("0.001"),
) -> list[DriftEntry]:
    """
    Get entries that are underweight vs the model.

    Returns:
        Underweight entries, most underweight first
    """
    underweight = [e for e in entries if e.drift < -min_drift]
    underweight.sort(key=lambda x: x.drift)
    return underweight


def get_overweight_entries(
    entries: list[DriftEntry],
    min_drift: Decimal = Decimal("0.001"),
) -> list[DriftEntry]:
    """
    Get entries that are overweight vs the model.

    Returns:
        Overweight entries, most overweight first
    """
    overweight = [e for e in entries if e.drift > min_drift]
    overweight.sort(key=lambda x: x.drift, reverse=True)
    return overweight


def get_missing_entries(entries: list[DriftEntry]) -> list[DriftEntry]:
    """Model symbols with a positive target that are not held."""
    return [
        e for e in entries
        if e.current_value == Decimal("0") and e.target_weight > Decimal("0")
    ]


def summarize_drift(entries: list[DriftEntry]) -> dict:
    """
    Generate summary statistics for drift analysis.

    Args:
        entries: Drift entries

    Returns:
        Dictionary with summary statistics
    """
    return {
        "total_positions": len(entries),
        "positions_exceeding_threshold": len(get_entries_exceeding_threshold(entries)),
        "underweight_positions": len(get_underweight_entries(entries)),
        "overweight_positions": len(get_overweight_entries(entries)),
        "missing_positions": len(get_missing_entries(entries)),
        "tracking_error": calculate_tracking_error(entries),
        "active_share": calculate_active_share(entries),
        "max_absolute_drift": max(
            (abs(e.drift) for e in entries),
            default=Decimal("0"),
        ),
    }

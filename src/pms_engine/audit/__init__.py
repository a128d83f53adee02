"""
Audit trail module.

Provides append-only decision logging for audit and reproducibility.
"""

from pms_engine.audit.decision_log import (
    DecimalEncoder,
    DecisionLogger,
    open_decision_logger,
)

__all__ = [
    "DecimalEncoder",
    "DecisionLogger",
    "open_decision_logger",
]

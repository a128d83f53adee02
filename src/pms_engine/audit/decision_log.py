"""
Append-only decision logging for the portfolio analytics engine.

Every computation the engine performs on behalf of a portfolio is logged
with a timestamp and its key inputs and results, to support auditability
and reproducibility.
"""

import json
import threading
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pms_engine.models import (
    ActionType,
    DecisionLogEntry,
    DriftEntry,
    PortfolioState,
    RebalancingTrade,
    RiskMetrics,
)


class DecisionLogger:
    """
    Append-only decision logger.

    Writes all decisions to a JSONL file for audit purposes.
    Each line is a complete JSON object representing one action.
    Appends are serialized so one logger can be shared across threads.
    """

    def __init__(self, log_path: str | Path):
        """
        Initialize the decision logger.

        Args:
            log_path: Path to the log file (will be created if not exists)
        """
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def log(self, entry: DecisionLogEntry) -> None:
        """
        Write a decision log entry.

        Args:
            entry: DecisionLogEntry to write
        """
        record = {
            "timestamp": entry.timestamp.isoformat(),
            "action_type": entry.action_type.value,
            "portfolio_id": entry.portfolio_id,
            "details": entry.details,
        }
        line = json.dumps(record, cls=DecimalEncoder) + "\n"

        with self._lock:
            with open(self.log_path, "a") as f:
                f.write(line)

    def log_config_loaded(self, config: Any, config_path: str) -> None:
        """
        Log configuration loading.

        Args:
            config: Loaded EngineConfig
            config_path: Path to configuration file
        """
        details = {"config_path": config_path, **config.to_dict()}
        self.log(DecisionLogEntry.create(ActionType.CONFIG_LOADED, None, details))

    def log_holdings_replayed(self, portfolio_id: str, state: PortfolioState) -> None:
        details = {
            "as_of": state.as_of,
            "cash_balance": state.cash_balance,
            "num_positions": len(state.holdings),
            "symbols": state.symbols[:10],
            "integrity_warnings": list(state.integrity_warnings),
        }
        self.log(DecisionLogEntry.create(ActionType.HOLDINGS_REPLAYED, portfolio_id, details))

    def log_twr_calculated(
        self,
        portfolio_id: str,
        start_date: date,
        end_date: date,
        twr: float,
        flow_policy: str,
    ) -> None:
        """
        Log a time-weighted return computation.

        Args:
            portfolio_id: Portfolio identifier
            start_date: Range start
            end_date: Range end
            twr: Result in percent
            flow_policy: External flow policy used
        """
        details = {
            "start_date": start_date,
            "end_date": end_date,
            "twr_pct": twr,
            "flow_policy": flow_policy,
        }
        self.log(DecisionLogEntry.create(ActionType.TWR_CALCULATED, portfolio_id, details))

    def log_risk_metrics_calculated(
        self,
        portfolio_id: str,
        start_date: date,
        end_date: date,
        metrics: RiskMetrics,
    ) -> None:
        details = {
            "start_date": start_date,
            "end_date": end_date,
            **metrics.to_dict(),
        }
        self.log(DecisionLogEntry.create(ActionType.RISK_METRICS_CALCULATED, portfolio_id, details))

    def log_drift_analyzed(
        self,
        portfolio_id: str,
        entries: list[DriftEntry],
        threshold: Decimal,
    ) -> None:
        """
        Log drift analysis.

        Args:
            portfolio_id: Portfolio identifier
            entries: Drift entries
            threshold: Drift threshold used
        """
        exceeding = [e for e in entries if e.exceeds_threshold]

        details = {
            "threshold": threshold,
            "total_positions": len(entries),
            "positions_exceeding_threshold": len(exceeding),
            "max_drift": max((abs(e.drift) for e in entries), default=Decimal("0")),
            "exceeding_symbols": [e.symbol for e in exceeding[:10]],  # First 10
        }
        self.log(DecisionLogEntry.create(ActionType.DRIFT_ANALYZED, portfolio_id, details))

    def log_rebalance_proposed(
        self,
        portfolio_id: str,
        trades: list[RebalancingTrade],
        total_market_value: Decimal,
    ) -> None:
        """
        Log rebalancing trade generation.

        Args:
            portfolio_id: Portfolio identifier
            trades: Proposed trades
            total_market_value: Portfolio value the trades were sized against
        """
        from pms_engine.trading.rebalance import calculate_trade_summary

        summary = calculate_trade_summary(trades)
        details = {
            "total_market_value": total_market_value,
            **summary,
            "trades": [t.to_dict() for t in trades],
        }
        self.log(DecisionLogEntry.create(ActionType.REBALANCE_PROPOSED, portfolio_id, details))

    def read_log(self) -> list[DecisionLogEntry]:
        """
        Read all entries from the log file.

        Returns:
            List of DecisionLogEntry objects
        """
        if not self.log_path.exists():
            return []

        entries = []
        with open(self.log_path, "r") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                record = json.loads(line)
                entries.append(
                    DecisionLogEntry(
                        timestamp=datetime.fromisoformat(record["timestamp"]),
                        action_type=ActionType(record["action_type"]),
                        portfolio_id=record.get("portfolio_id"),
                        details=record.get("details", {}),
                    )
                )

        return entries

    def filter_by_portfolio(self, portfolio_id: str) -> list[DecisionLogEntry]:
        """Get log entries for a specific portfolio."""
        return [e for e in self.read_log() if e.portfolio_id == portfolio_id]

    def filter_by_action_type(self, action_type: ActionType) -> list[DecisionLogEntry]:
        """Get log entries of a specific action type."""
        return [e for e in self.read_log() if e.action_type == action_type]


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal, date and Enum types."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, (date, datetime)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


def open_decision_logger(log_path: Optional[str | Path]) -> Optional[DecisionLogger]:
    """Create a DecisionLogger for a configured path, or None if no path is set."""
    if log_path is None:
        return None
    return DecisionLogger(log_path)

"""
Core data models for the portfolio accounting and analytics engine.

This module defines the ledger transaction type, the derived holdings and
portfolio state produced by replay, target allocation models, and the plain
result records handed to external reporting. All monetary amounts, share
quantities, prices and weights use Decimal; return figures are floats.
"""

from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pms_engine.exceptions import ModelValidationError, TransactionValidationError


class TransactionKind(Enum):
    """Ledger transaction kinds."""
    BUY = "BUY"
    SELL = "SELL"
    DIVIDEND = "DIVIDEND"
    INTEREST = "INTEREST"
    CASH_DEPOSIT = "CASH_DEPOSIT"
    CASH_WITHDRAWAL = "CASH_WITHDRAWAL"
    FEE = "FEE"


class AssetClass(Enum):
    """Asset class of a transaction or holding."""
    STOCK = "STOCK"
    ETF = "ETF"
    BOND = "BOND"
    FUND = "FUND"
    FOREX = "FOREX"
    CASH = "CASH"

    @property
    def is_cash(self) -> bool:
        return self is AssetClass.CASH


class TradeAction(Enum):
    """Direction of a proposed rebalancing trade."""
    BUY = "BUY"
    SELL = "SELL"


class ActionType(Enum):
    """Types of logged computations for the decision log."""
    CONFIG_LOADED = "CONFIG_LOADED"
    HOLDINGS_REPLAYED = "HOLDINGS_REPLAYED"
    TWR_CALCULATED = "TWR_CALCULATED"
    RISK_METRICS_CALCULATED = "RISK_METRICS_CALCULATED"
    DRIFT_ANALYZED = "DRIFT_ANALYZED"
    REBALANCE_PROPOSED = "REBALANCE_PROPOSED"


# Kinds whose cash_amount must be <= 0 / >= 0
OUTFLOW_KINDS = frozenset({
    TransactionKind.BUY,
    TransactionKind.FEE,
    TransactionKind.CASH_WITHDRAWAL,
})
INFLOW_KINDS = frozenset({
    TransactionKind.SELL,
    TransactionKind.DIVIDEND,
    TransactionKind.INTEREST,
    TransactionKind.CASH_DEPOSIT,
})
TRADE_KINDS = frozenset({TransactionKind.BUY, TransactionKind.SELL})


def _to_plain(value: Any) -> Any:
    """Recursively convert enums inside asdict() output to their values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_plain(v) for v in value]
    return value


@dataclass(frozen=True)
class Transaction:
    """
    Immutable ledger transaction.

    The sign of cash_amount is the single source of truth for the cash
    impact of a transaction. Validation runs at construction time and is
    exhaustive over the transaction kind; prefer the factory classmethods,
    which derive cash_amount the same way the accounting subsystem does.

    Attributes:
        portfolio_id: Portfolio the transaction belongs to
        kind: Transaction kind
        asset_class: Asset class of the instrument (CASH for cash-only kinds)
        cash_amount: Net cash effect (negative for outflows)
        occurred_on: Transaction date
        symbol: Instrument symbol (required for BUY/SELL)
        quantity: Units traded (required and positive for BUY/SELL)
        unit_price: Price per unit (required for BUY/SELL)
        transaction_id: Optional identifier assigned by the ledger store
    """
    portfolio_id: str
    kind: TransactionKind
    asset_class: AssetClass
    cash_amount: Decimal
    occurred_on: date
    symbol: Optional[str] = None
    quantity: Optional[Decimal] = None
    unit_price: Optional[Decimal] = None
    transaction_id: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.kind, TransactionKind):
            raise TransactionValidationError(f"Unsupported transaction kind: {self.kind!r}")
        if not isinstance(self.asset_class, AssetClass):
            raise TransactionValidationError(f"Unsupported asset class: {self.asset_class!r}")
        if not isinstance(self.occurred_on, date) or isinstance(self.occurred_on, datetime):
            raise TransactionValidationError("occurred_on must be a date")
        if not isinstance(self.cash_amount, Decimal):
            raise TransactionValidationError("cash_amount must be a Decimal")

        if self.kind in TRADE_KINDS:
            if not self.symbol:
                raise TransactionValidationError(f"{self.kind.value} requires a symbol")
            if self.quantity is None or self.unit_price is None:
                raise TransactionValidationError(
                    f"{self.kind.value} requires quantity and unit_price"
                )
            if self.quantity <= Decimal("0"):
                raise TransactionValidationError(
                    f"{self.kind.value} quantity must be positive, got {self.quantity}"
                )
            if self.unit_price < Decimal("0"):
                raise TransactionValidationError(
                    f"{self.kind.value} unit_price must not be negative, got {self.unit_price}"
                )
        elif self.kind not in OUTFLOW_KINDS | INFLOW_KINDS:
            raise TransactionValidationError(f"Unhandled transaction kind: {self.kind}")

        if self.kind in OUTFLOW_KINDS and self.cash_amount > Decimal("0"):
            raise TransactionValidationError(
                f"{self.kind.value} must carry a non-positive cash_amount, got {self.cash_amount}"
            )
        if self.kind in INFLOW_KINDS and self.cash_amount < Decimal("0"):
            raise TransactionValidationError(
                f"{self.kind.value} must carry a non-negative cash_amount, got {self.cash_amount}"
            )

    @property
    def is_trade(self) -> bool:
        return self.kind in TRADE_KINDS

    @classmethod
    def buy(
        cls,
        portfolio_id: str,
        symbol: str,
        quantity: Decimal,
        unit_price: Decimal,
        occurred_on: date,
        asset_class: AssetClass = AssetClass.STOCK,
        transaction_id: Optional[str] = None,
    ) -> "Transaction":
        """Create a BUY; cash_amount is -(quantity * unit_price)."""
        return cls(
            portfolio_id=portfolio_id,
            kind=TransactionKind.BUY,
            asset_class=asset_class,
            cash_amount=-(quantity * unit_price),
            occurred_on=occurred_on,
            symbol=symbol,
            quantity=quantity,
            unit_price=unit_price,
            transaction_id=transaction_id,
        )

    @classmethod
    def sell(
        cls,
        portfolio_id: str,
        symbol: str,
        quantity: Decimal,
        unit_price: Decimal,
        occurred_on: date,
        asset_class: AssetClass = AssetClass.STOCK,
        transaction_id: Optional[str] = None,
    ) -> "Transaction":
        """Create a SELL; cash_amount is quantity * unit_price."""
        return cls(
            portfolio_id=portfolio_id,
            kind=TransactionKind.SELL,
            asset_class=asset_class,
            cash_amount=quantity * unit_price,
            occurred_on=occurred_on,
            symbol=symbol,
            quantity=quantity,
            unit_price=unit_price,
            transaction_id=transaction_id,
        )

    @classmethod
    def dividend(
        cls,
        portfolio_id: str,
        symbol: str,
        amount: Decimal,
        occurred_on: date,
        asset_class: AssetClass = AssetClass.STOCK,
        transaction_id: Optional[str] = None,
    ) -> "Transaction":
        """Create a DIVIDEND paid by a held instrument."""
        if not symbol:
            raise TransactionValidationError("DIVIDEND requires a symbol")
        return cls(
            portfolio_id=portfolio_id,
            kind=TransactionKind.DIVIDEND,
            asset_class=asset_class,
            cash_amount=amount,
            occurred_on=occurred_on,
            symbol=symbol,
            transaction_id=transaction_id,
        )

    @classmethod
    def interest(
        cls,
        portfolio_id: str,
        amount: Decimal,
        occurred_on: date,
        transaction_id: Optional[str] = None,
    ) -> "Transaction":
        return cls(
            portfolio_id=portfolio_id,
            kind=TransactionKind.INTEREST,
            asset_class=AssetClass.CASH,
            cash_amount=amount,
            occurred_on=occurred_on,
            transaction_id=transaction_id,
        )

    @classmethod
    def deposit(
        cls,
        portfolio_id: str,
        amount: Decimal,
        occurred_on: date,
        transaction_id: Optional[str] = None,
    ) -> "Transaction":
        return cls(
            portfolio_id=portfolio_id,
            kind=TransactionKind.CASH_DEPOSIT,
            asset_class=AssetClass.CASH,
            cash_amount=amount,
            occurred_on=occurred_on,
            transaction_id=transaction_id,
        )

    @classmethod
    def withdrawal(
        cls,
        portfolio_id: str,
        amount: Decimal,
        occurred_on: date,
        transaction_id: Optional[str] = None,
    ) -> "Transaction":
        """Create a CASH_WITHDRAWAL; the amount is always stored as negative."""
        return cls(
            portfolio_id=portfolio_id,
            kind=TransactionKind.CASH_WITHDRAWAL,
            asset_class=AssetClass.CASH,
            cash_amount=-abs(amount),
            occurred_on=occurred_on,
            transaction_id=transaction_id,
        )

    @classmethod
    def fee(
        cls,
        portfolio_id: str,
        amount: Decimal,
        occurred_on: date,
        transaction_id: Optional[str] = None,
    ) -> "Transaction":
        """Create a FEE; the amount is always stored as negative."""
        return cls(
            portfolio_id=portfolio_id,
            kind=TransactionKind.FEE,
            asset_class=AssetClass.CASH,
            cash_amount=-abs(amount),
            occurred_on=occurred_on,
            transaction_id=transaction_id,
        )

    def to_dict(self) -> dict:
        return _to_plain(asdict(self))


@dataclass
class Holding:
    """
    Derived position in a single symbol.

    average_cost is a quantity-weighted mean updated only on BUY; SELL
    reduces quantity and leaves the average cost untouched.
    """
    symbol: str
    asset_class: AssetClass
    quantity: Decimal
    average_cost: Decimal

    @property
    def total_cost(self) -> Decimal:
        """Cost basis of the position (quantity * average_cost)."""
        return self.quantity * self.average_cost


@dataclass
class PortfolioState:
    """
    Cash balance and holdings as of a date, produced by full ledger replay.

    Attributes:
        cash_balance: Sum of cash_amount over all replayed transactions
        holdings: Open positions by symbol (closed positions removed)
        as_of: Replay cut-off date (None = entire ledger)
        integrity_warnings: Non-fatal data-integrity findings from replay
    """
    cash_balance: Decimal
    holdings: dict[str, Holding]
    as_of: Optional[date] = None
    integrity_warnings: tuple[str, ...] = ()

    @property
    def symbols(self) -> list[str]:
        return sorted(self.holdings)

    def to_dict(self) -> dict:
        return {
            "cash_balance": self.cash_balance,
            "as_of": self.as_of,
            "assets": [
                {
                    "symbol": h.symbol,
                    "asset_class": h.asset_class.value,
                    "quantity": h.quantity,
                    "average_cost": h.average_cost,
                    "total_cost": h.total_cost,
                }
                for h in self.holdings.values()
            ],
            "integrity_warnings": list(self.integrity_warnings),
        }


@dataclass(frozen=True)
class ModelAllocation:
    """Target weight (0-1) of one symbol in a model portfolio."""
    symbol: str
    asset_class: AssetClass
    target_weight: Decimal


@dataclass(frozen=True)
class TargetModel:
    """
    Target allocation model assigned to a portfolio.

    The weights-sum invariant is enforced at model creation time. Models
    built elsewhere can be re-checked against an engine's tolerance with
    check_weights.
    """
    model_id: str
    name: str
    allocations: tuple[ModelAllocation, ...]

    @classmethod
    def create(
        cls,
        model_id: str,
        name: str,
        allocations: list[ModelAllocation],
        tolerance: Decimal = Decimal("0.001"),
    ) -> "TargetModel":
        """
        Build a validated model.

        Raises:
            ModelValidationError: If weights are negative, symbols repeat,
                or the weights do not sum to 1 within tolerance
        """
        model = cls(model_id=model_id, name=name, allocations=tuple(allocations))
        model.check_weights(tolerance)
        return model

    def check_weights(self, tolerance: Decimal = Decimal("0.001")) -> None:
        """
        Validate the allocations.

        Raises:
            ModelValidationError: If weights are negative, symbols repeat,
                or the weights do not sum to 1 within tolerance
        """
        if not self.allocations:
            raise ModelValidationError("A model needs at least one allocation")

        seen: set[str] = set()
        for allocation in self.allocations:
            if allocation.target_weight < Decimal("0"):
                raise ModelValidationError(
                    f"Negative target weight for {allocation.symbol}: {allocation.target_weight}"
                )
            if allocation.symbol in seen:
                raise ModelValidationError(f"Duplicate model symbol: {allocation.symbol}")
            seen.add(allocation.symbol)

        total = sum((a.target_weight for a in self.allocations), Decimal("0"))
        if abs(total - Decimal("1")) > tolerance:
            raise ModelValidationError(
                f"Asset target weights must sum to 1.0, got {total}"
            )


@dataclass
class PositionSummary:
    """
    Mark-to-market view of a single holding.

    Attributes:
        symbol: Instrument symbol
        asset_class: Asset class
        quantity: Units held
        average_cost: Weighted average cost per unit
        price: Price used for valuation
        market_value: quantity * price
        total_cost: quantity * average_cost
        unrealized_pnl: market_value - total_cost
        unrealized_pnl_pct: unrealized_pnl / total_cost (0 if no cost)
        current_weight: market_value / total portfolio value (incl. cash)
    """
    symbol: str
    asset_class: AssetClass
    quantity: Decimal
    average_cost: Decimal
    price: Decimal
    market_value: Decimal
    total_cost: Decimal
    unrealized_pnl: Decimal
    unrealized_pnl_pct: Decimal
    current_weight: Decimal = Decimal("0")

    def to_dict(self) -> dict:
        return _to_plain(asdict(self))


@dataclass
class DriftEntry:
    """
    Drift of one model symbol against its target weight.

    Attributes:
        symbol: Model symbol
        current_value: Market value currently held
        current_weight: current_value / total market value
        target_weight: Model weight
        drift: current_weight - target_weight
        exceeds_threshold: Whether |drift| exceeds the configured threshold
    """
    symbol: str
    current_value: Decimal
    current_weight: Decimal
    target_weight: Decimal
    drift: Decimal
    exceeds_threshold: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RebalancingTrade:
    """
    Proposed trade (not executed) closing a drift gap.

    Attributes:
        symbol: Instrument symbol
        action: BUY or SELL
        trade_value: Absolute currency value of the trade
        estimated_quantity: trade_value / price when a price is known
    """
    symbol: str
    action: TradeAction
    trade_value: Decimal
    estimated_quantity: Optional[Decimal] = None

    def to_dict(self) -> dict:
        return _to_plain(asdict(self))


@dataclass
class RebalanceProposal:
    """Drift analysis and the trades that would close it."""
    portfolio_id: str
    total_market_value: Decimal
    drift_entries: list[DriftEntry]
    trades: list[RebalancingTrade]
    as_of: Optional[date] = None

    def to_dict(self) -> dict:
        return _to_plain(asdict(self))


@dataclass
class RiskMetrics:
    """
    Risk statistics over a daily return series.

    Attributes:
        volatility: Annualized sample standard deviation, in percent
        sharpe_ratio: (annualized_return - risk_free_rate) / volatility
        max_drawdown: Most negative peak-to-trough move, in percent
        annualized_return: TWR compounded to a trading-year horizon
        observations: Number of daily returns in the series
    """
    volatility: float = 0.0
    sharpe_ratio: float = 0.0
    max_drawdown: float = 0.0
    annualized_return: float = 0.0
    observations: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class PerformanceReport:
    """
    Plain-data bundle consumed by external report rendering.

    transactions are those within [start_date, end_date], newest first.
    """
    portfolio_id: str
    start_date: date
    end_date: date
    portfolio_twr: float
    benchmark_performance: Optional[float]
    volatility: float
    sharpe_ratio: float
    max_drawdown: float
    holdings: PortfolioState
    transactions: list[Transaction] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "portfolio_id": self.portfolio_id,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "performance": {
                "portfolio_twr": self.portfolio_twr,
                "benchmark_performance": self.benchmark_performance,
                "volatility": self.volatility,
                "sharpe_ratio": self.sharpe_ratio,
                "max_drawdown": self.max_drawdown,
            },
            "holdings": self.holdings.to_dict(),
            "transactions": [t.to_dict() for t in self.transactions],
        }


@dataclass
class DecisionLogEntry:
    """
    Entry for the append-only decision log.

    Attributes:
        timestamp: When the computation ran
        action_type: Type of computation
        portfolio_id: Portfolio involved (if applicable)
        details: JSON-serializable details dictionary
    """
    timestamp: datetime
    action_type: ActionType
    portfolio_id: Optional[str]
    details: dict

    @classmethod
    def create(
        cls,
        action_type: ActionType,
        portfolio_id: Optional[str],
        details: dict,
    ) -> "DecisionLogEntry":
        """Factory method with auto-generated timestamp."""
        return cls(
            timestamp=datetime.now(),
            action_type=action_type,
            portfolio_id=portfolio_id,
            details=details,
        )

"""
Error taxonomy for the portfolio accounting and analytics engine.

Every failure the engine surfaces to a caller derives from PMSError so
that the transport layer can map conditions to responses without
inspecting messages.
"""


class PMSError(Exception):
    """Base exception for engine errors."""

    def __init__(self, message: str, code: str = "PMS_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(PMSError):
    """Raised when a referenced portfolio, model or benchmark does not exist."""

    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found: {identifier}", code="NOT_FOUND")


class NotConfiguredError(PMSError):
    """Raised when drift or rebalancing is requested without an assigned model."""

    def __init__(self, portfolio_id: str):
        self.portfolio_id = portfolio_id
        super().__init__(
            f"Portfolio {portfolio_id} has no target allocation model assigned",
            code="NOT_CONFIGURED",
        )


class UpstreamUnavailableError(PMSError):
    """Raised when a price or transaction source cannot deliver data."""

    def __init__(self, message: str, code: str = "UPSTREAM_UNAVAILABLE"):
        super().__init__(message, code=code)


class DataProviderError(UpstreamUnavailableError):
    """Raised when a data provider encounters a transport or API error."""

    def __init__(self, message: str):
        super().__init__(message, code="DATA_PROVIDER_ERROR")


class PriceUnavailableError(UpstreamUnavailableError):
    """Raised when no price exists for a symbol within the lookback window."""

    def __init__(self, symbol: str, as_of: object, lookback_days: int):
        self.symbol = symbol
        self.as_of = as_of
        self.lookback_days = lookback_days
        super().__init__(
            f"No price for {symbol} on or within {lookback_days} days before {as_of}",
            code="PRICE_UNAVAILABLE",
        )


class ValidationError(PMSError, ValueError):
    """Raised when input validation fails."""

    def __init__(self, message: str, code: str = "VALIDATION_ERROR"):
        super().__init__(message, code=code)


class TransactionValidationError(ValidationError):
    """Raised when a transaction violates the ledger invariants."""

    def __init__(self, message: str):
        super().__init__(message, code="INVALID_TRANSACTION")


class ModelValidationError(ValidationError):
    """Raised when a target allocation model is malformed."""

    def __init__(self, message: str):
        super().__init__(message, code="INVALID_MODEL")


class InvalidDateRangeError(ValidationError):
    """Raised when a computation is requested over an inverted date range."""

    def __init__(self, start_date: object, end_date: object):
        super().__init__(
            f"end date {end_date} precedes start date {start_date}",
            code="INVALID_DATE_RANGE",
        )


class ConfigurationError(PMSError):
    """Raised when configuration is invalid or cannot be loaded."""

    def __init__(self, message: str):
        super().__init__(message, code="CONFIGURATION_ERROR")

"""
Custom exceptions for the broker module.

This module defines a hierarchy of exceptions for the errors a broker
collaborator can raise while reading positions, prices, or closing positions.
Every one of them is an operation error from the trim logic's point of view:
the close executor retries it and the monitoring loop survives it.
"""


class ExchangeError(Exception):
    """Base exception for all broker-related errors."""

    def __init__(self, message: str, error_code: str = None, details: dict = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def __str__(self) -> str:
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message


class NetworkError(ExchangeError):
    """
    Exception raised for network-related errors.

    These errors are typically transient and can be retried.
    Examples: connection timeouts, DNS resolution failures, connection refused.
    """

    def __init__(self, message: str = "Network error occurred", details: dict = None):
        super().__init__(message, error_code="NETWORK_ERROR", details=details)


class RateLimitError(ExchangeError):
    """
    Exception raised when API rate limits are exceeded.

    The caller should back off before retrying.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: int = None,
        details: dict = None
    ):
        super().__init__(message, error_code="RATE_LIMIT_ERROR", details=details)
        self.retry_after = retry_after


class AuthenticationError(ExchangeError):
    """
    Exception raised for authentication failures.

    Examples: invalid API key, expired credentials, insufficient permissions.
    """

    def __init__(self, message: str = "Authentication failed", details: dict = None):
        super().__init__(message, error_code="AUTHENTICATION_ERROR", details=details)


class InvalidOrderError(ExchangeError):
    """
    Exception raised for invalid close parameters.

    Examples: volume above the open volume, volume below the minimum step.
    """

    def __init__(
        self,
        message: str = "Invalid order parameters",
        symbol: str = None,
        details: dict = None
    ):
        super().__init__(message, error_code="INVALID_ORDER", details=details)
        self.symbol = symbol


class ExchangeNotAvailableError(ExchangeError):
    """
    Exception raised when the broker is unavailable.

    Examples: maintenance, temporary outage. Can be retried after a delay.
    """

    def __init__(
        self,
        message: str = "Exchange is not available",
        retry_after: int = None,
        details: dict = None
    ):
        super().__init__(message, error_code="EXCHANGE_NOT_AVAILABLE", details=details)
        self.retry_after = retry_after


class SymbolNotFoundError(ExchangeError):
    """Exception raised when the monitored symbol is unknown to the broker."""

    def __init__(self, message: str = "Symbol not found", symbol: str = None, details: dict = None):
        super().__init__(message, error_code="SYMBOL_NOT_FOUND", details=details)
        self.symbol = symbol


class PositionNotFoundError(ExchangeError):
    """
    Exception raised when a requested position cannot be found.

    This occurs when closing a position that was already closed elsewhere.
    """

    def __init__(
        self,
        message: str = "Position not found",
        symbol: str = None,
        position_id: str = None,
        details: dict = None
    ):
        super().__init__(message, error_code="POSITION_NOT_FOUND", details=details)
        self.symbol = symbol
        self.position_id = position_id

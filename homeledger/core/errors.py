"""
Error types shared by the reporting services and the HTTP layer.

Every error carries the HTTP status the API should answer with, so route
handlers can let them propagate to the application's exception handler.
"""


class LedgerError(Exception):
    """Base exception for all homeledger errors."""

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidArgumentError(LedgerError):
    """Raised for malformed dates, months or other caller input."""

    status_code = 400


class NotFoundError(LedgerError):
    """Raised when a referenced record does not exist."""

    status_code = 404


class ConfigurationError(LedgerError):
    """Raised when a configured setting cannot be used (e.g. an unknown timezone)."""

    status_code = 500


class StorageError(LedgerError):
    """Raised when the underlying database fails during a query."""

    status_code = 500


class RateLimitExceededError(LedgerError):
    """Raised when a client exceeds the allowed attempts in a window."""

    status_code = 429

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after

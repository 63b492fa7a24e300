"""Application exception classes."""

from __future__ import annotations


class ConfigError(Exception):
    """Raised when configuration is invalid or incomplete."""


class OrderApiError(Exception):
    """Raised when order API calls fail or return malformed data."""


class OrderRequestError(OrderApiError):
    """Raised for order API request failures with category/status metadata."""

    def __init__(
        self,
        message: str,
        *,
        category: str = "unknown",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.status_code = status_code


class MutationRejectedError(OrderRequestError):
    """Raised when the server refuses a status update it understood."""

    def __init__(
        self,
        message: str,
        *,
        reason: str,
        category: str = "validation",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, category=category, status_code=status_code)
        self.reason = reason


class OrderSyncError(Exception):
    """Raised when a local engine operation cannot be applied."""


class OrderNotFoundError(OrderSyncError):
    """Raised when an action targets an order absent from the snapshot."""


class RoleNotPermittedError(OrderSyncError):
    """Raised when a read-only role attempts a mutation."""


class InvalidStatusError(OrderSyncError):
    """Raised when a requested status is not part of the canonical set."""


class InvalidPreparationTimeError(OrderSyncError, ValueError):
    """Raised when estimated preparation minutes are not a positive integer."""

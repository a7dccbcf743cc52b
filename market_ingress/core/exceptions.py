"""
Custom exception classes for the application.
Provides structured error handling across all modules.
"""

from typing import Any, Optional, Dict


class MarketIngressException(Exception):
    """Base exception class for the ingress service."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(MarketIngressException):
    """Raised when there's a configuration error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIGURATION_ERROR", details)


class DatabaseError(MarketIngressException):
    """Raised when there's a database error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "DATABASE_ERROR", details)


class IndexerError(MarketIngressException):
    """Raised when the external indexer cannot be queried."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, code: str = "INDEXER_ERROR"):
        super().__init__(message, code, details)


class OrderingViolationError(IndexerError):
    """Raised when the indexer returns a decreasing ordering token within one session."""

    def __init__(self, previous: str, current: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"Ordering token decreased from {previous} to {current}",
            {"previous": previous, "current": current, **(details or {})},
            code="ORDERING_VIOLATION",
        )


class QueueError(MarketIngressException):
    """Raised when the job queue cannot be used."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "QUEUE_ERROR", details)


class ValidationError(MarketIngressException):
    """Raised when data validation fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, code: str = "VALIDATION_ERROR"):
        super().__init__(message, code, details)


class FilterValidationError(ValidationError):
    """Raised when a subscription filter is malformed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="FILTER_VALIDATION_ERROR")


class NotFoundError(MarketIngressException):
    """Raised when a requested resource is not found."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "NOT_FOUND", details)


class NetworkNotFoundError(NotFoundError):
    """Raised when a network is not configured."""

    def __init__(self, network: str):
        super().__init__(
            f"Network not configured: {network}",
            {"network": network}
        )

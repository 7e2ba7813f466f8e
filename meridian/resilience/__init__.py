"""
Meridian Resilience Module
==========================

Error taxonomy and retries.
"""

from .error_handler import (
    DatabaseError,
    DriftScanError,
    ErrorHandler,
    HealthCheckError,
    InvalidInputError,
    MeridianError,
    NotFoundError,
    SpendImportError,
    handle_errors,
)
from .retry_manager import (
    ExponentialBackoff,
    RetryConfig,
    RetryManager,
    async_retry,
    retry_with_backoff,
)

__all__ = [
    # Error Handling
    "ErrorHandler",
    "MeridianError",
    "DatabaseError",
    "NotFoundError",
    "InvalidInputError",
    "DriftScanError",
    "SpendImportError",
    "HealthCheckError",
    "handle_errors",
    # Retry
    "RetryManager",
    "RetryConfig",
    "retry_with_backoff",
    "async_retry",
    "ExponentialBackoff",
]

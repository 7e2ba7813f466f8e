"""
Meridian Observability Module
=============================

Logging and request/operation context.
"""

from .logging_config import (
    ContextFormatter,
    OperationContext,
    OperationLogger,
    StructuredFormatter,
    current_ids,
    generate_correlation_id,
    generate_operation_id,
    get_correlation_id,
    get_environment_id,
    get_logger,
    get_operation_id,
    log_exception,
    set_correlation_id,
    set_environment_id,
    set_operation_id,
    setup_logging,
    setup_logging_from_settings,
)

__all__ = [
    "setup_logging",
    "setup_logging_from_settings",
    "get_logger",
    "OperationContext",
    "OperationLogger",
    "get_correlation_id",
    "set_correlation_id",
    "get_operation_id",
    "set_operation_id",
    "get_environment_id",
    "set_environment_id",
    "generate_correlation_id",
    "generate_operation_id",
    "StructuredFormatter",
    "ContextFormatter",
    "current_ids",
    "log_exception",
]

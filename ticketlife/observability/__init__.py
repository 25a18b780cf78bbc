"""
Observability Module.

Structured logging with JSON output, correlation IDs and per-operation context.
"""

from ticketlife.observability.logging import (
    LogContext,
    configure_from_settings,
    configure_logging,
    correlation_id_var,
    current_log_context,
    get_logger,
    new_correlation_id,
    operation_context,
)

__all__ = [
    "configure_logging",
    "configure_from_settings",
    "get_logger",
    "LogContext",
    "operation_context",
    "correlation_id_var",
    "new_correlation_id",
    "current_log_context",
]

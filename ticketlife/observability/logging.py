"""
Structured Logging Configuration.

Every lifecycle operation logs under an operation context: a correlation id
(inherited from the caller when one is bound, minted otherwise) plus the
actor, operation name and resource type. The processors below copy that
context into each event before it is rendered as JSON or console output.
"""

import logging
import sys
import uuid
from contextvars import ContextVar, Token
from typing import Any, Literal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

_operation_fields: ContextVar[dict[str, Any]] = ContextVar("operation_fields", default={})

_service_name = "ticket-lifecycle"

SENSITIVE_KEYS = frozenset({"password", "secret", "token", "credential", "authorization", "api_key"})
REDACTED = "***REDACTED***"


def new_correlation_id() -> str:
    return uuid.uuid4().hex


class LogContext:
    """
    Bind fields (and optionally a correlation id) for the duration of a block.

    Usage:
        with LogContext(correlation_id="req-7", actor="user-1", operation="delete"):
            logger.info("Moving ticket to trash")
    """

    def __init__(self, correlation_id: str | None = None, **fields: Any):
        self._correlation_id = correlation_id
        self._fields = fields
        self._fields_token: Token | None = None
        self._correlation_token: Token | None = None

    @property
    def correlation_id(self) -> str | None:
        return self._correlation_id or correlation_id_var.get()

    def __enter__(self) -> "LogContext":
        self._fields_token = _operation_fields.set({**_operation_fields.get(), **self._fields})
        if self._correlation_id is not None:
            self._correlation_token = correlation_id_var.set(self._correlation_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if self._correlation_token is not None:
            correlation_id_var.reset(self._correlation_token)
            self._correlation_token = None
        if self._fields_token is not None:
            _operation_fields.reset(self._fields_token)
            self._fields_token = None
        return False


def operation_context(actor_id: str, operation: str, resource_type: str) -> LogContext:
    """Context for one lifecycle operation; keeps a caller's correlation id if bound."""
    return LogContext(
        correlation_id=correlation_id_var.get() or new_correlation_id(),
        actor=actor_id,
        operation=operation,
        resource_type=resource_type,
    )


def current_log_context() -> dict[str, Any]:
    """Fields bound by the innermost active ``LogContext``."""
    return dict(_operation_fields.get())


# =============================================================================
# Processors
# =============================================================================


def add_correlation_id(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    correlation_id = correlation_id_var.get()
    if correlation_id:
        event_dict.setdefault("correlation_id", correlation_id)
    return event_dict


def add_log_context(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    # Explicit event keys win over bound context
    for key, value in _operation_fields.get().items():
        event_dict.setdefault(key, value)
    return event_dict


def add_service_info(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict["service"] = _service_name
    return event_dict


def _redact(key: str, value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _redact(k, v) for k, v in value.items()}
    if isinstance(value, str) and any(s in key.lower() for s in SENSITIVE_KEYS):
        return REDACTED
    return value


def censor_sensitive_data(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Redact string values under credential-like keys, nested dicts included."""
    return {key: _redact(key, value) for key, value in event_dict.items()}


# =============================================================================
# Configuration
# =============================================================================


def configure_logging(
    level: str = "INFO",
    format: Literal["json", "console"] = "json",
    service_name: str = "ticket-lifecycle",
) -> None:
    """
    Configure structlog on top of the standard library logging module.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        format: "json" for production, "console" for development
        service_name: Value of the ``service`` key on every event
    """
    global _service_name
    _service_name = service_name

    renderer: Processor = (
        structlog.processors.JSONRenderer()
        if format == "json"
        else structlog.dev.ConsoleRenderer(colors=True)
    )

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            add_service_info,
            add_correlation_id,
            add_log_context,
            censor_sensitive_data,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )
    logging.getLogger("neo4j").setLevel(logging.WARNING)


def configure_from_settings(settings: Any = None) -> None:
    """Configure logging from application settings."""
    from ticketlife.config.settings import get_settings

    settings = settings or get_settings()
    configure_logging(
        level=settings.log_level,
        format=settings.observability.log_format,
        service_name=settings.app_name,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)

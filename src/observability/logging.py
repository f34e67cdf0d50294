"""
Structured Logging Configuration.

structlog setup shared by the API and the integrity engine. Every event
carries the service name, the request correlation id (when one is
bound) and any fields bound with ``LogContext``. Values under
credential-like keys and ``SecretStr`` values never reach the output.
"""

import logging
import sys
from contextvars import ContextVar, Token
from typing import Any, Literal

import structlog
from pydantic import SecretStr
from structlog.types import EventDict, WrappedLogger

SERVICE_NAME = "entities-manager"

REDACTED = "***REDACTED***"

SENSITIVE_KEY_PARTS = ("password", "secret", "token", "authorization", "credential")

QUIET_LOGGERS = ("neo4j", "httpx", "asyncio")

correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})


class LogContext:
    """
    Bind fields to every log event emitted inside the block.

    Nested contexts merge; the inner one wins on key collisions and the
    outer fields come back on exit.

    Usage:
        with LogContext(operation="delete", entity_type="Protocol", entity_id="P1"):
            logger.info("Validating referential integrity")
    """

    def __init__(self, **fields: Any) -> None:
        self._fields = fields
        self._token: Token[dict[str, Any]] | None = None

    def __enter__(self) -> "LogContext":
        self._token = _log_context.set({**_log_context.get(), **self._fields})
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> bool:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None
        return False


def current_log_context() -> dict[str, Any]:
    """Fields currently bound with ``LogContext``."""
    return dict(_log_context.get())


def add_request_context(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Merge the service name, correlation id and bound fields into the event."""
    event_dict.setdefault("service", SERVICE_NAME)

    correlation_id = correlation_id_var.get()
    if correlation_id:
        event_dict.setdefault("correlation_id", correlation_id)

    for key, value in _log_context.get().items():
        event_dict.setdefault(key, value)
    return event_dict


def _redact(key: str, value: Any) -> Any:
    if isinstance(value, SecretStr):
        return REDACTED
    if isinstance(value, dict):
        return {k: _redact(str(k), v) for k, v in value.items()}
    if isinstance(value, str) and any(part in key.lower() for part in SENSITIVE_KEY_PARTS):
        return REDACTED
    return value


def redact_sensitive_values(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Replace credentials with a placeholder."""
    for key in list(event_dict):
        event_dict[key] = _redact(key, event_dict[key])
    return event_dict


def configure_logging(
    level: str = "INFO",
    format: Literal["json", "console"] = "json",
) -> None:
    """
    Configure structlog for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        format: "json" for machine-readable output, "console" for development
    """
    renderer: structlog.types.Processor
    if format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            add_request_context,
            redact_sensitive_values,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
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

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger, usually with ``__name__``."""
    return structlog.get_logger(name)

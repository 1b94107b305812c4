"""Logging configuration for devspaces.

Provides consistent JSON structured logging across all modules.
Supports Request ID context for request tracing.
"""

import logging
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any, Literal
from uuid import uuid4

from pythonjsonlogger.json import JsonFormatter as BaseJsonFormatter

# Context variable for request ID (set by middleware)
request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

SERVICE_NAME = "devspaces"


class DevSpacesJsonFormatter(BaseJsonFormatter):
    """Custom JSON formatter with consistent field names.

    Adds:
    - timestamp (ISO 8601, UTC)
    - level
    - module (logger name)
    - service
    - request_id (if available in context)
    - exception (if exc_info is attached)
    """

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.fromtimestamp(
            record.created, tz=UTC
        ).isoformat()
        log_record["level"] = record.levelname
        log_record["module"] = record.name
        log_record["service"] = SERVICE_NAME

        if request_id := request_id_ctx.get():
            log_record["request_id"] = request_id

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        log_record.pop("levelname", None)
        log_record.pop("name", None)
        log_record.pop("color_message", None)


def setup_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO",
    json_format: bool = True,
) -> None:
    """Configure logging for the application."""
    root_logger = logging.getLogger()

    # Clear existing handlers to avoid duplicate logs
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level))

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level))

    formatter: logging.Formatter
    if json_format:
        formatter = DevSpacesJsonFormatter(
            fmt="%(timestamp)s %(level)s %(module)s %(message)s",
        )
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("docker").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def get_request_id() -> str | None:
    """Get current request ID from context."""
    return request_id_ctx.get()


def set_request_id(request_id: str | None = None) -> str:
    """Set request ID in context, generating one if not provided.

    Returns:
        The request ID that was set.
    """
    rid = request_id or str(uuid4())
    request_id_ctx.set(rid)
    return rid


def clear_request_id() -> None:
    request_id_ctx.set(None)


class ContextLogger(logging.LoggerAdapter):
    """LoggerAdapter that merges its bound fields with per-call ``extra``."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        kwargs["extra"] = {**(self.extra or {}), **kwargs.get("extra", {})}
        return msg, kwargs

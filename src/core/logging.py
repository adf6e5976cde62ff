"""Structured logging with Loguru.

Request-scoped fields (correlation ID, request ID, caller identity) are
attached with ``logger.contextualize()`` by the middleware and show up on
every line logged while the request is handled, including lines emitted by
the authorization layer and the store clients.

Formatter types:
- **console**: Human-readable with inline context (development)
- **json**: Generic structured format (self-hosted)
- **gcp**: Google Cloud Logging format
- **aws**: CloudWatch Logs Insights optimized format
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable
from typing import Any, Final, cast

from loguru import logger

from src.core.config import Settings, get_settings
from src.core.constants import REDACTED


class _LoggingState:
    """Tracks whether logging has been configured."""

    def __init__(self) -> None:
        self.configured = False


_state = _LoggingState()

DEFAULT_LOG_FORMAT: Final[str] = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "{message}"
)
CORRELATION_ID_DISPLAY_LENGTH: Final[int] = 8
MAX_FIELD_VALUE_LENGTH: Final[int] = 100

PRIORITY_FIELDS: Final[tuple[str, ...]] = (
    "correlation_id",
    "request_id",
    "identity",
    "method",
    "path",
    "status_code",
    "duration_ms",
)


def _escape(value: object) -> str:
    return str(value).replace("{", "{{").replace("}", "}}")


def _format_priority_field(field: str, value: object) -> str:
    """Format a priority field for console display."""
    if field == "correlation_id" and len(str(value)) > CORRELATION_ID_DISPLAY_LENGTH:
        value = str(value)[:CORRELATION_ID_DISPLAY_LENGTH]
    elif field == "duration_ms":
        value = f"{value}ms"
    elif field == "status_code":
        colour = {"2": "green", "3": "yellow"}.get(str(value)[:1], "red")
        return f"<{colour}>{_escape(value)}</{colour}>"
    return _escape(value)


def _format_extra_field(key: str, value: object) -> str:
    """Format a non-priority context field, redacting sensitive keys."""
    str_value = str(value)
    if key in get_settings().log_config.sensitive_fields:
        str_value = REDACTED
    elif len(str_value) > MAX_FIELD_VALUE_LENGTH:
        str_value = str_value[: MAX_FIELD_VALUE_LENGTH - 3] + "..."
    return f"{_escape(key)}={_escape(str_value)}"


def format_console_with_context(record: dict[str, Any]) -> str:
    """Format log record for console with all context fields visible.

    Args:
        record: Loguru record to format.

    Returns:
        str: Loguru format string for the record.
    """
    parts = [
        f"<green>{record['time'].strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]}</green>",
        f"<level>{record['level'].name: <8}</level>",
        f"<cyan>{record['name']}:{record['function']}:{record['line']}</cyan>",
    ]

    extra = record.get("extra", {})
    context_parts = [
        f"<yellow>{_format_priority_field(field, extra[field])}</yellow>"
        for field in PRIORITY_FIELDS
        if extra.get(field) is not None
    ]
    context_parts.extend(
        f"<dim>{_format_extra_field(key, value)}</dim>"
        for key, value in extra.items()
        if key not in PRIORITY_FIELDS and not key.startswith("_") and value is not None
    )
    if context_parts:
        parts.append(" ".join(f"[{part}]" for part in context_parts))

    parts.append(_escape(record.get("message", "")))
    if record.get("exception"):
        parts.append("\n{exception}")

    return " | ".join(parts) + "\n"


class InterceptHandler(logging.Handler):
    """Redirect standard library logging (uvicorn, httpx) to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = sys._getframe(6), 6
        while frame and frame.f_code.co_filename == logging.__file__:
            if frame.f_back is None:
                break
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def _base_entry(record: dict[str, Any]) -> dict[str, Any]:
    return {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "logger": record["name"],
        "function": record["function"],
        "line": record["line"],
    }


def _public_extra(record: dict[str, Any]) -> dict[str, Any]:
    return {
        k: v for k, v in record.get("extra", {}).items() if not k.startswith("_")
    }


def serialize_for_json(record: dict[str, Any]) -> str:
    """Format log record as generic JSON.

    Args:
        record: Loguru record to format.

    Returns:
        str: JSON-formatted log entry with newline.
    """
    log_entry = _base_entry(record)
    log_entry.update(_public_extra(record))

    if exc := record.get("exception"):
        log_entry["exception"] = {
            "type": exc.type.__name__ if exc.type else None,
            "value": str(exc.value) if exc.value else None,
        }

    return json.dumps(log_entry, default=str) + "\n"


def serialize_for_gcp(record: dict[str, Any]) -> str:
    """Format log record for GCP Cloud Logging structured ingestion."""
    severity_mapping = {
        "TRACE": "DEBUG",
        "SUCCESS": "INFO",
    }
    level = record["level"].name
    settings = get_settings()

    log_entry: dict[str, Any] = {
        "severity": severity_mapping.get(level, level),
        "message": record["message"],
        "timestamp": record["time"].isoformat(),
        "serviceContext": {
            "service": settings.app_name,
            "version": settings.app_version,
        },
    }

    extra = _public_extra(record)
    if correlation_id := extra.pop("correlation_id", None):
        log_entry["logging.googleapis.com/trace"] = correlation_id
    labels = {"function": record["function"], "line": str(record["line"])}
    if request_id := extra.pop("request_id", None):
        labels["request_id"] = request_id
    log_entry["logging.googleapis.com/labels"] = labels
    if extra:
        log_entry["jsonPayload"] = extra

    if record.get("exception") or level in ("ERROR", "CRITICAL"):
        log_entry["logging.googleapis.com/sourceLocation"] = {
            "file": record["file"].path,
            "line": str(record["line"]),
            "function": record["function"],
        }

    return json.dumps(log_entry, default=str) + "\n"


def serialize_for_aws(record: dict[str, Any]) -> str:
    """Format log record for AWS CloudWatch Logs Insights."""
    log_entry = _base_entry(record)
    extra = _public_extra(record)
    if correlation_id := extra.pop("correlation_id", None):
        log_entry["traceId"] = correlation_id
    if request_id := extra.pop("request_id", None):
        log_entry["requestId"] = request_id
    for key, value in extra.items():
        log_entry.setdefault(key, value)

    if exc := record.get("exception"):
        log_entry["error"] = {
            "type": exc.type.__name__ if exc.type else None,
            "message": str(exc.value) if exc.value else None,
        }

    return json.dumps(log_entry, default=str) + "\n"


LOG_FORMATTERS: dict[str, Callable[[dict[str, Any]], str]] = {
    "json": serialize_for_json,
    "gcp": serialize_for_gcp,
    "aws": serialize_for_aws,
}


def setup_logging(settings: Settings) -> None:
    """Configure Loguru sinks and route standard logging through them.

    Args:
        settings: Application settings containing log configuration.

    Note:
        Only the first call has an effect.
    """
    if _state.configured:
        return

    logger.remove()

    formatter_type = settings.log_config.log_formatter_type or "console"
    formatter = LOG_FORMATTERS.get(formatter_type)

    if formatter is None:
        logger.add(
            sys.stdout,
            format=cast("Any", format_console_with_context),
            level=settings.log_config.log_level,
            enqueue=True,
            colorize=True,
            diagnose=settings.debug,
            backtrace=settings.debug,
        )
    else:

        def structured_sink(message: object) -> None:
            if hasattr(message, "record"):
                sys.stdout.write(formatter(message.record))
                sys.stdout.flush()

        logger.add(
            structured_sink,
            level=settings.log_config.log_level,
            enqueue=True,
            diagnose=False,
            backtrace=False,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(logger_name)
        uvicorn_logger.handlers = [InterceptHandler()]
        uvicorn_logger.propagate = False
    # httpx logs every store request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logger.info(
        "Logging configured with {} formatter",
        formatter_type,
        log_level=settings.log_config.log_level,
    )
    _state.configured = True

"""Loguru configuration for FitConnect.

Every log line can carry the identity of the HTTP request being served:
the request id, the calling account and the operation (route template).
The API middleware fills these in; services just call ``logger``.

Example:
    >>> from fitconnect.logging import logger, set_request_context
    >>> set_request_context(request_id="abc123", account_id=7)
    >>> logger.bind(post_id=42).info("Post liked")
"""

import json
import sys
import traceback
from contextvars import ContextVar
from pathlib import Path
from typing import Any

from loguru import logger as loguru_logger

from fitconnect.config import settings

# Request-scoped values emitted with every JSON line.
_CONTEXT: dict[str, ContextVar[Any]] = {
    "request_id": ContextVar("request_id", default=None),
    "account_id": ContextVar("account_id", default=None),
    "operation": ContextVar("operation", default=None),
}

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> "
    "<level>{level: <7}</level> "
    "<magenta>{extra[request_id]}</magenta> "
    "<cyan>{module}.{function}</cyan> - "
    "<level>{message}</level>"
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} {level} [{extra[request_id]}] {module}: {message}"


def serialize(record: dict[str, Any]) -> str:
    """Render a Loguru record as one JSON line.

    Context values are included only when set. Fields bound with
    ``logger.bind()`` are merged in last.

    Args:
        record: Loguru log record dictionary

    Returns:
        JSON document without a trailing newline
    """
    payload: dict[str, Any] = {
        "time": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "module": record["module"],
        "function": record["function"],
        "line": record["line"],
    }
    payload.update(
        {name: var.get() for name, var in _CONTEXT.items() if var.get() is not None}
    )
    payload.update(
        {key: value for key, value in record["extra"].items() if key not in _CONTEXT}
    )

    error = record["exception"]
    if error is not None:
        payload["exception"] = {
            "type": error.type.__name__ if error.type else None,
            "value": str(error.value),
            "traceback": "".join(
                traceback.format_exception(error.type, error.value, error.traceback)
            ),
        }

    return json.dumps(payload, default=str)


def patching(record: dict[str, Any]) -> None:
    record["extra"].setdefault("request_id", _CONTEXT["request_id"].get() or "-")
    record["extra"]["serialized"] = serialize(record)


def json_format(record: dict[str, Any]) -> str:
    return "{extra[serialized]}\n"


def setup_logging(
    level: str = "INFO",
    json_logs: bool = False,
    log_file: Path | None = None,
    colorize: bool = True,
) -> Any:
    """Replace Loguru's default sink with FitConnect's handlers.

    Args:
        level: Minimum log level
        json_logs: Emit JSON lines instead of the colored console format
        log_file: Also write to this file, rotated and zipped
        colorize: Color console output (ignored for JSON)

    Returns:
        The patched logger
    """
    loguru_logger.remove()
    configured = loguru_logger.patch(patching)

    console_format = json_format if json_logs else CONSOLE_FORMAT
    configured.add(
        sys.stdout,
        level=level,
        format=console_format,
        colorize=colorize and not json_logs,
    )

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        configured.add(
            log_file,
            level=level,
            format=json_format if json_logs else FILE_FORMAT,
            rotation="20 MB",
            retention="7 days",
            compression="zip",
            enqueue=True,
        )

    return configured


logger = setup_logging(
    level=settings.log_level,
    json_logs=settings.log_json,
    log_file=settings.log_file,
    colorize=not settings.log_json,
)


def set_request_context(
    request_id: str | None = None,
    account_id: int | None = None,
    operation: str | None = None,
) -> None:
    """Store request identity for the current context.

    Arguments left as ``None`` keep their previous value.
    """
    values = {"request_id": request_id, "account_id": account_id, "operation": operation}
    for name, value in values.items():
        if value is not None:
            _CONTEXT[name].set(value)


def clear_request_context() -> None:
    for var in _CONTEXT.values():
        var.set(None)


def get_request_context() -> dict[str, Any]:
    """Current context values, ``None`` where unset."""
    return {name: var.get() for name, var in _CONTEXT.items()}


__all__ = [
    "logger",
    "setup_logging",
    "serialize",
    "set_request_context",
    "clear_request_context",
    "get_request_context",
]

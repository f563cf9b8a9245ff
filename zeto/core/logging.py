"""Structured logging for the ZÉTO Workspace API.

Every line is rendered as ``key=value`` pairs. Context passed through
``log_with_context`` (request id, project id, counters) is appended to the
line so relay requests can be followed across modules.
"""

import logging
import sys
from typing import Any

# Fields always emitted first, in this order
BASE_FIELDS = ("timestamp", "level", "logger", "function", "message")


def _render(value: Any) -> str:
    text = str(value)
    if not text or any(c.isspace() for c in text) or "=" in text:
        return '"' + text.replace('"', '\\"') + '"'
    return text


class StructuredFormatter(logging.Formatter):
    """key=value structured log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        fields: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "message": record.getMessage(),
        }

        request_id = getattr(record, "request_id", None)
        if request_id:
            fields["request_id"] = request_id

        for key, value in getattr(record, "extra_data", {}).items():
            if key not in BASE_FIELDS and value is not None:
                fields[key] = value

        line = " ".join(f"{k}={_render(v)}" for k, v in fields.items())
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _level_for_env() -> int:
    try:
        from zeto.core.config import get_settings

        return logging.DEBUG if get_settings().ZETO_ENV == "dev" else logging.INFO
    except Exception:
        # Settings may be unreadable while the config module itself loads
        return logging.INFO


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger writing structured lines to stdout.

    The handler is attached once per logger name; the level is DEBUG in
    the ``dev`` environment and INFO otherwise.

    Args:
        name: Logger name (typically __name__)
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
        logger.setLevel(_level_for_env())

    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **kwargs: Any) -> None:
    """
    Log with additional context fields.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **kwargs: Context fields; ``request_id`` gets its own slot
    """
    request_id = kwargs.pop("request_id", None)
    logger.log(level, msg, extra={"request_id": request_id, "extra_data": kwargs})

"""Logging setup for the billing services."""

__all__ = [
    "JSONFormatter",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
from datetime import date, datetime, timezone
from typing import Any

_LOGGER_PREFIX = "gym_billing"

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


class _JSONEncoder(json.JSONEncoder):

    def default(self, obj: Any) -> Any:
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        return super().default(obj)


class JSONFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Structured extra fields passed via logger.info(..., extra={...})
        for key, val in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = val

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            code = getattr(exc, "code", None)
            if code is not None:
                payload["exc_code"] = code
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, cls=_JSONEncoder, default=str)


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the gym_billing namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured_handler: logging.Handler | None = None


def configure_logging(level: str | int = "INFO", json_output: bool = False) -> logging.Logger:
    """Attach a single stream handler to the package logger.

    Safe to call more than once; later calls only adjust the level.
    """
    global _configured_handler

    root = logging.getLogger(_LOGGER_PREFIX)
    root.setLevel(level)

    if _configured_handler is None:
        handler = logging.StreamHandler()
        if json_output:
            handler.setFormatter(JSONFormatter())
        else:
            handler.setFormatter(logging.Formatter(
                "%(asctime)s %(levelname)s [%(name)s] %(message)s"
            ))
        root.addHandler(handler)
        _configured_handler = handler

    return root


def reset_logging() -> None:
    """Remove the handler installed by configure_logging()."""
    global _configured_handler

    root = logging.getLogger(_LOGGER_PREFIX)
    if _configured_handler is not None:
        root.removeHandler(_configured_handler)
        _configured_handler = None
    root.setLevel(logging.NOTSET)

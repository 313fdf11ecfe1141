"""Structured logging for naoslink.

Every record becomes one JSON object. Attributes passed through ``extra=``
land under ``"extra"``; binary values are rendered as uppercase hex so frame
dumps stay readable.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from logging import Handler
from logging.config import dictConfig
from logging.handlers import SysLogHandler
from pathlib import Path
from typing import Any

import msgspec

from .settings import LinkConfig

SYSLOG_SOCKETS = (Path("/dev/log"), Path("/var/run/log"))
SYSLOG_IDENT = "naoslink "

# Anything a bare record already carries is not an extra.
_RESERVED_LOG_KEYS = frozenset(logging.LogRecord("", logging.NOTSET, "", 0, "", (), None).__dict__) | {
    "asctime",
    "message",
}

# Libraries that narrate every state change or packet at INFO.
_CHATTY_LOGGERS = ("transitions", "aiomqtt")


def _hex(data: bytes | bytearray | memoryview) -> str:
    return "[" + bytes(data).hex(" ").upper() + "]"


def _serialise_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return _hex(value)
    return str(value)


class StructuredLogFormatter(logging.Formatter):
    """Render records as JSON with the ``naoslink.`` prefix stripped from names."""

    PREFIX = "naoslink."

    def _logger_name(self, record: logging.LogRecord) -> str:
        return record.name.removeprefix(self.PREFIX)

    def _extras(self, record: logging.LogRecord) -> dict[str, Any]:
        return {
            key: _serialise_value(value)
            for key, value in vars(record).items()
            if key not in _RESERVED_LOG_KEYS and not key.startswith("_")
        }

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "ts": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": self._logger_name(record),
            "message": record.getMessage(),
        }

        extras = self._extras(record)
        if extras:
            payload["extra"] = extras
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = self.formatStack(record.stack_info)

        return msgspec.json.encode(payload).decode("utf-8")


def _syslog_socket() -> Path | None:
    return next((candidate for candidate in SYSLOG_SOCKETS if candidate.exists()), None)


def _build_handler(use_syslog: bool = False) -> Handler:
    """Return a syslog handler when requested and available, else stderr."""
    socket_path = _syslog_socket() if use_syslog else None
    if socket_path is None:
        return logging.StreamHandler()

    handler = SysLogHandler(address=str(socket_path), facility=SysLogHandler.LOG_USER)
    handler.ident = SYSLOG_IDENT
    return handler


def configure_logging(config: LinkConfig) -> None:
    """Install the structured handler on the root logger."""
    level_name = "DEBUG" if config.debug_logging else "INFO"

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {"()": StructuredLogFormatter},
            },
            "handlers": {
                "naoslink": {
                    "()": _build_handler,
                    "use_syslog": config.log_syslog,
                    "level": level_name,
                    "formatter": "json",
                },
            },
            "loggers": {name: {"level": "WARNING"} for name in _CHATTY_LOGGERS},
            "root": {"level": level_name, "handlers": ["naoslink"]},
        }
    )

    logging.getLogger("naoslink").debug("Logging configured at level %s", level_name)


__all__ = [
    "StructuredLogFormatter",
    "configure_logging",
]

"""Structured JSON logging for the crash bridge.

Every record is rendered as a single JSON line. Records land in syslog when
a local socket is available, otherwise on stderr. Setting
``CRASHBRIDGE_LOG_STREAM`` forces stderr, which is what the tests and
interactive runs use.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from logging import Handler
from logging.config import dictConfig
from logging.handlers import SysLogHandler
from pathlib import Path
from typing import Any

import msgspec

from .const import ENV_LOG_STREAM
from .model import RuntimeConfig

SYSLOG_SOCKET = Path("/dev/log")
SYSLOG_SOCKET_FALLBACK = Path("/var/run/log")
SYSLOG_IDENT = "crashbridge "

REDACTED = "<redacted>"
_SECRET_KEYS = frozenset({"api_key", "apiKey", "mqtt_pass", "password"})

# Chatty third-party loggers are held at WARNING unless debug logging is on.
_QUIET_LOGGERS = ("aiomqtt", "transitions", "asyncio")

_RECORD_ATTRIBUTES = frozenset(
    logging.LogRecord("", logging.NOTSET, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


def _serialise_value(value: Any) -> Any:
    """Serialise values for JSON logs with strict type handling."""
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, bytes):
        # Binary payloads are logged as uppercase hex, e.g. [DE AD BE EF].
        return f"[{' '.join(f'{b:02X}' for b in value)}]"
    return str(value)


def _record_extras(record: logging.LogRecord) -> dict[str, Any]:
    extras: dict[str, Any] = {}
    for key, value in record.__dict__.items():
        if key in _RECORD_ATTRIBUTES or key.startswith("_"):
            continue
        extras[key] = REDACTED if key in _SECRET_KEYS else _serialise_value(value)
    return extras


class StructuredLogFormatter(logging.Formatter):
    """Emit one JSON object per record, dropping the package prefix."""

    PREFIX = "crashbridge."

    def format(self, record: logging.LogRecord) -> str:
        logger_name = record.name.removeprefix(self.PREFIX)
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)

        payload: dict[str, Any] = {
            "ts": created.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": logger_name,
            "message": record.getMessage(),
        }

        extras = _record_extras(record)
        if extras:
            payload["extra"] = extras
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return msgspec.json.encode(payload).decode("utf-8")


def _syslog_socket() -> Path | None:
    candidates = [SYSLOG_SOCKET]
    if SYSLOG_SOCKET == Path("/dev/log"):
        candidates.append(SYSLOG_SOCKET_FALLBACK)
    return next((path for path in candidates if path.exists()), None)


def _build_handler() -> Handler:
    if os.environ.get(ENV_LOG_STREAM):
        return logging.StreamHandler()

    socket_path = _syslog_socket()
    if socket_path is None:
        return logging.StreamHandler()

    handler = SysLogHandler(address=str(socket_path), facility=SysLogHandler.LOG_DAEMON)
    handler.ident = SYSLOG_IDENT
    return handler


def configure_logging(config: RuntimeConfig | None = None) -> None:
    """Configure root logging based on runtime settings.

    Called without a configuration (e.g. when loading it failed) the
    defaults apply so the startup failure itself is still logged.
    """

    debug_logging = getattr(config, "debug_logging", False)
    level_name = "DEBUG" if debug_logging else "INFO"
    quiet_level = level_name if debug_logging else "WARNING"

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structured": {
                    "()": "crashbridge.config.logging.StructuredLogFormatter",
                }
            },
            "handlers": {
                "crashbridge": {
                    "()": _build_handler,
                    "level": level_name,
                    "formatter": "structured",
                }
            },
            "loggers": {name: {"level": quiet_level} for name in _QUIET_LOGGERS},
            "root": {
                "level": level_name,
                "handlers": ["crashbridge"],
            },
        }
    )

    logging.getLogger("crashbridge").debug("Logging configured at level %s", level_name)

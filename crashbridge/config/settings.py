"""Settings loader for the crash bridge.

Configuration is read from ``CRASHBRIDGE_*`` environment variables, optionally
seeded from a ``.env`` file, and validated by :class:`RuntimeConfigSchema`.
The result is an immutable :class:`RuntimeConfig` built once at startup.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from marshmallow import ValidationError

from .common import env_name, get_env_config
from .model import ConfigurationError, RuntimeConfig
from .schema import RuntimeConfigSchema

logger = logging.getLogger(__name__)


def _describe_errors(messages: Mapping[str, Any]) -> str:
    parts: list[str] = []
    for key, value in sorted(messages.items()):
        details = value if isinstance(value, list) else [value]
        for detail in details:
            parts.append(f"{env_name(key)}: {detail}")
    return "; ".join(parts)


def build_runtime_config(raw: Mapping[str, Any]) -> RuntimeConfig:
    """Validate a raw mapping and return the immutable configuration."""

    try:
        return RuntimeConfigSchema().load(dict(raw))
    except ValidationError as exc:
        messages = exc.messages if isinstance(exc.messages, dict) else {"_schema": exc.messages}
        if "api_key" in messages:
            raise ConfigurationError(
                f"Missing {env_name('api_key')}. Copy .env.example to .env and add "
                "your crash backend project key."
            ) from exc
        raise ConfigurationError(_describe_errors(messages)) from exc


def load_runtime_config(
    environ: Mapping[str, str] | None = None,
    *,
    dotenv_path: str | None = None,
) -> RuntimeConfig:
    """Load configuration from the environment (and ``.env``)."""

    raw = get_env_config(environ, dotenv_path=dotenv_path)
    config = build_runtime_config(raw)
    if config.archive_url and config.artifact_base_url:
        logger.info("archive_url is set; artifact_base_url will be ignored.")
    if not config.mqtt_tls:
        logger.warning("MQTT TLS is disabled; crash reports will be sent in plaintext.")
    return config


__all__ = [
    "ConfigurationError",
    "RuntimeConfig",
    "build_runtime_config",
    "load_runtime_config",
]

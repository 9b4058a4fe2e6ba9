"""MQTT utility helpers for the crash transport."""

from __future__ import annotations

import logging
import ssl
from pathlib import Path

from ..config.const import MQTT_TLS_MIN_VERSION
from ..config.settings import RuntimeConfig

logger = logging.getLogger("crashbridge.util.mqtt")


def configure_tls_context(config: RuntimeConfig) -> ssl.SSLContext | None:
    """Create an ssl.SSLContext based on the provided RuntimeConfig."""
    if not config.mqtt_tls:
        return None

    try:
        if config.mqtt_cafile:
            if not Path(config.mqtt_cafile).exists():
                raise RuntimeError(f"MQTT TLS CA file missing: {config.mqtt_cafile}")
            context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH, cafile=config.mqtt_cafile)
        else:
            context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)

        context.minimum_version = MQTT_TLS_MIN_VERSION

        if config.mqtt_tls_insecure:
            logger.warning("MQTT TLS hostname verification disabled.")
            context.check_hostname = False

        return context
    except (OSError, ssl.SSLError, ValueError) as exc:
        raise RuntimeError(f"TLS setup failed: {exc}") from exc


__all__ = ["configure_tls_context"]

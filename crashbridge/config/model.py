"""Data model for crash bridge configuration."""

from __future__ import annotations

from dataclasses import dataclass, field

from .const import (
    DEFAULT_APP_TYPE,
    DEFAULT_CONTEXT_NAME,
    DEFAULT_DEBUG_LOGGING,
    DEFAULT_FIRMWARE_VERSION,
    DEFAULT_HARDWARE_MODEL,
    DEFAULT_LOCAL_ATTACHMENTS,
    DEFAULT_MQTT_HOST,
    DEFAULT_MQTT_PORT,
    DEFAULT_MQTT_TLS,
    DEFAULT_MQTT_TLS_INSECURE,
    DEFAULT_MQTT_TOPIC,
    DEFAULT_PUBLISH_ATTEMPTS,
    DEFAULT_PUBLISH_TIMEOUT,
    DEFAULT_RELEASE_STAGE,
    DEFAULT_RTOS_LABEL,
    DEFAULT_SENSOR_LOCATION,
    DEFAULT_SENSOR_NAME,
)


class ConfigurationError(ValueError):
    """Raised when the configuration cannot be used to start the bridge."""


@dataclass(frozen=True, slots=True, kw_only=True)
class RuntimeConfig:
    """Strongly typed, immutable configuration for the crash bridge.

    Constructed once at startup and handed to the delivery client, the
    attachment resolver and the enrichment engine by reference.
    """

    api_key: str = field(repr=False)
    firmware_version: str = DEFAULT_FIRMWARE_VERSION
    release_stage: str = DEFAULT_RELEASE_STAGE
    app_type: str = DEFAULT_APP_TYPE
    context_name: str = DEFAULT_CONTEXT_NAME

    archive_url: str | None = None
    local_attachments: bool = DEFAULT_LOCAL_ATTACHMENTS
    artifact_base_url: str | None = None
    artifact_dir: str | None = None

    sensor_id: str | None = None
    sensor_name: str = DEFAULT_SENSOR_NAME
    sensor_location: str = DEFAULT_SENSOR_LOCATION
    hardware_model: str = DEFAULT_HARDWARE_MODEL
    rtos_label: str = DEFAULT_RTOS_LABEL

    mqtt_host: str = DEFAULT_MQTT_HOST
    mqtt_port: int = DEFAULT_MQTT_PORT
    mqtt_user: str | None = None
    mqtt_pass: str | None = field(repr=False, default=None)
    mqtt_tls: bool = DEFAULT_MQTT_TLS
    mqtt_cafile: str | None = None
    mqtt_tls_insecure: bool = DEFAULT_MQTT_TLS_INSECURE
    mqtt_topic: str = DEFAULT_MQTT_TOPIC
    publish_attempts: int = DEFAULT_PUBLISH_ATTEMPTS
    publish_timeout: float = DEFAULT_PUBLISH_TIMEOUT

    debug_logging: bool = DEFAULT_DEBUG_LOGGING

    def __post_init__(self) -> None:
        if not self.api_key or not self.api_key.strip():
            raise ConfigurationError("api_key must be configured")
        if not self.context_name:
            raise ConfigurationError("context_name must not be empty")
        if self.publish_attempts < 1:
            raise ConfigurationError("publish_attempts must be a positive integer")
        if self.publish_timeout <= 0.0:
            raise ConfigurationError("publish_timeout must be a positive number")
        if not 0 < self.mqtt_port <= 65535:
            raise ConfigurationError("mqtt_port must be between 1 and 65535")

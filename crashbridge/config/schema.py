"""Marshmallow schema for RuntimeConfig validation."""

from __future__ import annotations

from typing import Any, Dict

from marshmallow import EXCLUDE, Schema, ValidationError, fields, post_load, pre_load, validate, validates_schema

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
from .model import RuntimeConfig

_URL_SCHEMES = {"http", "https"}


class RuntimeConfigSchema(Schema):
    """Declarative validation schema for crash bridge configuration."""

    class Meta:
        unknown = EXCLUDE

    # Reporting backend
    api_key = fields.Str(
        required=True,
        validate=validate.Length(min=1),
        error_messages={"required": "api_key must be configured"},
    )
    firmware_version = fields.Str(load_default=DEFAULT_FIRMWARE_VERSION, validate=validate.Length(min=1))
    release_stage = fields.Str(load_default=DEFAULT_RELEASE_STAGE, validate=validate.Length(min=1))
    app_type = fields.Str(load_default=DEFAULT_APP_TYPE, validate=validate.Length(min=1))
    context_name = fields.Str(load_default=DEFAULT_CONTEXT_NAME, validate=validate.Length(min=1))

    # Attachments
    archive_url = fields.Url(load_default=None, allow_none=True, require_tld=False, schemes=_URL_SCHEMES)
    local_attachments = fields.Bool(load_default=DEFAULT_LOCAL_ATTACHMENTS)
    artifact_base_url = fields.Url(load_default=None, allow_none=True, require_tld=False, schemes=_URL_SCHEMES)
    artifact_dir = fields.Str(load_default=None, allow_none=True)

    # Device identity
    sensor_id = fields.Str(load_default=None, allow_none=True)
    sensor_name = fields.Str(load_default=DEFAULT_SENSOR_NAME)
    sensor_location = fields.Str(load_default=DEFAULT_SENSOR_LOCATION)
    hardware_model = fields.Str(load_default=DEFAULT_HARDWARE_MODEL)
    rtos_label = fields.Str(load_default=DEFAULT_RTOS_LABEL)

    # MQTT
    mqtt_host = fields.Str(load_default=DEFAULT_MQTT_HOST, validate=validate.Length(min=1))
    mqtt_port = fields.Int(load_default=DEFAULT_MQTT_PORT, validate=validate.Range(min=1, max=65535))
    mqtt_user = fields.Str(load_default=None, allow_none=True)
    mqtt_pass = fields.Str(load_default=None, allow_none=True)
    mqtt_tls = fields.Bool(load_default=DEFAULT_MQTT_TLS)
    mqtt_cafile = fields.Str(load_default=None, allow_none=True)
    mqtt_tls_insecure = fields.Bool(load_default=DEFAULT_MQTT_TLS_INSECURE)
    mqtt_topic = fields.Str(
        load_default=DEFAULT_MQTT_TOPIC,
        validate=[
            validate.Length(min=1),
            validate.Regexp(r"^[^+#]*$", error="mqtt_topic must not contain MQTT wildcards (+ or #)"),
        ],
    )
    publish_attempts = fields.Int(load_default=DEFAULT_PUBLISH_ATTEMPTS, validate=validate.Range(min=1, max=10))
    publish_timeout = fields.Float(load_default=DEFAULT_PUBLISH_TIMEOUT, validate=validate.Range(min=0.1))

    # System
    debug_logging = fields.Bool(load_default=DEFAULT_DEBUG_LOGGING, data_key="debug")

    @pre_load
    def normalize_values(self, data: Dict[str, Any], **kwargs: Any) -> Dict[str, Any]:
        cleaned: Dict[str, Any] = {}
        for key, value in data.items():
            if isinstance(value, str):
                value = value.strip()
                # Blank values behave as if the variable were unset.
                if not value:
                    continue
            cleaned[key] = value

        if "mqtt_topic" in cleaned:
            prefix = str(cleaned["mqtt_topic"])
            segments = [segment for segment in prefix.split("/") if segment]
            # An all-slash prefix normalises to "" and fails the length check.
            cleaned["mqtt_topic"] = "/".join(segments)
        return cleaned

    @validates_schema
    def validate_mqtt_credentials(self, data: Dict[str, Any], **kwargs: Any) -> None:
        if data.get("mqtt_pass") and not data.get("mqtt_user"):
            raise ValidationError("mqtt_pass requires mqtt_user", field_name="mqtt_pass")

    @validates_schema
    def validate_tls_files(self, data: Dict[str, Any], **kwargs: Any) -> None:
        if data.get("mqtt_cafile") and not data.get("mqtt_tls"):
            raise ValidationError("mqtt_cafile is only valid with mqtt_tls enabled", field_name="mqtt_cafile")

    @post_load
    def make_config(self, data: Dict[str, Any], **kwargs: Any) -> RuntimeConfig:
        return RuntimeConfig(**data)

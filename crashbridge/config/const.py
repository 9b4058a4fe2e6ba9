"""Default values and environment names for the crash bridge."""

from __future__ import annotations

import ssl
from typing import Final

ENV_PREFIX: Final[str] = "CRASHBRIDGE_"
ENV_LOG_STREAM: Final[str] = "CRASHBRIDGE_LOG_STREAM"

DEFAULT_FIRMWARE_VERSION: Final[str] = "1.0.0"
DEFAULT_RELEASE_STAGE: Final[str] = "development"
DEFAULT_APP_TYPE: Final[str] = "stm32wb55-garage-sensor"
DEFAULT_CONTEXT_NAME: Final[str] = "STM32WB55_Intrusion_Sensor"
DEFAULT_LOCAL_ATTACHMENTS: Final[bool] = True

DEFAULT_SENSOR_ID: Final[str] = "garage-door-node-01"
DEFAULT_SENSOR_NAME: Final[str] = "Garage Intrusion Sensor"
DEFAULT_SENSOR_LOCATION: Final[str] = "Garage Door"
DEFAULT_HARDWARE_MODEL: Final[str] = "STM32WB55"
DEFAULT_HARDWARE_MANUFACTURER: Final[str] = "STMicroelectronics"
DEFAULT_RTOS_LABEL: Final[str] = "FreeRTOS 10.4.6"

DEFAULT_MQTT_HOST: Final[str] = "localhost"
DEFAULT_MQTT_PORT: Final[int] = 1883
DEFAULT_MQTT_TOPIC: Final[str] = "crash"
DEFAULT_MQTT_TLS: Final[bool] = False
DEFAULT_MQTT_TLS_INSECURE: Final[bool] = False
DEFAULT_PUBLISH_ATTEMPTS: Final[int] = 3
DEFAULT_PUBLISH_TIMEOUT: Final[float] = 10.0
DEFAULT_PUBLISH_MIN_BACKOFF: Final[float] = 0.5
DEFAULT_PUBLISH_MAX_BACKOFF: Final[float] = 8.0
DEFAULT_DEBUG_LOGGING: Final[bool] = False

SEVERITY_ERROR: Final[str] = "error"
ATTACHMENTS_SECTION: Final[str] = "attachments"
UNKNOWN: Final[str] = "unknown"
NOT_AVAILABLE: Final[str] = "n/a"

NOTIFIER_NAME: Final[str] = "crashbridge"

MQTT_TLS_MIN_VERSION: Final[ssl.TLSVersion] = ssl.TLSVersion.TLSv1_2
MQTT_CONTENT_TYPE_JSON: Final[str] = "application/json"
MQTT_USER_PROP_CONTEXT: Final[str] = "crash-context"

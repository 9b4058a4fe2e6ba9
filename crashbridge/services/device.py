"""Device field normalisation for crash events.

The transport fills ``event.device`` from the host running the bridge. The
report must describe the embedded target instead, so host-only fields are
dropped and target descriptors are written over whatever the transport set.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, MutableMapping
from typing import Any, Final

from ..config.const import DEFAULT_HARDWARE_MANUFACTURER
from ..config.settings import RuntimeConfig
from ..protocol.structures import CrashEvent

logger = logging.getLogger("crashbridge.device")

# Every device key the transport or the normaliser may write.
DEVICE_FIELDS: Final[frozenset[str]] = frozenset(
    {
        "id",
        "hostname",
        "manufacturer",
        "model",
        "firmwareVersion",
        "rtos",
        "osName",
        "osVersion",
        "freeMemory",
        "totalMemory",
        "time",
        "runtimeVersions",
    }
)

# Meaningless for a microcontroller; removed when present.
HOST_ONLY_FIELDS: Final[frozenset[str]] = frozenset(
    {
        "hostname",
        "osName",
        "osVersion",
        "freeMemory",
        "totalMemory",
        "time",
        "runtimeVersions",
    }
)

_TARGET_SOURCES: Final[dict[str, Callable[[RuntimeConfig, str], str]]] = {
    "id": lambda config, sensor_id: sensor_id,
    "manufacturer": lambda config, sensor_id: DEFAULT_HARDWARE_MANUFACTURER,
    "model": lambda config, sensor_id: config.hardware_model,
    "firmwareVersion": lambda config, sensor_id: config.firmware_version,
    "rtos": lambda config, sensor_id: config.rtos_label,
}

TARGET_FIELDS: Final[frozenset[str]] = frozenset(_TARGET_SOURCES)


def _check_field_tables() -> None:
    unknown = (HOST_ONLY_FIELDS | TARGET_FIELDS) - DEVICE_FIELDS
    if unknown:
        raise RuntimeError(f"device field tables reference unknown keys: {sorted(unknown)}")
    overlap = HOST_ONLY_FIELDS & TARGET_FIELDS
    if overlap:
        raise RuntimeError(f"device fields both removed and overridden: {sorted(overlap)}")


# Typos in the tables above fail at import, not silently at runtime.
_check_field_tables()


class DeviceFieldNormalizer:
    """Rewrite transport-populated device fields to describe the target."""

    def __init__(self, config: RuntimeConfig) -> None:
        self._config = config

    def target_fields(self, sensor_id: str) -> dict[str, str]:
        return {key: source(self._config, sensor_id) for key, source in _TARGET_SOURCES.items()}

    def normalize(self, device: MutableMapping[str, Any], sensor_id: str) -> None:
        """Mutate *device* in place. Missing keys are skipped; idempotent."""
        for key in HOST_ONLY_FIELDS:
            device.pop(key, None)
        device.update(self.target_fields(sensor_id))

    def apply(self, event: CrashEvent, sensor_id: str) -> None:
        self.normalize(event.device, sensor_id)
        logger.debug("Normalised device fields for %s", sensor_id)


__all__ = [
    "DEVICE_FIELDS",
    "DeviceFieldNormalizer",
    "HOST_ONLY_FIELDS",
    "TARGET_FIELDS",
]

"""MQTT v5 property builders used by the crash transport."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from paho.mqtt.packettypes import PacketTypes
from paho.mqtt.properties import Properties

if TYPE_CHECKING:
    from crashbridge.mqtt.messages import QueuedPublish

__all__ = [
    "build_mqtt_connect_properties",
    "build_mqtt_properties",
]

# QueuedPublish attribute -> paho PUBLISH property name.
_PUBLISH_PROPERTIES: tuple[tuple[str, str], ...] = (
    ("content_type", "ContentType"),
    ("payload_format_indicator", "PayloadFormatIndicator"),
    ("message_expiry_interval", "MessageExpiryInterval"),
)


def build_mqtt_properties(message: QueuedPublish) -> Properties | None:
    """Translate the optional fields of *message* into PUBLISH properties.

    Returns ``None`` when the message carries none of them, so the client
    sends a bare publish.
    """
    values: dict[str, Any] = {
        prop: getattr(message, attr)
        for attr, prop in _PUBLISH_PROPERTIES
        if getattr(message, attr) is not None
    }
    if message.user_properties:
        values["UserProperty"] = list(message.user_properties)
    if not values:
        return None

    props = Properties(PacketTypes.PUBLISH)
    for name, value in values.items():
        setattr(props, name, value)
    return props


def build_mqtt_connect_properties() -> Properties:
    """CONNECT properties for the one-shot crash publish session."""

    props = Properties(PacketTypes.CONNECT)
    # Nothing is subscribed, so the broker may drop the session on disconnect.
    props.SessionExpiryInterval = 0
    props.RequestProblemInformation = 1
    return props

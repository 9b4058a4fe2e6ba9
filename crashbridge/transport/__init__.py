"""Fault transports (MQTT, in-memory) for the crash bridge."""

from .memory import RecordingTransport
from .mqtt import MqttFaultTransport

__all__ = [
    "MqttFaultTransport",
    "RecordingTransport",
]

"""MQTT message helpers used by the crash transport."""

from __future__ import annotations

import msgspec

UserProperty = tuple[str, str]


class QueuedPublish(msgspec.Struct, frozen=True):
    """MQTT publish packet carrying one encoded crash envelope."""

    topic_name: str
    payload: bytes
    qos: int = 1
    retain: bool = False
    content_type: str | None = None
    payload_format_indicator: int | None = None
    message_expiry_interval: int | None = None
    user_properties: tuple[UserProperty, ...] = ()

    def with_user_property(self, key: str, value: str) -> QueuedPublish:
        return msgspec.structs.replace(
            self,
            user_properties=self.user_properties + ((key, value),),
        )


__all__ = ["QueuedPublish", "UserProperty"]

"""MQTT fault transport for the crash bridge."""

from __future__ import annotations

import asyncio
import logging
import platform
import socket
from typing import Any

import aiomqtt
import msgspec
import psutil
import tenacity

from .. import __version__
from ..config.const import (
    DEFAULT_PUBLISH_MAX_BACKOFF,
    DEFAULT_PUBLISH_MIN_BACKOFF,
    MQTT_CONTENT_TYPE_JSON,
    MQTT_USER_PROP_CONTEXT,
    NOTIFIER_NAME,
)
from ..config.settings import RuntimeConfig
from ..mqtt import build_mqtt_connect_properties, build_mqtt_properties
from ..mqtt.messages import QueuedPublish
from ..protocol import crash_topic
from ..protocol.structures import CrashEnvelope, CrashEvent, Fault, utc_now
from ..services.base import EnrichCallback, ResultCallback
from ..util.mqtt_helper import configure_tls_context

logger = logging.getLogger("crashbridge.transport.mqtt")

_RETRYABLE = (aiomqtt.MqttError, OSError, asyncio.TimeoutError)


def _log_retry_attempt(retry_state: tenacity.RetryCallState) -> None:
    logger.info(
        "Retrying crash publish (attempt %d, next wait %.2fs)...",
        retry_state.attempt_number + 1,
        retry_state.next_action.sleep if retry_state.next_action else 0,
    )


def host_device_fields() -> dict[str, Any]:
    """Describe the machine running the bridge, as a generic notifier would."""
    device: dict[str, Any] = {
        "hostname": socket.gethostname(),
        "osName": platform.system().lower(),
        "osVersion": platform.release(),
        "time": utc_now().isoformat(),
        "runtimeVersions": {
            "python": platform.python_version(),
            "crashbridge": __version__,
        },
    }
    try:
        mem = psutil.virtual_memory()
        device["freeMemory"] = mem.available
        device["totalMemory"] = mem.total
    except (OSError, AttributeError):
        device["freeMemory"] = None
        device["totalMemory"] = None
    return device


def app_fields(config: RuntimeConfig) -> dict[str, Any]:
    return {
        "version": config.firmware_version,
        "releaseStage": config.release_stage,
        "type": config.app_type,
    }


def build_event(config: RuntimeConfig, fault: Fault) -> CrashEvent:
    event = CrashEvent.for_fault(fault)
    event.app = app_fields(config)
    event.device = host_device_fields()
    return event


def encode_envelope(config: RuntimeConfig, event: CrashEvent) -> bytes:
    envelope = CrashEnvelope(
        api_key=config.api_key,
        notifier={"name": NOTIFIER_NAME, "version": __version__},
        events=[event],
    )
    return msgspec.json.encode(envelope)


def build_publish(config: RuntimeConfig, event: CrashEvent) -> QueuedPublish:
    message = QueuedPublish(
        topic_name=crash_topic(config.mqtt_topic, event.context),
        payload=encode_envelope(config, event),
        qos=1,
        content_type=MQTT_CONTENT_TYPE_JSON,
        payload_format_indicator=1,
    )
    if event.context:
        message = message.with_user_property(MQTT_USER_PROP_CONTEXT, event.context)
    return message


class MqttFaultTransport:
    """Publish crash envelopes to an MQTT v5 broker.

    ``notify`` builds and enriches the event synchronously, then publishes in
    a background task; ``on_result`` fires once that task settles.
    """

    def __init__(self, config: RuntimeConfig) -> None:
        self.config = config
        self._tls_context = configure_tls_context(config)
        self._pending: set[asyncio.Task[None]] = set()

    def notify(self, fault: Fault, on_event: EnrichCallback, on_result: ResultCallback) -> None:
        loop = asyncio.get_running_loop()
        event = build_event(self.config, fault)
        on_event(event)
        message = build_publish(self.config, event)
        task = loop.create_task(self._deliver(message, on_result))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, message: QueuedPublish, on_result: ResultCallback) -> None:
        try:
            await self.publish(message)
        except asyncio.CancelledError as exc:
            on_result(exc)
            raise
        except Exception as exc:
            # Every exit path reports exactly once, including non-network errors.
            logger.debug("Crash publish to %s failed", message.topic_name, exc_info=True)
            on_result(exc)
        else:
            on_result(None)

    async def publish(self, message: QueuedPublish) -> None:
        retryer = tenacity.AsyncRetrying(
            stop=tenacity.stop_after_attempt(self.config.publish_attempts),
            wait=tenacity.wait_exponential(
                multiplier=DEFAULT_PUBLISH_MIN_BACKOFF,
                max=DEFAULT_PUBLISH_MAX_BACKOFF,
            ),
            retry=tenacity.retry_if_exception_type(_RETRYABLE),
            before_sleep=_log_retry_attempt,
            reraise=True,
        )
        async for attempt in retryer:
            with attempt:
                async with asyncio.timeout(self.config.publish_timeout):
                    await self._publish_once(message)

    async def _publish_once(self, message: QueuedPublish) -> None:
        if not self.config.mqtt_user:
            logger.debug("Publishing crash report without MQTT authentication.")

        async with aiomqtt.Client(
            hostname=self.config.mqtt_host,
            port=self.config.mqtt_port,
            username=self.config.mqtt_user or None,
            password=self.config.mqtt_pass or None,
            tls_context=self._tls_context,
            logger=logging.getLogger("crashbridge.mqtt.client"),
            protocol=aiomqtt.ProtocolVersion.V5,
            clean_session=None,
            properties=build_mqtt_connect_properties(),
        ) as client:
            await client.publish(
                message.topic_name,
                message.payload,
                qos=int(message.qos),
                retain=message.retain,
                properties=build_mqtt_properties(message),
            )
        logger.debug("Published %d bytes to %s", len(message.payload), message.topic_name)

    async def aclose(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)


__all__ = [
    "MqttFaultTransport",
    "app_fields",
    "build_event",
    "build_publish",
    "encode_envelope",
    "host_device_fields",
]

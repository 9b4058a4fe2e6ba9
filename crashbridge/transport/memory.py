"""In-process fault transport used by tests and dry runs."""

from __future__ import annotations

import asyncio
import logging

import msgspec

from ..config.settings import RuntimeConfig
from ..mqtt.messages import QueuedPublish
from ..protocol.structures import CrashEvent, Fault
from ..services.base import EnrichCallback, ResultCallback
from .mqtt import build_event, build_publish

logger = logging.getLogger("crashbridge.transport.memory")


class RecordingTransport:
    """Build and encode events exactly like the MQTT transport, but keep them.

    ``fail_with`` primes the next deliveries to report that error instead of
    succeeding. ``on_result`` is always invoked on a later loop iteration,
    never from inside ``notify``.
    """

    def __init__(self, config: RuntimeConfig, *, fail_with: BaseException | None = None) -> None:
        self.config = config
        self.fail_with = fail_with
        self.events: list[CrashEvent] = []
        self.published: list[QueuedPublish] = []
        self._pending: set[asyncio.Task[None]] = set()

    def notify(self, fault: Fault, on_event: EnrichCallback, on_result: ResultCallback) -> None:
        loop = asyncio.get_running_loop()
        event = build_event(self.config, fault)
        on_event(event)
        message = build_publish(self.config, event)
        self.events.append(event)
        task = loop.create_task(self._deliver(message, on_result))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, message: QueuedPublish, on_result: ResultCallback) -> None:
        await asyncio.sleep(0)
        if self.fail_with is not None:
            on_result(self.fail_with)
            return
        self.published.append(message)
        logger.info("Recorded %d byte crash report for %s", len(message.payload), message.topic_name)
        on_result(None)

    def decoded(self, index: int = -1) -> dict:
        """Return a recorded envelope decoded back to plain JSON types."""
        return msgspec.json.decode(self.published[index].payload)

    async def aclose(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)


__all__ = ["RecordingTransport"]

"""Delivery client bridging the callback-based transport to ``await``."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from transitions import Machine

from ..config.settings import RuntimeConfig
from ..protocol.structures import AttachmentManifest, CrashEvent, DeliveryOutcome, Fault
from .attachments import AttachmentResolver
from .base import FaultTransport
from .enrichment import EnrichmentEngine
from .telemetry import SampleTelemetrySource, TelemetrySource

logger = logging.getLogger("crashbridge.delivery")


class Submission:
    """Lifecycle of one fault submission.

    The transport guarantees the enrichment callback fires strictly before
    the delivery result; ``pending -> enriched -> sent|failed`` encodes that.
    A transport that fails before enriching goes ``pending -> failed``.
    """

    if TYPE_CHECKING:
        # FSM generated methods and attributes for static analysis
        fsm_state: str
        mark_enriched: Callable[[], bool]
        mark_sent: Callable[[], bool]
        mark_failed: Callable[[], bool]

    # FSM States
    STATE_PENDING = "pending"
    STATE_ENRICHED = "enriched"
    STATE_SENT = "sent"
    STATE_FAILED = "failed"

    def __init__(self, context_label: str) -> None:
        self.context_label = context_label

        self.state_machine = Machine(
            model=self,
            states=[
                self.STATE_PENDING,
                self.STATE_ENRICHED,
                self.STATE_SENT,
                self.STATE_FAILED,
            ],
            initial=self.STATE_PENDING,
            ignore_invalid_triggers=True,
            model_attribute="fsm_state",
        )

        self.state_machine.add_transition("mark_enriched", self.STATE_PENDING, self.STATE_ENRICHED)
        self.state_machine.add_transition(
            "mark_sent", [self.STATE_PENDING, self.STATE_ENRICHED], self.STATE_SENT
        )
        self.state_machine.add_transition(
            "mark_failed", [self.STATE_PENDING, self.STATE_ENRICHED], self.STATE_FAILED
        )

    @property
    def finished(self) -> bool:
        return self.fsm_state in (self.STATE_SENT, self.STATE_FAILED)


class DeliveryClient:
    """Submit faults to a :class:`FaultTransport` and await the outcome.

    ``submit`` resolves exactly once with a :class:`DeliveryOutcome` for both
    success and failure; delivery problems never raise into the caller.
    """

    def __init__(
        self,
        config: RuntimeConfig,
        transport: FaultTransport,
        *,
        resolver: AttachmentResolver | None = None,
        engine: EnrichmentEngine | None = None,
        telemetry: TelemetrySource | None = None,
    ) -> None:
        telemetry = telemetry or SampleTelemetrySource()
        self.config = config
        self.transport = transport
        self.resolver = resolver or AttachmentResolver(config, telemetry)
        self.engine = engine or EnrichmentEngine(config, telemetry)

    async def submit(self, fault: Fault, context_label: str) -> DeliveryOutcome:
        loop = asyncio.get_running_loop()
        manifest = await self._resolve_manifest(fault, context_label)

        submission = Submission(context_label)
        future: asyncio.Future[DeliveryOutcome] = loop.create_future()
        on_event = self._event_callback(submission, fault, context_label, manifest)

        def _settle(error: BaseException | None) -> None:
            if future.cancelled():
                logger.debug("Delivery result for %s arrived after the caller gave up", context_label)
                return
            if submission.finished or future.done():
                logger.warning("Ignoring duplicate delivery result for %s", context_label)
                return
            if submission.fsm_state == Submission.STATE_PENDING:
                logger.warning("Delivery result for %s arrived before enrichment", context_label)
            if error is None:
                submission.mark_sent()
                future.set_result(DeliveryOutcome.success())
            else:
                submission.mark_failed()
                future.set_result(DeliveryOutcome.failure(error))

        def on_result(error: BaseException | None) -> None:
            # Transports may report from their own thread.
            loop.call_soon_threadsafe(_settle, error)

        try:
            self.transport.notify(fault, on_event, on_result)
        except Exception as exc:
            logger.debug("Transport notify raised synchronously", exc_info=True)
            _settle(exc)

        outcome = await future
        if outcome.sent:
            logger.info('Crash "%s" sent to crash backend.', context_label)
        else:
            logger.error("Failed to deliver crash %s to crash backend: %s", context_label, outcome.error)
        return outcome

    async def _resolve_manifest(self, fault: Fault, context_label: str) -> AttachmentManifest | None:
        # Archive synthesis runs off the loop, before notify.
        try:
            return await asyncio.to_thread(self.resolver.resolve, fault, context_label)
        except Exception:
            logger.exception("Attachment resolution for %s failed; sending without attachment", context_label)
            return None

    def _event_callback(
        self,
        submission: Submission,
        fault: Fault,
        context_label: str,
        manifest: AttachmentManifest | None,
    ) -> Callable[[CrashEvent], None]:
        enrich = self.engine.callback(fault, context_label, manifest)

        def on_event(event: CrashEvent) -> None:
            if submission.fsm_state != Submission.STATE_PENDING:
                logger.warning("Enrichment callback for %s invoked more than once", context_label)
                return
            try:
                enrich(event)
            except Exception:
                # Never let enrichment problems reach the transport.
                logger.exception("Enrichment of %s failed; sending partial report", context_label)
            submission.mark_enriched()

        return on_event

    async def aclose(self) -> None:
        await self.transport.aclose()


__all__ = ["DeliveryClient", "Submission"]

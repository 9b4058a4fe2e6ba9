"""Crash Bridge Data Structures.

SINGLE SOURCE OF TRUTH for the data handed between the pipeline stages and
to the crash backend. Wire-facing structs use camelCase field names.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

import msgspec


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _optional_text(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# --- Fault ---


class Fault(msgspec.Struct, frozen=True, kw_only=True):
    """The captured error condition being reported.

    ``kind`` is the stable machine-readable reason code, ``source_id`` the
    originating device identity and ``detail`` the human narrative. Any of
    them may be absent; the section builders substitute placeholders.
    """

    message: str
    kind: str | None = None
    source_id: str | None = None
    detail: str | None = None
    error_class: str = "Error"
    occurred_at: datetime = msgspec.field(default_factory=utc_now)

    @classmethod
    def from_exception(cls, exc: BaseException) -> Fault:
        """Capture a raised exception, reading ``code``/``sensor_id``/``detail`` if present."""
        return cls(
            message=str(exc) or type(exc).__name__,
            kind=_optional_text(getattr(exc, "code", None)),
            source_id=_optional_text(getattr(exc, "sensor_id", None)),
            detail=_optional_text(getattr(exc, "detail", None)),
            error_class=type(exc).__name__,
        )


# --- Attachment manifests ---


class _Manifest(msgspec.Struct, frozen=True, tag_field="mode"):
    @property
    def mode(self) -> str:
        return str(type(self).__struct_config__.tag)


class ExternalArchive(_Manifest, frozen=True, tag="external"):
    """Artifacts live in an externally hosted archive."""

    url: str


class LinkedArtifacts(_Manifest, frozen=True, tag="linked"):
    """One remote link per known artifact, keyed by artifact name."""

    entries: dict[str, str]


class InlineArchive(_Manifest, frozen=True, tag="inline", rename="camel"):
    """An in-memory archive shipped with the report as base64 text."""

    name: str
    size_bytes: int
    payload: str


AttachmentManifest = ExternalArchive | LinkedArtifacts | InlineArchive


# --- Delivery ---


class DeliveryStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"


class DeliveryOutcome(msgspec.Struct, frozen=True):
    """Terminal result of one transmission attempt. Never retried here."""

    status: DeliveryStatus
    error: BaseException | None = None

    @property
    def sent(self) -> bool:
        return self.status is DeliveryStatus.SENT

    @classmethod
    def success(cls) -> DeliveryOutcome:
        return cls(DeliveryStatus.SENT)

    @classmethod
    def failure(cls, error: BaseException) -> DeliveryOutcome:
        return cls(DeliveryStatus.FAILED, error)


# --- Transport event ---


class ExceptionInfo(msgspec.Struct, rename="camel"):
    error_class: str
    message: str
    code: str | None = None
    type: str = "python"


class ReporterUser(msgspec.Struct, omit_defaults=True):
    id: str | None = None
    name: str | None = None
    email: str | None = None


class CrashEvent(msgspec.Struct, rename="camel", kw_only=True):
    """Mutable event owned by the transport.

    The transport fills ``app`` and ``device`` before handing the event to the
    enrichment callback; after the callback returns it is serialised as-is.
    """

    exceptions: list[ExceptionInfo]
    context: str | None = None
    severity: str = "warning"
    unhandled: bool = True
    occurred_at: datetime = msgspec.field(default_factory=utc_now)
    user: ReporterUser = msgspec.field(default_factory=ReporterUser)
    app: dict[str, Any] = msgspec.field(default_factory=dict)
    device: dict[str, Any] = msgspec.field(default_factory=dict)
    metadata: dict[str, Any] = msgspec.field(default_factory=dict)

    @classmethod
    def for_fault(cls, fault: Fault) -> CrashEvent:
        return cls(
            exceptions=[
                ExceptionInfo(
                    error_class=fault.error_class,
                    message=fault.message,
                    code=fault.kind,
                )
            ],
            occurred_at=fault.occurred_at,
        )

    def set_user(self, id: str | None = None, email: str | None = None, name: str | None = None) -> None:
        self.user = ReporterUser(id=id, name=name, email=email)

    def add_metadata(self, section: str, value: Any) -> None:
        self.metadata[section] = value


class CrashEnvelope(msgspec.Struct, rename="camel", kw_only=True):
    """Top-level document published to the crash backend."""

    api_key: str
    notifier: dict[str, str]
    events: list[CrashEvent]
    payload_version: str = "5"


__all__ = [
    "AttachmentManifest",
    "CrashEnvelope",
    "CrashEvent",
    "DeliveryOutcome",
    "DeliveryStatus",
    "ExceptionInfo",
    "ExternalArchive",
    "Fault",
    "InlineArchive",
    "LinkedArtifacts",
    "ReporterUser",
    "utc_now",
]

"""Attachment resolution for crash reports.

Bulky artifacts (task logs, traces, core dumps) are never embedded in the
metadata sections. Instead one manifest describes where they live:

* ``external``: a pre-built archive hosted elsewhere (``archive_url``).
* ``linked``: one URL per artifact under ``artifact_base_url``.
* ``inline``: a zip synthesised in memory and shipped as base64.

Exactly one mode is chosen per report; ``local_attachments=False`` without an
external archive means the report carries no attachment at all.
"""

from __future__ import annotations

import base64
import io
import logging
import re
import zipfile
from pathlib import Path, PurePosixPath
from typing import Any, Final

import msgspec

from ..config.settings import RuntimeConfig
from ..protocol.structures import (
    AttachmentManifest,
    ExternalArchive,
    Fault,
    InlineArchive,
    LinkedArtifacts,
)
from ..util import join_url
from .sections import REGISTER_NAMES, format_register, format_stack_usage, resolve_sensor_id
from .telemetry import TelemetrySource

logger = logging.getLogger("crashbridge.attachments")

# Fixed entry timestamp keeps the archive bytes reproducible.
ZIP_EPOCH: Final[tuple[int, int, int, int, int, int]] = (1980, 1, 1, 0, 0, 0)
ZIP_FILE_MODE: Final[int] = 0o644 << 16
ARTIFACTS_PREFIX: Final[str] = "artifacts"
CRASH_REPORT_NAME: Final[str] = "crash-report.json"

_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9_.-]+")


def archive_name(context_label: str, fault: Fault) -> str:
    slug = _UNSAFE_NAME.sub("-", context_label).strip("-") or "crash"
    return f"crash-{slug}-{fault.occurred_at:%Y%m%dT%H%M%SZ}.zip"


def _relative_member(path: str) -> str | None:
    """Return *path* as a safe archive-relative member, or None."""
    posix = PurePosixPath(path.replace("\\", "/"))
    parts = [part for part in posix.parts if part not in ("", "/", ".")]
    if not parts or ".." in parts:
        return None
    return "/".join(parts)


class AttachmentResolver:
    """Select the attachment strategy and build its manifest."""

    def __init__(self, config: RuntimeConfig, telemetry: TelemetrySource) -> None:
        self.config = config
        self.telemetry = telemetry

    def resolve(self, fault: Fault, context_label: str) -> AttachmentManifest | None:
        if self.config.archive_url:
            return ExternalArchive(url=self.config.archive_url)
        if not self.config.local_attachments:
            logger.debug("Local attachments disabled; report carries no attachment.")
            return None
        try:
            if self.config.artifact_base_url:
                return self.linked_artifacts(self.config.artifact_base_url)
            return self.inline_archive(fault, context_label)
        except Exception as exc:
            # Any failure only costs the attachment, never the report.
            logger.warning(
                "Attachment synthesis failed; sending report without attachment: %s",
                exc,
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            return None

    def linked_artifacts(self, base_url: str) -> LinkedArtifacts:
        entries = {name: join_url(base_url, path) for name, path in sorted(self.telemetry.artifacts().items())}
        return LinkedArtifacts(entries=entries)

    def inline_archive(self, fault: Fault, context_label: str) -> InlineArchive:
        data = self.build_archive(fault, context_label)
        return InlineArchive(
            name=archive_name(context_label, fault),
            size_bytes=len(data),
            payload=base64.b64encode(data).decode("ascii"),
        )

    def build_archive(self, fault: Fault, context_label: str) -> bytes:
        """Synthesise the zip bytes. Identical inputs give identical bytes."""
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            _write_member(archive, CRASH_REPORT_NAME, self._crash_report(fault, context_label))
            _write_member(archive, "tasklog.txt", self._tasklog_text().encode("utf-8"))
            _write_member(archive, "eventlog.txt", self._eventlog_text().encode("utf-8"))
            _write_member(archive, "registers.txt", self._registers_text().encode("utf-8"))
            _write_member(archive, "tasks.txt", self._tasks_text().encode("utf-8"))
            for member, payload in self._local_artifacts():
                _write_member(archive, f"{ARTIFACTS_PREFIX}/{member}", payload)
        return buffer.getvalue()

    # --- Archive members ---

    def _crash_report(self, fault: Fault, context_label: str) -> bytes:
        sensor_id, _ = resolve_sensor_id(fault, self.config)
        document: dict[str, Any] = {
            "contextLabel": context_label,
            "sensorId": sensor_id,
            "fault": {
                "errorClass": fault.error_class,
                "message": fault.message,
                "kind": fault.kind,
                "detail": fault.detail,
            },
            "firmwareVersion": self.config.firmware_version,
            "releaseStage": self.config.release_stage,
            "hardware": self.config.hardware_model,
            "rtos": self.config.rtos_label,
            "artifacts": dict(sorted(self.telemetry.artifacts().items())),
        }
        return msgspec.json.format(msgspec.json.encode(document), indent=2)

    def _tasklog_text(self) -> str:
        steps = sorted(self.telemetry.task_steps(), key=lambda step: -step.offset_ms)
        return "".join(f"T-{step.offset_ms}ms {step.step} {step.result}\n" for step in steps)

    def _eventlog_text(self) -> str:
        records = sorted(self.telemetry.timeline(), key=lambda record: -record.offset_ms)
        lines = []
        for record in records:
            line = f"T-{record.offset_ms}ms {record.label} [{record.source or 'unknown'}]"
            if record.detail:
                line = f"{line} {record.detail}"
            lines.append(line + "\n")
        return "".join(lines)

    def _registers_text(self) -> str:
        registers = self.telemetry.registers()
        if registers is None:
            return "registers unavailable\n"
        lines = [f"{name:<8}{format_register(registers.core.get(name))}\n" for name in REGISTER_NAMES]
        for name, value in sorted(registers.fault_status.items()):
            lines.append(f"{name:<8}{format_register(value)}\n")
        return "".join(lines)

    def _tasks_text(self) -> str:
        lines = []
        for task in self.telemetry.tasks():
            stack = format_stack_usage(task.stack_used, task.stack_total)
            lines.append(f"{task.name} state={task.state or 'unknown'} stack={stack}\n")
        return "".join(lines)

    def _local_artifacts(self) -> list[tuple[str, bytes]]:
        if not self.config.artifact_dir:
            return []
        root = Path(self.config.artifact_dir)
        collected: list[tuple[str, bytes]] = []
        for name, relative in sorted(self.telemetry.artifacts().items()):
            member = _relative_member(relative)
            if member is None:
                logger.warning("Skipping artifact %s with unsafe path %r", name, relative)
                continue
            path = root / member
            if not path.is_file():
                logger.debug("Artifact %s not found at %s", name, path)
                continue
            collected.append((member, path.read_bytes()))
        return collected


def _write_member(archive: zipfile.ZipFile, name: str, payload: bytes) -> None:
    info = zipfile.ZipInfo(name, date_time=ZIP_EPOCH)
    info.compress_type = zipfile.ZIP_DEFLATED
    info.external_attr = ZIP_FILE_MODE
    archive.writestr(info, payload)


__all__ = [
    "AttachmentResolver",
    "archive_name",
]

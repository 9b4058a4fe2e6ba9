"""Enrichment engine: turns a transport event into a diagnostic report."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from datetime import datetime
from types import MappingProxyType
from typing import Any

import msgspec

from ..config.const import ATTACHMENTS_SECTION, SEVERITY_ERROR
from ..config.settings import RuntimeConfig
from ..protocol.structures import AttachmentManifest, CrashEvent, Fault, utc_now
from .base import EnrichCallback
from .device import DeviceFieldNormalizer
from .sections import DEFAULT_BUILDERS, EnrichmentContext, SectionBuilder, resolve_sensor_id, section_name
from .telemetry import SampleTelemetrySource, TelemetrySource

logger = logging.getLogger("crashbridge.enrichment")


class SectionBuildError(RuntimeError):
    """A section builder failed or returned something other than ``(name, value)``."""


def unavailable_section(exc: BaseException) -> dict[str, str]:
    return {"status": "unavailable", "error": f"{type(exc).__name__}: {exc}"}


class DiagnosticReport(Mapping[str, Any]):
    """Read-only, insertion-ordered view of section name to section value.

    Sections cannot be added, replaced or removed. The section values are the
    same JSON-ready containers handed to the event metadata, not frozen copies.
    """

    __slots__ = ("_sections",)

    def __init__(self, sections: Mapping[str, Any]) -> None:
        self._sections = MappingProxyType(dict(sections))

    def __getitem__(self, key: str) -> Any:
        return self._sections[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._sections)

    def __len__(self) -> int:
        return len(self._sections)

    def __repr__(self) -> str:
        return f"DiagnosticReport({list(self._sections)!r})"


class ReportBuilder:
    """Accumulate named sections; later writes win and are reported."""

    def __init__(self) -> None:
        self._sections: dict[str, Any] = {}

    def add(self, name: str, value: Any) -> None:
        if name in self._sections:
            logger.warning("Section %s emitted twice; keeping the last value.", name)
        self._sections[name] = value

    def build(self) -> DiagnosticReport:
        return DiagnosticReport(self._sections)


class EnrichmentEngine:
    """Run the normaliser and every section builder against one event.

    Each builder is guarded on its own: a failure is logged and replaced by
    an ``unavailable`` placeholder under the builder's section name, so the
    report always carries every defined section.
    """

    def __init__(
        self,
        config: RuntimeConfig,
        telemetry: TelemetrySource | None = None,
        builders: Sequence[SectionBuilder] | None = None,
        normalizer: DeviceFieldNormalizer | None = None,
    ) -> None:
        self.config = config
        self.telemetry = telemetry or SampleTelemetrySource()
        self.builders = tuple(DEFAULT_BUILDERS if builders is None else builders)
        self.normalizer = normalizer or DeviceFieldNormalizer(config)

    @property
    def section_names(self) -> tuple[str, ...]:
        return tuple(section_name(builder) for builder in self.builders)

    def build_report(
        self,
        fault: Fault,
        context_label: str,
        manifest: AttachmentManifest | None = None,
        *,
        now: datetime | None = None,
    ) -> DiagnosticReport:
        context = EnrichmentContext(
            context_label=context_label,
            config=self.config,
            telemetry=self.telemetry,
            now=now or utc_now(),
        )
        report = ReportBuilder()
        for builder in self.builders:
            name, value = self._run_builder(builder, fault, context)
            report.add(name, value)
        if manifest is not None:
            report.add(ATTACHMENTS_SECTION, msgspec.to_builtins(manifest))
        return report.build()

    def enrich(
        self,
        event: CrashEvent,
        fault: Fault,
        context_label: str,
        manifest: AttachmentManifest | None = None,
    ) -> DiagnosticReport:
        """Populate *event* in place. Synchronous; performs no I/O."""
        sensor_id, _ = resolve_sensor_id(fault, self.config)
        event.context = context_label
        event.set_user(sensor_id, name=self.config.sensor_name)
        event.severity = SEVERITY_ERROR
        self.normalizer.apply(event, sensor_id)

        report = self.build_report(fault, context_label, manifest)
        for name, value in report.items():
            event.add_metadata(name, value)
        return report

    def callback(
        self,
        fault: Fault,
        context_label: str,
        manifest: AttachmentManifest | None = None,
    ) -> EnrichCallback:
        def _on_event(event: CrashEvent) -> None:
            self.enrich(event, fault, context_label, manifest)

        return _on_event

    def _run_builder(
        self,
        builder: SectionBuilder,
        fault: Fault,
        context: EnrichmentContext,
    ) -> tuple[str, Any]:
        name = section_name(builder)
        try:
            result = builder(fault, context)
            if not (isinstance(result, tuple) and len(result) == 2 and isinstance(result[0], str)):
                raise SectionBuildError(f"builder {name} returned {type(result).__name__}, not (name, value)")
            return result
        except Exception as exc:
            logger.exception("Section builder %s failed", name)
            return name, unavailable_section(exc)


__all__ = [
    "DiagnosticReport",
    "EnrichmentEngine",
    "ReportBuilder",
    "SectionBuildError",
    "unavailable_section",
]

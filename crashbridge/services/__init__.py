"""Service layer for the crash enrichment and delivery pipeline."""

from .attachments import AttachmentResolver
from .base import EnrichCallback, FaultTransport, ResultCallback
from .delivery import DeliveryClient, Submission
from .device import DeviceFieldNormalizer
from .enrichment import DiagnosticReport, EnrichmentEngine, ReportBuilder, SectionBuildError
from .sections import DEFAULT_BUILDERS, SECTION_NAMES, EnrichmentContext
from .telemetry import SampleTelemetrySource, TelemetrySource

__all__ = [
    "AttachmentResolver",
    "DEFAULT_BUILDERS",
    "DeliveryClient",
    "DeviceFieldNormalizer",
    "DiagnosticReport",
    "EnrichCallback",
    "EnrichmentContext",
    "EnrichmentEngine",
    "FaultTransport",
    "ReportBuilder",
    "ResultCallback",
    "SECTION_NAMES",
    "SampleTelemetrySource",
    "SectionBuildError",
    "Submission",
    "TelemetrySource",
]

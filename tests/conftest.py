"""Pytest configuration for crash bridge tests."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
if str(PACKAGE_ROOT) not in sys.path:
    sys.path.insert(0, str(PACKAGE_ROOT))

from crashbridge.config.const import ENV_PREFIX  # noqa: E402
from crashbridge.config.settings import RuntimeConfig  # noqa: E402
from crashbridge.protocol.structures import Fault  # noqa: E402
from crashbridge.services.telemetry import (  # noqa: E402
    RegisterFile,
    RuntimeMetrics,
    SampleTelemetrySource,
    StepRecord,
    TaskRecord,
    TimelineRecord,
)
from crashbridge.transport import RecordingTransport  # noqa: E402

TEST_API_KEY = "0123456789abcdef0123456789abcdef"
WATCHDOG_DETAIL = "BLE link lost and watchdog fired while processing intrusion alert."


class EmptyTelemetrySource:
    """A device that reported nothing at all."""

    def registers(self) -> RegisterFile | None:
        return None

    def tasks(self) -> list[TaskRecord]:
        return []

    def task_steps(self) -> list[StepRecord]:
        return []

    def timeline(self) -> list[TimelineRecord]:
        return []

    def runtime_metrics(self) -> RuntimeMetrics:
        return RuntimeMetrics()

    def artifacts(self) -> dict[str, str]:
        return {}


class PartialTelemetrySource(EmptyTelemetrySource):
    """Records present but with every optional sub-field missing."""

    def registers(self) -> RegisterFile | None:
        return RegisterFile(core={"pc": 0x08000101})

    def tasks(self) -> list[TaskRecord]:
        return [TaskRecord(name="orphan-task")]

    def task_steps(self) -> list[StepRecord]:
        return [StepRecord(500, "boot", "ok"), StepRecord(500, "ble_handshake", "ok")]

    def timeline(self) -> list[TimelineRecord]:
        return [TimelineRecord(offset_ms=100, label="watchdog_reset")]


@pytest.fixture(autouse=True)
def reset_logging_handlers():
    """Close and remove all logging handlers after each test to prevent ResourceWarnings."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        try:
            handler.close()
        except (OSError, RuntimeError):
            pass
        root.removeHandler(handler)


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Remove every CRASHBRIDGE_* variable so tests start from defaults."""
    import os

    for name in list(os.environ):
        if name.startswith(ENV_PREFIX):
            monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture()
def runtime_config() -> RuntimeConfig:
    return RuntimeConfig(
        api_key=TEST_API_KEY,
        mqtt_host="localhost",
        mqtt_port=1883,
        mqtt_topic="crash",
        publish_attempts=1,
        publish_timeout=1.0,
    )


@pytest.fixture()
def sample_fault() -> Fault:
    return Fault(
        message="Garage intrusion MCU watchdog reset",
        kind="GARAGE_SENSOR_WATCHDOG",
        source_id="garage-door-node-01",
        detail=WATCHDOG_DETAIL,
        error_class="SensorCrash",
    )


@pytest.fixture()
def sample_telemetry() -> SampleTelemetrySource:
    return SampleTelemetrySource()


@pytest.fixture()
def empty_telemetry() -> EmptyTelemetrySource:
    return EmptyTelemetrySource()


@pytest.fixture()
def partial_telemetry() -> PartialTelemetrySource:
    return PartialTelemetrySource()


@pytest.fixture()
def recording_transport(runtime_config: RuntimeConfig) -> RecordingTransport:
    return RecordingTransport(runtime_config)

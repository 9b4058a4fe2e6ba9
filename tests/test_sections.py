"""Tests for the diagnostic section builders."""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone

import pytest

from crashbridge.config.const import DEFAULT_SENSOR_ID, NOT_AVAILABLE, UNKNOWN
from crashbridge.config.settings import RuntimeConfig
from crashbridge.protocol.structures import Fault
from crashbridge.services import sections
from crashbridge.services.sections import (
    DEFAULT_BUILDERS,
    SECTION_NAMES,
    EnrichmentContext,
    format_backtrace,
    format_stack_usage,
    ordered_timestamps,
    resolve_sensor_id,
)
from crashbridge.services.telemetry import TaskRecord

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def _context(config: RuntimeConfig, telemetry, label: str = "STM32WB55_Intrusion_Sensor") -> EnrichmentContext:
    return EnrichmentContext(context_label=label, config=config, telemetry=telemetry, now=NOW)


# --- Identity ---


def test_identity_prefers_fault_source_id(runtime_config: RuntimeConfig) -> None:
    config = RuntimeConfig(api_key="k", sensor_id="configured-node")
    fault = Fault(message="boom", source_id="fault-node")

    assert resolve_sensor_id(fault, config) == ("fault-node", "fault")


def test_identity_falls_back_to_configured_id() -> None:
    config = RuntimeConfig(api_key="k", sensor_id="configured-node")

    assert resolve_sensor_id(Fault(message="boom"), config) == ("configured-node", "config")


def test_identity_falls_back_to_literal_default(runtime_config: RuntimeConfig) -> None:
    assert resolve_sensor_id(Fault(message="boom", source_id="  "), runtime_config) == (
        DEFAULT_SENSOR_ID,
        "default",
    )


def test_identity_section(runtime_config: RuntimeConfig, sample_telemetry) -> None:
    name, value = sections.build_identity(Fault(message="boom"), _context(runtime_config, sample_telemetry))

    assert name == "identity"
    assert value == {"id": DEFAULT_SENSOR_ID, "name": runtime_config.sensor_name, "source": "default"}


# --- Sensor and diagnostics ---


def test_sensor_section_reason_defaults_to_unknown(runtime_config: RuntimeConfig, sample_telemetry) -> None:
    name, value = sections.build_sensor(Fault(message="boom"), _context(runtime_config, sample_telemetry))

    assert name == "sensor"
    assert value["reason"] == UNKNOWN
    assert value["hardware"] == "STM32WB55"
    assert value["firmwareVersion"] == runtime_config.firmware_version
    assert value["location"] == "Garage Door"


def test_sensor_section_uses_fault_kind(runtime_config: RuntimeConfig, sample_fault, sample_telemetry) -> None:
    _, value = sections.build_sensor(sample_fault, _context(runtime_config, sample_telemetry))

    assert value["reason"] == "GARAGE_SENSOR_WATCHDOG"
    assert value["sensorId"] == "garage-door-node-01"


def test_diagnostics_section(runtime_config: RuntimeConfig, sample_fault, sample_telemetry) -> None:
    _, value = sections.build_diagnostics(sample_fault, _context(runtime_config, sample_telemetry, "Label"))

    assert value["crashName"] == "Label"
    assert value["watchdogWindowMs"] == 1500
    assert value["bleRssi"] == "-62dBm"
    assert value["lastHeartbeatTs"] == "2024-05-01T12:00:00.000Z"
    assert value["detail"] == sample_fault.detail


def test_diagnostics_placeholders(runtime_config: RuntimeConfig, empty_telemetry) -> None:
    _, value = sections.build_diagnostics(Fault(message="boom"), _context(runtime_config, empty_telemetry))

    assert value["watchdogWindowMs"] == UNKNOWN
    assert value["bleRssi"] == UNKNOWN
    assert value["detail"] == NOT_AVAILABLE


# --- Registers ---


def test_registers_are_hex_formatted(runtime_config: RuntimeConfig, sample_fault, sample_telemetry) -> None:
    _, value = sections.build_registers(sample_fault, _context(runtime_config, sample_telemetry))

    assert value["core"]["pc"] == "0x08006B12"
    assert value["core"]["r3"] == "0x00000000"
    assert list(value["core"]) == list(sections.REGISTER_NAMES)
    assert value["faultStatus"]["rcc_csr"] == "0x24000000"
    assert value["dumpPath"] == "coredump/stm32wb55-watchdog.bin"
    assert value["dumpUrl"] == NOT_AVAILABLE


def test_register_dump_url_joins_artifact_base(sample_fault, sample_telemetry) -> None:
    config = RuntimeConfig(api_key="k", artifact_base_url="https://artifacts.example.com/node-01/")

    _, value = sections.build_registers(sample_fault, _context(config, sample_telemetry))

    assert value["dumpUrl"] == "https://artifacts.example.com/node-01/coredump/stm32wb55-watchdog.bin"


def test_register_dump_url_prefers_external_archive(sample_fault, sample_telemetry) -> None:
    config = RuntimeConfig(
        api_key="k",
        archive_url="https://archive.example.com/crash.zip",
        artifact_base_url="https://artifacts.example.com",
    )

    _, value = sections.build_registers(sample_fault, _context(config, sample_telemetry))

    assert value["dumpUrl"] == "https://archive.example.com/crash.zip"


def test_registers_keep_shape_without_capture(runtime_config: RuntimeConfig, empty_telemetry) -> None:
    _, value = sections.build_registers(Fault(message="boom"), _context(runtime_config, empty_telemetry))

    assert set(value["core"]) == set(sections.REGISTER_NAMES)
    assert all(item == NOT_AVAILABLE for item in value["core"].values())
    assert value["faultStatus"] == {}
    assert value["dumpPath"] == NOT_AVAILABLE


# --- Tasks ---


@pytest.mark.parametrize(
    "used, total, expected",
    [
        (0, 512, UNKNOWN),
        (352, 0, UNKNOWN),
        (None, 512, UNKNOWN),
        (352, None, UNKNOWN),
        (352, 512, "352/512 bytes (69%)"),
        (96, 128, "96/128 bytes (75%)"),
    ],
)
def test_format_stack_usage(used, total, expected) -> None:
    assert format_stack_usage(used, total) == expected


def test_format_backtrace() -> None:
    assert format_backtrace(("a+0x1", "b+0x2", "c+0x3")) == "a+0x1 <- b+0x2 <- c+0x3"
    assert format_backtrace(()) == NOT_AVAILABLE


def test_tasks_section(runtime_config: RuntimeConfig, sample_fault, sample_telemetry) -> None:
    _, value = sections.build_tasks(sample_fault, _context(runtime_config, sample_telemetry))

    assert value["count"] == 4
    rows = {row["name"]: row for row in value["entries"]}
    ble = rows["ble-link-handler"]
    assert ble["stack"] == "352/512 bytes (69%)"
    assert ble["stackPercent"] == 69
    assert ble["pc"] == "0x08006B12"
    assert ble["backtrace"].count(" <- ") == 2
    watchdog = rows["stm32-watchdog"]
    assert watchdog["stack"] == UNKNOWN
    assert watchdog["highWaterMark"] == UNKNOWN


def test_task_row_placeholders() -> None:
    row = sections.task_row(TaskRecord(name="orphan"))

    assert row["state"] == UNKNOWN
    assert row["priority"] == UNKNOWN
    assert row["reason"] == NOT_AVAILABLE
    assert row["pc"] == NOT_AVAILABLE
    assert row["stack"] == UNKNOWN
    assert row["lastBlockingCall"] == NOT_AVAILABLE
    assert row["backtrace"] == NOT_AVAILABLE


def test_task_row_keeps_zero_priority() -> None:
    assert sections.task_row(TaskRecord(name="IDLE", priority=0))["priority"] == 0


# --- Logs ---


def test_ordered_timestamps_are_strictly_increasing() -> None:
    ordered = ordered_timestamps([200, 3000, 1000, 1000, 2000], NOW)

    instants = [instant for _, instant in ordered]
    assert all(a < b for a, b in zip(instants, instants[1:]))
    assert [index for index, _ in ordered] == [1, 4, 2, 3, 0]
    assert instants[0] == NOW - timedelta(milliseconds=3000)
    assert instants[3] - instants[2] == timedelta(milliseconds=1)


def test_tasklog_section(runtime_config: RuntimeConfig, sample_fault, sample_telemetry) -> None:
    _, value = sections.build_tasklog(sample_fault, _context(runtime_config, sample_telemetry))

    steps = [entry["step"] for entry in value["entries"]]
    assert steps == ["boot", "ble_handshake", "intrusion_detect", "watchdog"]
    assert value["entries"][0]["ts"] == "2024-05-01T11:59:57.000Z"
    assert value["lastCommand"] == "watchdog"


def test_eventlog_section(runtime_config: RuntimeConfig, sample_fault, sample_telemetry) -> None:
    _, value = sections.build_eventlog(sample_fault, _context(runtime_config, sample_telemetry))

    entries = value["entries"]
    assert len(entries) == 4
    stamps = [entry["occurredAt"] for entry in entries]
    assert stamps == sorted(stamps)
    assert len(set(stamps)) == 4
    assert entries[0]["label"] == "system_start"
    assert entries[-1]["source"] == "iwdg"


def test_logs_with_ties_and_missing_fields(runtime_config: RuntimeConfig, partial_telemetry) -> None:
    context = _context(runtime_config, partial_telemetry)

    _, tasklog = sections.build_tasklog(Fault(message="boom"), context)
    _, eventlog = sections.build_eventlog(Fault(message="boom"), context)

    assert [entry["step"] for entry in tasklog["entries"]] == ["boot", "ble_handshake"]
    assert tasklog["entries"][0]["ts"] < tasklog["entries"][1]["ts"]
    assert eventlog["entries"] == [
        {
            "occurredAt": "2024-05-01T11:59:59.900Z",
            "label": "watchdog_reset",
            "detail": NOT_AVAILABLE,
            "source": UNKNOWN,
        }
    ]


def test_empty_logs_use_placeholders(runtime_config: RuntimeConfig, empty_telemetry) -> None:
    _, value = sections.build_tasklog(Fault(message="boom"), _context(runtime_config, empty_telemetry))

    assert value == {"entries": [], "lastCommand": NOT_AVAILABLE}


# --- Registry ---


def test_default_section_names() -> None:
    assert SECTION_NAMES == ("identity", "sensor", "diagnostics", "registers", "tasks", "tasklog", "eventlog")


def test_builders_are_order_insensitive(runtime_config: RuntimeConfig, sample_fault, sample_telemetry) -> None:
    context = _context(runtime_config, sample_telemetry)
    forward = dict(builder(sample_fault, context) for builder in DEFAULT_BUILDERS)

    shuffled = list(DEFAULT_BUILDERS)
    random.Random(7).shuffle(shuffled)
    backward = dict(builder(sample_fault, context) for builder in reversed(shuffled))

    assert forward == backward


def test_section_decorator_names_builder() -> None:
    @sections.section("custom")
    def build_custom(fault, context):
        return {"ok": True}

    assert sections.section_name(build_custom) == "custom"
    assert build_custom(Fault(message="x"), None) == ("custom", {"ok": True})  # type: ignore[arg-type]

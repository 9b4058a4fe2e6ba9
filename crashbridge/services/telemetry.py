"""Device telemetry sources feeding the diagnostic sections.

A real deployment reads registers, task tables and traces from the device
(core dump, RTT log, flash trace buffer). :class:`SampleTelemetrySource`
carries a fixed STM32WB55 capture so the pipeline can run without hardware.
"""

from __future__ import annotations

from typing import Protocol

import msgspec


class RegisterFile(msgspec.Struct, frozen=True, kw_only=True):
    """CPU register state captured at fault time."""

    core: dict[str, int]
    fault_status: dict[str, int] = msgspec.field(default_factory=dict)
    dump_path: str | None = None


class TaskRecord(msgspec.Struct, frozen=True, kw_only=True):
    """One RTOS task as reported by the kernel-aware dump reader."""

    name: str
    state: str | None = None
    priority: int | None = None
    fault_reason: str | None = None
    pc: int | None = None
    lr: int | None = None
    sp: int | None = None
    stack_used: int | None = None
    stack_total: int | None = None
    high_water_mark: int | None = None
    last_blocking_call: str | None = None
    backtrace: tuple[str, ...] = ()


class StepRecord(msgspec.Struct, frozen=True):
    """Firmware task-log step; ``offset_ms`` is measured back from the report."""

    offset_ms: int
    step: str
    result: str


class TimelineRecord(msgspec.Struct, frozen=True, kw_only=True):
    offset_ms: int
    label: str
    detail: str | None = None
    source: str | None = None


class RuntimeMetrics(msgspec.Struct, frozen=True, kw_only=True):
    watchdog_window_ms: int | None = None
    ble_rssi_dbm: int | None = None


class TelemetrySource(Protocol):
    def registers(self) -> RegisterFile | None: ...

    def tasks(self) -> list[TaskRecord]: ...

    def task_steps(self) -> list[StepRecord]: ...

    def timeline(self) -> list[TimelineRecord]: ...

    def runtime_metrics(self) -> RuntimeMetrics: ...

    def artifacts(self) -> dict[str, str]:
        """Known crash artifacts: name -> path relative to the artifact store."""
        ...


_SAMPLE_REGISTERS = RegisterFile(
    core={
        "r0": 0x20001A40,
        "r1": 0x00000001,
        "r2": 0x40002C00,
        "r3": 0x00000000,
        "r4": 0x20003F10,
        "r5": 0x0000AAAA,
        "r6": 0x00000000,
        "r7": 0x20030FD8,
        "r8": 0x00000000,
        "r9": 0x00000000,
        "r10": 0x00000000,
        "r11": 0x00000000,
        "r12": 0x08004F21,
        "sp": 0x20030FD8,
        "lr": 0x08006A3D,
        "pc": 0x08006B12,
        "xpsr": 0x61000000,
    },
    fault_status={
        "cfsr": 0x00000000,
        "hfsr": 0x00000000,
        "rcc_csr": 0x24000000,
    },
    dump_path="coredump/stm32wb55-watchdog.bin",
)

_SAMPLE_TASKS = (
    TaskRecord(
        name="ble-link-handler",
        state="running",
        priority=5,
        fault_reason="BLE supervision timeout",
        pc=0x08006B12,
        lr=0x08006A3D,
        sp=0x20030FD8,
        stack_used=352,
        stack_total=512,
        high_water_mark=160,
        last_blocking_call="xQueueReceive(hci_evt_queue)",
        backtrace=("ble_link_poll+0x3c", "hci_evt_dispatch+0x12", "prvBleTask+0x88"),
    ),
    TaskRecord(
        name="intrusion-monitor-task",
        state="blocked",
        priority=3,
        fault_reason="waiting on alert semaphore",
        pc=0x08004D90,
        lr=0x08004C11,
        sp=0x20031A20,
        stack_used=288,
        stack_total=1024,
        high_water_mark=736,
        last_blocking_call="xSemaphoreTake(alert_sem)",
        backtrace=("intrusion_wait_alert+0x20", "intrusion_task+0x5e"),
    ),
    TaskRecord(
        name="stm32-watchdog",
        state="suspended",
        priority=7,
        fault_reason="IWDG refresh missed",
        pc=0x08002210,
        lr=0x080021F7,
        sp=0x20032100,
        stack_used=0,
        stack_total=256,
        high_water_mark=None,
        last_blocking_call="vTaskDelayUntil",
        backtrace=("iwdg_refresh_task+0x14",),
    ),
    TaskRecord(
        name="IDLE",
        state="ready",
        priority=0,
        pc=0x08001A02,
        lr=0x080019F5,
        sp=0x20032300,
        stack_used=96,
        stack_total=128,
        high_water_mark=32,
        backtrace=("prvIdleTask+0x0a",),
    ),
)

_SAMPLE_STEPS = (
    StepRecord(3000, "boot", "ok"),
    StepRecord(2000, "ble_handshake", "ok"),
    StepRecord(1000, "intrusion_detect", "trip"),
    StepRecord(200, "watchdog", "reset"),
)

_SAMPLE_TIMELINE = (
    TimelineRecord(offset_ms=3000, label="system_start", detail="Scheduler started", source="rtos"),
    TimelineRecord(
        offset_ms=2000,
        label="ble_handshake_success",
        detail="Paired with garage gateway",
        source="ble-stack",
    ),
    TimelineRecord(
        offset_ms=1000,
        label="intrusion_detected",
        detail="Reed switch opened on garage door",
        source="intrusion-monitor",
    ),
    TimelineRecord(
        offset_ms=200,
        label="watchdog_reset",
        detail="IWDG fired after the 1500 ms window elapsed",
        source="iwdg",
    ),
)

_SAMPLE_ARTIFACTS = {
    "tasklog": "logs/tasklog.txt",
    "eventlog": "logs/eventlog.txt",
    "coredump": "coredump/stm32wb55-watchdog.bin",
}


class SampleTelemetrySource:
    """Fixed capture of an STM32WB55 intrusion sensor watchdog reset."""

    def registers(self) -> RegisterFile | None:
        return _SAMPLE_REGISTERS

    def tasks(self) -> list[TaskRecord]:
        return list(_SAMPLE_TASKS)

    def task_steps(self) -> list[StepRecord]:
        return list(_SAMPLE_STEPS)

    def timeline(self) -> list[TimelineRecord]:
        return list(_SAMPLE_TIMELINE)

    def runtime_metrics(self) -> RuntimeMetrics:
        return RuntimeMetrics(watchdog_window_ms=1500, ble_rssi_dbm=-62)

    def artifacts(self) -> dict[str, str]:
        return dict(_SAMPLE_ARTIFACTS)


__all__ = [
    "RegisterFile",
    "RuntimeMetrics",
    "SampleTelemetrySource",
    "StepRecord",
    "TaskRecord",
    "TelemetrySource",
    "TimelineRecord",
]

"""Diagnostic section builders.

Each builder is a pure function ``(fault, context) -> (name, value)``. Builders
never look at each other's output, so they can be added, removed, reordered or
run concurrently; the engine merges their results by name.
"""

from __future__ import annotations

import functools
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Final, TypeVar

from ..config.const import DEFAULT_SENSOR_ID, NOT_AVAILABLE, UNKNOWN
from ..config.settings import RuntimeConfig
from ..protocol.structures import Fault, utc_now
from ..util import join_url
from .telemetry import TaskRecord, TelemetrySource

SectionBuilder = Callable[[Fault, "EnrichmentContext"], tuple[str, Any]]
_T = TypeVar("_T")

REGISTER_NAMES: Final[tuple[str, ...]] = (
    "r0",
    "r1",
    "r2",
    "r3",
    "r4",
    "r5",
    "r6",
    "r7",
    "r8",
    "r9",
    "r10",
    "r11",
    "r12",
    "sp",
    "lr",
    "pc",
    "xpsr",
)

BACKTRACE_SEPARATOR: Final[str] = " <- "


@dataclass(frozen=True, slots=True)
class EnrichmentContext:
    """Read-only inputs shared by every builder for one report.

    ``now`` is the enrichment instant; builders derive every timestamp from
    it so that their output does not depend on evaluation order.
    """

    context_label: str
    config: RuntimeConfig
    telemetry: TelemetrySource
    now: datetime = field(default_factory=utc_now)


def section(name: str) -> Callable[[Callable[[Fault, EnrichmentContext], Any]], SectionBuilder]:
    """Turn a value function into a builder emitting ``(name, value)``."""

    def decorator(func: Callable[[Fault, EnrichmentContext], Any]) -> SectionBuilder:
        @functools.wraps(func)
        def builder(fault: Fault, context: EnrichmentContext) -> tuple[str, Any]:
            return name, func(fault, context)

        builder.section_name = name  # type: ignore[attr-defined]
        return builder

    return decorator


def section_name(builder: SectionBuilder) -> str:
    return str(getattr(builder, "section_name", getattr(builder, "__name__", "section")))


# --- Formatting helpers ---


def format_timestamp(value: datetime) -> str:
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def format_register(value: int | None) -> str:
    if value is None:
        return NOT_AVAILABLE
    return f"0x{value:08X}"


def _or_placeholder(value: _T | None, placeholder: str) -> _T | str:
    if value is None or value == "":
        return placeholder
    return value


def stack_usage_percent(used: int | None, total: int | None) -> int | None:
    if not used or not total:
        return None
    return round(used * 100 / total)


def format_stack_usage(used: int | None, total: int | None) -> str:
    """``"352/512 bytes (69%)"``, or ``"unknown"`` when either value is absent or zero."""
    percent = stack_usage_percent(used, total)
    if percent is None:
        return UNKNOWN
    return f"{used}/{total} bytes ({percent}%)"


def format_backtrace(frames: Sequence[str]) -> str:
    cleaned = [frame for frame in frames if frame]
    if not cleaned:
        return NOT_AVAILABLE
    return BACKTRACE_SEPARATOR.join(cleaned)


def ordered_timestamps(offsets_ms: Iterable[int], now: datetime) -> list[tuple[int, datetime]]:
    """Map "milliseconds before *now*" offsets to strictly increasing instants.

    Returns ``(input_index, instant)`` pairs, oldest first. Equal offsets are
    kept in input order and spaced one millisecond apart.
    """
    indexed = sorted(enumerate(offsets_ms), key=lambda item: -item[1])
    ordered: list[tuple[int, datetime]] = []
    previous: datetime | None = None
    for index, offset in indexed:
        instant = now - timedelta(milliseconds=max(0, offset))
        if previous is not None and instant <= previous:
            instant = previous + timedelta(milliseconds=1)
        ordered.append((index, instant))
        previous = instant
    return ordered


def resolve_sensor_id(fault: Fault, config: RuntimeConfig) -> tuple[str, str]:
    """Return ``(sensor_id, source)``: fault id, then configured id, then the literal default."""
    for candidate, source in ((fault.source_id, "fault"), (config.sensor_id, "config")):
        if candidate and candidate.strip():
            return candidate.strip(), source
    return DEFAULT_SENSOR_ID, "default"


# --- Builders ---


@section("identity")
def build_identity(fault: Fault, context: EnrichmentContext) -> dict[str, Any]:
    sensor_id, source = resolve_sensor_id(fault, context.config)
    return {
        "id": sensor_id,
        "name": context.config.sensor_name,
        "source": source,
    }


@section("sensor")
def build_sensor(fault: Fault, context: EnrichmentContext) -> dict[str, Any]:
    config = context.config
    sensor_id, _ = resolve_sensor_id(fault, config)
    return {
        "sensorId": sensor_id,
        "firmwareVersion": config.firmware_version,
        "hardware": config.hardware_model,
        "rtos": config.rtos_label,
        "location": config.sensor_location,
        "reason": fault.kind or UNKNOWN,
    }


@section("diagnostics")
def build_diagnostics(fault: Fault, context: EnrichmentContext) -> dict[str, Any]:
    metrics = context.telemetry.runtime_metrics()
    rssi = f"{metrics.ble_rssi_dbm}dBm" if metrics.ble_rssi_dbm is not None else UNKNOWN
    return {
        "crashName": context.context_label,
        "watchdogWindowMs": _or_placeholder(metrics.watchdog_window_ms, UNKNOWN),
        "bleRssi": rssi,
        "lastHeartbeatTs": format_timestamp(context.now),
        "detail": fault.detail or NOT_AVAILABLE,
        "releaseStage": context.config.release_stage,
    }


def _dump_url(dump_path: str | None, config: RuntimeConfig) -> str:
    if config.archive_url:
        return config.archive_url
    if dump_path and config.artifact_base_url:
        return join_url(config.artifact_base_url, dump_path)
    return NOT_AVAILABLE


@section("registers")
def build_registers(fault: Fault, context: EnrichmentContext) -> dict[str, Any]:
    registers = context.telemetry.registers()
    core = registers.core if registers is not None else {}
    fault_status = registers.fault_status if registers is not None else {}
    dump_path = registers.dump_path if registers is not None else None
    return {
        "core": {name: format_register(core.get(name)) for name in REGISTER_NAMES},
        "faultStatus": {name: format_register(value) for name, value in fault_status.items()},
        "dumpPath": dump_path or NOT_AVAILABLE,
        "dumpUrl": _dump_url(dump_path, context.config),
    }


def task_row(task: TaskRecord) -> dict[str, Any]:
    high_water = f"{task.high_water_mark} bytes" if task.high_water_mark is not None else UNKNOWN
    return {
        "name": task.name or UNKNOWN,
        "state": task.state or UNKNOWN,
        "priority": _or_placeholder(task.priority, UNKNOWN),
        "reason": task.fault_reason or NOT_AVAILABLE,
        "pc": format_register(task.pc),
        "lr": format_register(task.lr),
        "sp": format_register(task.sp),
        "stack": format_stack_usage(task.stack_used, task.stack_total),
        "stackPercent": _or_placeholder(stack_usage_percent(task.stack_used, task.stack_total), UNKNOWN),
        "highWaterMark": high_water,
        "lastBlockingCall": task.last_blocking_call or NOT_AVAILABLE,
        "backtrace": format_backtrace(task.backtrace),
    }


@section("tasks")
def build_tasks(fault: Fault, context: EnrichmentContext) -> dict[str, Any]:
    rows = [task_row(task) for task in context.telemetry.tasks()]
    return {"count": len(rows), "entries": rows}


@section("tasklog")
def build_tasklog(fault: Fault, context: EnrichmentContext) -> dict[str, Any]:
    steps = context.telemetry.task_steps()
    entries: list[dict[str, Any]] = []
    for index, instant in ordered_timestamps((step.offset_ms for step in steps), context.now):
        step = steps[index]
        entries.append({"ts": format_timestamp(instant), "step": step.step, "result": step.result})
    return {
        "entries": entries,
        "lastCommand": entries[-1]["step"] if entries else NOT_AVAILABLE,
    }


@section("eventlog")
def build_eventlog(fault: Fault, context: EnrichmentContext) -> dict[str, Any]:
    records = context.telemetry.timeline()
    entries: list[dict[str, Any]] = []
    for index, instant in ordered_timestamps((record.offset_ms for record in records), context.now):
        record = records[index]
        entries.append(
            {
                "occurredAt": format_timestamp(instant),
                "label": record.label,
                "detail": record.detail or NOT_AVAILABLE,
                "source": record.source or UNKNOWN,
            }
        )
    return {
        "entries": entries,
        "lastCommand": entries[-1]["label"] if entries else NOT_AVAILABLE,
    }


DEFAULT_BUILDERS: Final[tuple[SectionBuilder, ...]] = (
    build_identity,
    build_sensor,
    build_diagnostics,
    build_registers,
    build_tasks,
    build_tasklog,
    build_eventlog,
)

SECTION_NAMES: Final[tuple[str, ...]] = tuple(section_name(builder) for builder in DEFAULT_BUILDERS)


__all__ = [
    "DEFAULT_BUILDERS",
    "EnrichmentContext",
    "SECTION_NAMES",
    "SectionBuilder",
    "format_backtrace",
    "format_stack_usage",
    "ordered_timestamps",
    "resolve_sensor_id",
    "section",
    "section_name",
    "stack_usage_percent",
    "task_row",
]

"""Tests for crashbridge.services.attachments."""

from __future__ import annotations

import base64
import io
import json
import zipfile
from datetime import datetime, timezone
from pathlib import Path

import msgspec
import pytest

from crashbridge.config.settings import RuntimeConfig
from crashbridge.protocol.structures import ExternalArchive, Fault, InlineArchive, LinkedArtifacts
from crashbridge.services.attachments import AttachmentResolver, archive_name
from crashbridge.util import join_url

LABEL = "STM32WB55_Intrusion_Sensor"


def _open(manifest: InlineArchive) -> zipfile.ZipFile:
    data = base64.b64decode(manifest.payload)
    assert len(data) == manifest.size_bytes
    return zipfile.ZipFile(io.BytesIO(data))


def test_external_archive_wins(sample_fault: Fault, sample_telemetry) -> None:
    config = RuntimeConfig(
        api_key="k",
        archive_url="https://archive.example.com/crash.zip",
        artifact_base_url="https://artifacts.example.com",
    )

    manifest = AttachmentResolver(config, sample_telemetry).resolve(sample_fault, LABEL)

    assert manifest == ExternalArchive(url="https://archive.example.com/crash.zip")
    assert manifest.mode == "external"
    assert msgspec.to_builtins(manifest) == {"mode": "external", "url": "https://archive.example.com/crash.zip"}


def test_external_archive_ignores_local_flag(sample_fault: Fault, sample_telemetry) -> None:
    config = RuntimeConfig(api_key="k", archive_url="https://archive.example.com/a.zip", local_attachments=False)

    manifest = AttachmentResolver(config, sample_telemetry).resolve(sample_fault, LABEL)

    assert isinstance(manifest, ExternalArchive)


def test_local_attachments_disabled_yields_nothing(sample_fault: Fault, sample_telemetry) -> None:
    config = RuntimeConfig(
        api_key="k",
        local_attachments=False,
        artifact_base_url="https://artifacts.example.com",
    )

    assert AttachmentResolver(config, sample_telemetry).resolve(sample_fault, LABEL) is None


def test_linked_artifacts(sample_fault: Fault, sample_telemetry) -> None:
    config = RuntimeConfig(api_key="k", artifact_base_url="https://artifacts.example.com/node-01/")

    manifest = AttachmentResolver(config, sample_telemetry).resolve(sample_fault, LABEL)

    assert isinstance(manifest, LinkedArtifacts)
    assert manifest.entries == {
        "coredump": "https://artifacts.example.com/node-01/coredump/stm32wb55-watchdog.bin",
        "eventlog": "https://artifacts.example.com/node-01/logs/eventlog.txt",
        "tasklog": "https://artifacts.example.com/node-01/logs/tasklog.txt",
    }
    assert msgspec.to_builtins(manifest)["mode"] == "linked"


@pytest.mark.parametrize(
    "base, relative, expected",
    [
        ("https://a.example/b", "c.bin", "https://a.example/b/c.bin"),
        ("https://a.example/b/", "/c.bin", "https://a.example/b/c.bin"),
        ("https://a.example/b//", "//c.bin", "https://a.example/b/c.bin"),
        ("https://a.example/b", "", "https://a.example/b"),
    ],
)
def test_join_url_uses_exactly_one_slash(base: str, relative: str, expected: str) -> None:
    assert join_url(base, relative) == expected


def test_inline_archive_contents(runtime_config: RuntimeConfig, sample_fault: Fault, sample_telemetry) -> None:
    manifest = AttachmentResolver(runtime_config, sample_telemetry).resolve(sample_fault, LABEL)

    assert isinstance(manifest, InlineArchive)
    assert manifest.mode == "inline"
    assert manifest.size_bytes > 0
    assert manifest.name.startswith(f"crash-{LABEL}-")
    assert manifest.name.endswith(".zip")

    with _open(manifest) as archive:
        names = archive.namelist()
        assert names[0] == "crash-report.json"
        assert {"tasklog.txt", "eventlog.txt", "registers.txt", "tasks.txt"} <= set(names)
        report = json.loads(archive.read("crash-report.json"))
        tasklog = archive.read("tasklog.txt").decode("utf-8").splitlines()

    assert report["contextLabel"] == LABEL
    assert report["fault"]["kind"] == "GARAGE_SENSOR_WATCHDOG"
    assert report["sensorId"] == "garage-door-node-01"
    assert tasklog[0] == "T-3000ms boot ok"
    assert len(tasklog) == 4


def test_inline_archive_is_deterministic(runtime_config: RuntimeConfig, sample_fault: Fault, sample_telemetry) -> None:
    resolver = AttachmentResolver(runtime_config, sample_telemetry)

    first = resolver.resolve(sample_fault, LABEL)
    second = resolver.resolve(sample_fault, LABEL)

    assert first == second


def test_inline_archive_includes_local_artifacts(sample_fault: Fault, sample_telemetry, tmp_path: Path) -> None:
    (tmp_path / "logs").mkdir()
    (tmp_path / "logs" / "tasklog.txt").write_text("raw task log\n")
    (tmp_path / "coredump").mkdir()
    (tmp_path / "coredump" / "stm32wb55-watchdog.bin").write_bytes(b"\x7fCORE")
    config = RuntimeConfig(api_key="k", artifact_dir=str(tmp_path))

    manifest = AttachmentResolver(config, sample_telemetry).resolve(sample_fault, LABEL)

    assert isinstance(manifest, InlineArchive)
    with _open(manifest) as archive:
        assert archive.read("artifacts/coredump/stm32wb55-watchdog.bin") == b"\x7fCORE"
        assert archive.read("artifacts/logs/tasklog.txt") == b"raw task log\n"
        # eventlog.txt is listed but absent on disk.
        assert "artifacts/logs/eventlog.txt" not in archive.namelist()


def test_unsafe_artifact_paths_are_skipped(sample_fault: Fault, empty_telemetry, tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(empty_telemetry, "artifacts", lambda: {"escape": "../secret.txt"})
    (tmp_path.parent / "secret.txt").write_text("nope")
    config = RuntimeConfig(api_key="k", artifact_dir=str(tmp_path))

    manifest = AttachmentResolver(config, empty_telemetry).resolve(sample_fault, LABEL)

    assert isinstance(manifest, InlineArchive)
    with _open(manifest) as archive:
        assert not any(name.startswith("artifacts/") for name in archive.namelist())


def test_synthesis_failure_degrades_to_no_attachment(
    runtime_config: RuntimeConfig,
    sample_fault: Fault,
    sample_telemetry,
    monkeypatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    resolver = AttachmentResolver(runtime_config, sample_telemetry)

    def _boom(fault: Fault, context_label: str) -> bytes:
        raise ValueError("encoder exploded")

    monkeypatch.setattr(resolver, "build_archive", _boom)

    with caplog.at_level("WARNING"):
        assert resolver.resolve(sample_fault, LABEL) is None
    assert "encoder exploded" in caplog.text


def test_unreadable_artifact_degrades(sample_fault: Fault, sample_telemetry, tmp_path: Path, monkeypatch) -> None:
    (tmp_path / "logs").mkdir()
    (tmp_path / "logs" / "tasklog.txt").write_text("x")
    config = RuntimeConfig(api_key="k", artifact_dir=str(tmp_path))

    def _denied(self: Path) -> bytes:
        raise PermissionError("denied")

    monkeypatch.setattr(Path, "read_bytes", _denied)

    assert AttachmentResolver(config, sample_telemetry).resolve(sample_fault, LABEL) is None


def test_archive_name_is_filesystem_safe() -> None:
    fault = Fault(message="boom", occurred_at=datetime(2024, 5, 1, 12, 30, 5, tzinfo=timezone.utc))

    assert archive_name("Garage / Door #1", fault) == "crash-Garage-Door-1-20240501T123005Z.zip"
    assert archive_name("///", fault) == "crash-crash-20240501T123005Z.zip"


class _UnreadableArtifacts:
    """Device reader that fails while listing artifacts."""

    def __init__(self, inner) -> None:
        self._inner = inner

    def __getattr__(self, name: str):
        return getattr(self._inner, name)

    def artifacts(self) -> dict[str, str]:
        raise RuntimeError("device reader unavailable")


@pytest.mark.parametrize("base_url", [None, "https://artifacts.example.com"])
def test_telemetry_reader_failure_degrades_to_no_attachment(
    sample_fault: Fault,
    sample_telemetry,
    base_url: str | None,
    caplog: pytest.LogCaptureFixture,
) -> None:
    config = RuntimeConfig(api_key="k", artifact_base_url=base_url)
    resolver = AttachmentResolver(config, _UnreadableArtifacts(sample_telemetry))

    with caplog.at_level("WARNING"):
        assert resolver.resolve(sample_fault, LABEL) is None
    assert "device reader unavailable" in caplog.text


def test_non_string_artifact_path_degrades(sample_fault: Fault, empty_telemetry, monkeypatch) -> None:
    monkeypatch.setattr(empty_telemetry, "artifacts", lambda: {"core": 42})
    config = RuntimeConfig(api_key="k", artifact_base_url="https://artifacts.example.com")

    assert AttachmentResolver(config, empty_telemetry).resolve(sample_fault, LABEL) is None

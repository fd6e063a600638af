from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from crashprobe.core.errors import TelemetryError
from crashprobe.core.keys import CounterStore, KeyGenerator
from crashprobe.core.models import (
    CrashSpec,
    InfoSpec,
    ProbeConfig,
    SenderConfig,
    VMDescriptor,
)
from crashprobe.core.senders import CrashlogSender, TelemdSender

FIXED_UPTIME = "0001:02:03"


class RecordingHistory:
    def __init__(self) -> None:
        self.events: list[tuple[str, str, Path | None, str, str]] = []
        self.info_errors: list[str] = []
        self.uptimes: list[str] = []

    def raise_event(self, event: str, cls: str, directory: Path | None, extra: str, key: str) -> None:
        self.events.append((event, cls, directory, extra, key))

    def raise_info_error(self, code: str) -> None:
        self.info_errors.append(code)

    def raise_uptime(self, uptime: str) -> None:
        self.uptimes.append(uptime)


class RecordingTelemetry:
    def __init__(self) -> None:
        self.calls: list[str] = []
        self.sent: list[dict[str, Any]] = []
        self.released: list[int] = []
        self.fail_when: Callable[[dict[str, Any]], bool] | None = None
        self._open: dict[int, dict[str, Any]] = {}
        self._next = 0

    def create_record(self, severity: int, cls: str, version: int) -> int:
        self.calls.append("create")
        self._next += 1
        self._open[self._next] = {
            "severity": severity,
            "cls": cls,
            "version": version,
            "event_id": None,
            "payload": None,
        }
        return self._next

    def set_event_id(self, handle: int, event_id: str) -> None:
        self.calls.append("set_event_id")
        self._open[handle]["event_id"] = event_id

    def set_payload(self, handle: int, payload: str) -> None:
        self.calls.append("set_payload")
        self._open[handle]["payload"] = payload

    def send(self, handle: int) -> None:
        self.calls.append("send")
        record = self._open[handle]
        if self.fail_when is not None and self.fail_when(record):
            raise TelemetryError("send refused")
        self.sent.append(dict(record))

    def release(self, handle: int) -> None:
        self.calls.append("release")
        self.released.append(handle)
        self._open.pop(handle, None)

    @property
    def payloads(self) -> list[str]:
        return [r["payload"] for r in self.sent]


class StaticQuota:
    def __init__(self, has_space: bool) -> None:
        self.answer = has_space
        self.checks = 0

    def has_space(self, outdir: Path, quota: int) -> bool:
        self.checks += 1
        return self.answer


@pytest.fixture
def uptime() -> Callable[[], tuple[str, int]]:
    return lambda: (FIXED_UPTIME, 1)


@pytest.fixture
def history() -> RecordingHistory:
    return RecordingHistory()


@pytest.fixture
def telemetry() -> RecordingTelemetry:
    return RecordingTelemetry()


@pytest.fixture
def full_quota() -> StaticQuota:
    return StaticQuota(False)


@pytest.fixture
def write_lines() -> Callable[[Path, list[str]], None]:
    def _write(path: Path, lines: list[str]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("".join(line + "\n" for line in lines), encoding="utf-8")

    return _write


@pytest.fixture
def make_probe(tmp_path: Path) -> Callable[..., ProbeConfig]:
    def _make(
        *,
        crashes: tuple[CrashSpec, ...] = (),
        infos: tuple[InfoSpec, ...] = (),
        vms: tuple[VMDescriptor, ...] = (),
        quota: int = 10 * 1024 * 1024,
        build_version: str = "1.0",
        senders: tuple[SenderConfig, ...] | None = None,
    ) -> ProbeConfig:
        if senders is None:
            senders = (
                SenderConfig(name="crashlog", outdir=tmp_path / "crashlog", quota=quota),
                SenderConfig(name="telemd", outdir=tmp_path / "telemd", quota=quota),
            )
        return ProbeConfig(
            senders=senders,
            crashes=crashes,
            infos=infos,
            vms=vms,
            build_version=build_version,
        )

    return _make


@pytest.fixture
def make_crashlog(uptime, history) -> Callable[..., CrashlogSender]:
    def _make(probe: ProbeConfig, **kwargs: Any) -> CrashlogSender:
        config = probe.sender("crashlog")
        config.outdir.mkdir(parents=True, exist_ok=True)
        kwargs.setdefault("history", history)
        kwargs.setdefault("uptime", uptime)
        counter = CounterStore(config.outdir / ".event_counter")
        counter.ensure()
        keys = KeyGenerator(counter)
        return CrashlogSender(config, probe, keys=keys, **kwargs)

    return _make


@pytest.fixture
def make_telemd(uptime, telemetry) -> Callable[..., TelemdSender]:
    def _make(probe: ProbeConfig, **kwargs: Any) -> TelemdSender:
        config = probe.sender("telemd")
        config.outdir.mkdir(parents=True, exist_ok=True)
        local = probe.sender("crashlog")
        kwargs.setdefault("client", telemetry)
        kwargs.setdefault("archive_dir", local.outdir if local is not None else None)
        kwargs.setdefault("uptime", uptime)
        return TelemdSender(config, probe, **kwargs)

    return _make

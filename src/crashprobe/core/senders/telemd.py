"""Remote telemetry sender.

Artifacts are not copied: the sender submits one record per file already
archived by the local sender, keyed by a deterministic event id so that
resubmissions collapse on the service side.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path

from ..clock import uptime_string
from ..errors import ClassificationError, ProbeError
from ..keys import KeyGenerator
from ..models import (
    CrashSpec,
    Event,
    InfoSpec,
    LogSpec,
    ProbeConfig,
    SenderConfig,
    Severity,
    TelemetryRecord,
    VMDescriptor,
    VMEvent,
    VMEventOutcome,
)
from ..telemetry import TelemetryClient, crash_record, info_record, submit
from .base import INOTIFY_CHANNEL, Sender, trigger_file

logger = logging.getLogger(__name__)

CLASS_PREFIX = "clearlinux"


def find_dir(root: Path, name: str, *, depth: int = 2) -> Path | None:
    """First directory called ``name`` at most ``depth`` levels below ``root``.

    Raises OSError when ``root`` cannot be listed.
    """
    if not name:
        return None
    level = [root]
    for _ in range(depth):
        below: list[Path] = []
        for parent in level:
            try:
                with os.scandir(parent) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except FileNotFoundError:
                continue
            for entry in entries:
                if not entry.is_dir(follow_symlinks=False):
                    continue
                if entry.name == name:
                    return Path(entry.path)
                below.append(Path(entry.path))
        level = below
    return None


class TelemdSender(Sender):
    """Forward events to the telemetry service through a client adapter."""

    def __init__(
        self,
        config: SenderConfig,
        probe: ProbeConfig,
        *,
        client: TelemetryClient,
        archive_dir: Path | None,
        uptime: Callable[[], tuple[str, int]] = uptime_string,
    ) -> None:
        super().__init__(config, probe, uptime=uptime)
        self.client = client
        self.archive_dir = archive_dir

    def _submit(self, record: TelemetryRecord) -> bool:
        return submit(self.client, record)

    def _submit_log(
        self, log: LogSpec, srcdir: Path | None, cls: str, event_id: str, severity: Severity
    ) -> None:
        """Submit every archived file whose name contains ``log.name``."""
        matches: list[Path] = []
        if srcdir is not None:
            try:
                matches = sorted(p for p in srcdir.iterdir() if log.name in p.name)
            except OSError as exc:
                logger.error(
                    "search (%s) in dir (%s) failed, error (%s)", log.name, srcdir, exc.strerror
                )
                return
            if not matches:
                logger.error("dir (%s) does not contains (%s)", srcdir, log.name)

        if not matches:
            payload = f"no log generated on {log.name}, check probe's log."
            self._submit(TelemetryRecord(severity, cls, payload, event_id))
            return

        for path in matches:
            self._submit(TelemetryRecord(severity, cls, str(path), event_id))

    async def on_crash(self, event: Event) -> None:
        crash = event.spec
        if not isinstance(crash, CrashSpec):
            raise ClassificationError(f"crash event ({event.path}) carries no crash spec")

        cls = f"{CLASS_PREFIX}/crash/{crash.name}"
        event_id = KeyGenerator.digest(cls)
        for log in crash.logs:
            self._submit_log(log, event.directory, cls, event_id, Severity.CRASH)

        if event.channel != INOTIFY_CHANNEL:
            return
        name = Path(event.path).name
        archived = event.directory / name if event.directory is not None else None
        if archived is not None and archived.exists():
            self._submit(crash_record(cls, str(archived), event_id))
            return

        original = trigger_file(crash, event)
        if original is None:
            logger.error("trigger file of (%s) is unavailable", crash.name)
            return
        logger.warning("(%s) unavailable, try the original path (%s)", archived, original)
        if not original.exists():
            logger.error("original path (%s) is unavailable", original)
            return
        self._submit(crash_record(cls, str(original), event_id))

    async def on_info(self, event: Event) -> None:
        info = event.spec
        if not isinstance(info, InfoSpec):
            raise ProbeError(f"info event ({event.path}) carries no info spec")

        cls = f"{CLASS_PREFIX}/info/{info.name}"
        event_id = KeyGenerator.digest(cls)
        for log in info.logs:
            self._submit_log(log, event.directory, cls, event_id, Severity.INFO)

    async def on_uptime(self, event: Event) -> None:
        text, reached = self.uptime_milestone()
        if not reached:
            return
        self._submit(info_record(f"{CLASS_PREFIX}/uptime/{text}", f"system boot time: {text}"))

    async def on_reboot(self, event: Event) -> None:
        if self.swupdated():
            self._submit(
                info_record(
                    f"{CLASS_PREFIX}/swupdate/-",
                    f"system update to: {self.probe.build_version}",
                )
            )

        reason = self.startup_reason()
        self._submit(info_record(f"{CLASS_PREFIX}/reboot/{reason}", "reboot"))

    async def on_vm_event(self, vm: VMDescriptor, vm_event: VMEvent) -> VMEventOutcome:
        severity = Severity.CRASH if vm_event.event == "CRASH" else Severity.INFO

        vmlogpath: Path | None = None
        log_ref = vm_event.log_ref
        if log_ref is not None:
            if self.archive_dir is None:
                return VMEventOutcome.HANDLED
            name = log_ref[len("/logs/"):]
            try:
                vmlogpath = find_dir(self.archive_dir, name)
            except OSError as exc:
                logger.error(
                    "find (%s) in (%s) failed, error (%s)", name, self.archive_dir, exc.strerror
                )
                return VMEventOutcome.DEFERRED

        cls = f"{vm.name}/{vm_event.event}/{vm_event.type}"
        event_id = KeyGenerator.digest(cls)

        def send(payload: str) -> bool:
            return self._submit(TelemetryRecord(severity, cls, payload, event_id))

        if vmlogpath is None:
            return VMEventOutcome.HANDLED if send("no logs") else VMEventOutcome.DEFERRED

        try:
            entries = sorted(e for e in os.listdir(vmlogpath) if not e.startswith("."))
        except OSError as exc:
            logger.error("lsdir (%s) failed, error (%s)", vmlogpath, exc.strerror)
            return VMEventOutcome.DEFERRED

        if not entries:
            ok = send(f"no logs under ({vmlogpath})")
            return VMEventOutcome.HANDLED if ok else VMEventOutcome.DEFERRED

        outcome = VMEventOutcome.HANDLED
        for entry in entries:
            if not send(str(vmlogpath / entry)):
                outcome = VMEventOutcome.DEFERRED
        return outcome

"""Local archive sender.

Every event becomes a history record; crash, info and VM events additionally
get a fresh directory holding the collected logs and a ``crashfile``
manifest. Nothing is written once the output directory reaches its quota.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable, Sequence
from pathlib import Path

from ..classifier import reclassify
from ..clock import uptime_string
from ..collector import LogCollector, copy_file
from ..errors import ClassificationError, CollectionError, GuestExtractError, ProbeError
from ..history import HistoryStore
from ..keys import KeyGenerator
from ..layout import LogDirMode, OutputLayout, write_manifest
from ..models import (
    CrashSpec,
    Event,
    InfoSpec,
    LogSpec,
    ProbeConfig,
    SenderConfig,
    VMDescriptor,
    VMEvent,
    VMEventOutcome,
)
from ..quota import QuotaGuard
from .base import INOTIFY_CHANNEL, Sender, trigger_file

logger = logging.getLogger(__name__)

SPACE_FULL = "SPACE_FULL"


class _SpaceGate:
    """Quota checks for one event; SPACE_FULL is raised at most once."""

    def __init__(self, sender: CrashlogSender) -> None:
        self._sender = sender
        self.full = False

    def ok(self) -> bool:
        if self.full:
            return False
        if self._sender.has_space():
            return True
        self.full = True
        self._sender.history.raise_info_error(SPACE_FULL)
        return False


def _remove_tree(path: Path) -> None:
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.error("remove (%s) failed, error (%s)", path, exc.strerror)


class CrashlogSender(Sender):
    """Archive events under the sender's output directory."""

    def __init__(
        self,
        config: SenderConfig,
        probe: ProbeConfig,
        *,
        keys: KeyGenerator,
        history: HistoryStore,
        collector: LogCollector | None = None,
        quota: QuotaGuard | None = None,
        uptime: Callable[[], tuple[str, int]] = uptime_string,
    ) -> None:
        super().__init__(config, probe, uptime=uptime)
        self.keys = keys
        self.history = history
        self.collector = collector or LogCollector(uptime=uptime)
        self.quota = quota or QuotaGuard()
        self.layout = OutputLayout(config.outdir, max_dirs=config.max_crash_dirs)

    def has_space(self) -> bool:
        return self.quota.has_space(self.config.outdir, self.config.quota)

    async def _collect_logs(self, logs: Sequence[LogSpec], directory: Path, gate: _SpaceGate) -> None:
        for log in logs:
            if not gate.ok():
                return
            await self.collector.collect(log, directory)

    async def _copy_trigger(self, spec: CrashSpec, event: Event) -> None:
        src = trigger_file(spec, event)
        if src is None or event.directory is None:
            return
        des = event.directory / Path(event.path).name
        try:
            await copy_file(src, des)
        except CollectionError as exc:
            logger.error("copy (%s) to (%s) failed: %s", src, des, exc)

    async def on_crash(self, event: Event) -> None:
        spec = event.spec
        if not isinstance(spec, CrashSpec):
            raise ClassificationError(f"crash event ({event.path}) carries no crash spec")

        result = reclassify(spec, trigger_file(spec, event))
        crash = result.crash
        # later senders see the specific class
        event.spec = crash
        key = self.keys.new_key("CRASH", crash.name)

        gate = _SpaceGate(self)
        inotify = event.channel == INOTIFY_CHANNEL
        if (crash.logs or inotify) and gate.ok():
            event.directory = self.layout.create_event_dir(LogDirMode.CRASH, key)
            write_manifest(event.directory, "CRASH", key, crash.name, *result.data)
            await self._collect_logs(crash.logs, event.directory, gate)
            if inotify and gate.ok():
                await self._copy_trigger(spec, event)

        self.history.raise_event("CRASH", crash.name, event.directory, "", key)

    async def on_info(self, event: Event) -> None:
        info = event.spec
        if not isinstance(info, InfoSpec):
            raise ProbeError(f"info event ({event.path}) carries no info spec")

        key = self.keys.new_key("INFO", info.name)
        gate = _SpaceGate(self)
        if info.logs and gate.ok():
            event.directory = self.layout.create_event_dir(LogDirMode.STATS, key)
            await self._collect_logs(info.logs, event.directory, gate)

        self.history.raise_event("INFO", info.name, event.directory, "", key)

    async def on_uptime(self, event: Event) -> None:
        text, reached = self.uptime_milestone()
        self.history.raise_uptime(text)
        if reached:
            key = self.keys.new_key("UPTIME", text)
            self.history.raise_event("UPTIME", text, None, "", key)

    async def on_reboot(self, event: Event) -> None:
        if self.swupdated():
            key = self.keys.new_key("INFO", "SWUPDATE")
            self.history.raise_event("INFO", "SWUPDATE", None, "", key)

        reason = self.startup_reason()
        key = self.keys.new_key("REBOOT", reason)
        self.history.raise_event("REBOOT", reason, None, "", key)

    async def on_vm_event(self, vm: VMDescriptor, vm_event: VMEvent) -> VMEventOutcome:
        if not _SpaceGate(self).ok():
            return VMEventOutcome.HANDLED

        try:
            key = self.keys.new_key("SOS", vm_event.vmkey)
            directory = self.layout.create_event_dir(LogDirMode.VMEVENT, key)
        except ProbeError as exc:
            logger.error("prepare vm event of (%s) failed: %s", vm.name, exc)
            return VMEventOutcome.DEFERRED

        log_ref = vm_event.log_ref
        if log_ref is not None:
            guest_path = log_ref.lstrip("/")
            try:
                vm.datafs.dump_dir(guest_path, directory)
            except GuestExtractError as exc:
                # partial dumps are not trusted
                _remove_tree(directory)
                if exc.recovered:
                    logger.error("dump (%s) abort at (%d): %s", guest_path, exc.recovered, exc)
                    return VMEventOutcome.DEFERRED
                logger.warning("(%s) is missing", guest_path)
                return VMEventOutcome.HANDLED

        try:
            write_manifest(
                directory, vm_event.event, key, vm_event.type, vm.name, vm_event.vmkey
            )
            self.history.raise_event(vm.name, vm_event.type, directory, "", key)
        except ProbeError as exc:
            logger.error("archive vm event of (%s) failed: %s", vm.name, exc)
            _remove_tree(directory)
            return VMEventOutcome.DEFERRED
        return VMEventOutcome.HANDLED

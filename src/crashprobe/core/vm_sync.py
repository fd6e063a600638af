"""Guest VM history synchronization.

A guest exposes its own event history; every line looks like::

    CRASH   xxxxxxxxxxxxxxxxxxxx  2017-11-11/03:12:59  JAVACRASH   /data/logs/crashlog0_xxxxxxxxxxxxxxxxxxxx
    REBOOT  xxxxxxxxxxxxxxxxxxxx  2011-11-11/11:20:51  POWER-ON    0000:00:00

One synchronization pass walks the whole log, hands every line whose vmkey is
not yet recorded to a sender's handler, and records the vmkey of each line the
handler reports HANDLED. DEFERRED lines stay unrecorded and are retried on the
next pass.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
import shutil
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import aiofiles

from .errors import GuestExtractError, StateError
from .models import VMDescriptor, VMEvent, VMEventOutcome

logger = logging.getLogger(__name__)

_WORD = r"[^ \t\r\n]+"
_SEP = r"[ \t]+"


VM_LINE_RE = re.compile(
    rf"^(?P<event>{_WORD}){_SEP}(?P<vmkey>{_WORD}){_SEP}(?P<longtime>{_WORD}){_SEP}"
    rf"(?P<type>{_WORD}){_SEP}(?P<rest>[^ \t\r\n].*?)[ \t]*$"
)

VMEventHandler = Callable[[VMDescriptor, VMEvent], Awaitable[VMEventOutcome]]


def parse_vm_event(line: str) -> VMEvent | None:
    """Parse one guest history line; None when it does not match the grammar."""
    m = VM_LINE_RE.match(line.rstrip("\r\n"))
    if not m:
        return None
    return VMEvent(
        event=m.group("event"),
        vmkey=m.group("vmkey"),
        longtime=m.group("longtime"),
        type=m.group("type"),
        rest=m.group("rest"),
    )


def line_record_id(line: str) -> str:
    """Identity of a line in the record file (the vmkey when present)."""
    event = parse_vm_event(line)
    if event is not None:
        return event.vmkey
    return "#" + hashlib.sha1(line.encode("utf-8", errors="ignore")).hexdigest()[:20]


class GuestFilesystem(Protocol):
    """Read access to a guest data partition, held for one pass."""

    def __enter__(self) -> GuestFilesystem:
        ...

    def __exit__(self, *exc_info: object) -> None:
        ...

    def dump_dir(self, guest_path: str, dest: Path) -> int:
        """Copy ``guest_path`` into ``dest/<basename>``; return files written.

        Raises GuestExtractError carrying the number of files recovered.
        """
        ...


def _reraise(exc: OSError) -> None:
    raise exc


class MountedGuestFilesystem:
    """Guest data partition mounted (or mirrored) under a host directory."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self._open = False

    def __enter__(self) -> MountedGuestFilesystem:
        if not self.root.is_dir():
            logger.warning("guest data root (%s) is not available", self.root)
        self._open = True
        return self

    def __exit__(self, *exc_info: object) -> None:
        self._open = False

    def dump_dir(self, guest_path: str, dest: Path) -> int:
        if not self._open:
            raise GuestExtractError("guest filesystem is not open")
        src = self.root / guest_path.lstrip("/")
        if not src.is_dir():
            raise GuestExtractError(f"({guest_path}) is missing", recovered=0)

        target = dest / src.name
        count = 0
        try:
            target.mkdir(parents=True, exist_ok=True)
            for root, dirs, files in os.walk(src, onerror=_reraise):
                dirs.sort()
                rel = Path(root).relative_to(src)
                (target / rel).mkdir(parents=True, exist_ok=True)
                for name in sorted(files):
                    shutil.copyfile(Path(root) / name, target / rel / name)
                    count += 1
        except OSError as exc:
            raise GuestExtractError(
                f"dump ({guest_path}) abort at ({count}): {exc.strerror}", recovered=count
            ) from exc
        return count


class VMRecordStore:
    """The persisted cursor: one ``<vm> <record-id>`` line per handled line."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self, vm_name: str) -> set[str]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return set()
        except OSError as exc:
            raise StateError(f"read records ({self.path}) failed, error ({exc.strerror})") from exc
        out: set[str] = set()
        for raw in text.splitlines():
            parts = raw.split()
            if len(parts) == 2 and parts[0] == vm_name:
                out.add(parts[1])
        return out

    def record(self, vm_name: str, record_id: str) -> None:
        try:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(f"{vm_name} {record_id}\n")
        except OSError as exc:
            raise StateError(f"record ({self.path}) failed, error ({exc.strerror})") from exc


@dataclass(slots=True)
class SyncReport:
    handled: int = 0
    deferred: int = 0
    skipped: int = 0


class VMEventSync:
    """Drive one sender's VM handler over every unsynced guest history line."""

    def __init__(self, records: VMRecordStore) -> None:
        self.records = records

    async def _read_lines(self, path: Path) -> list[str]:
        async with aiofiles.open(path, encoding="utf-8", errors="replace") as f:
            return [line.rstrip("\r\n") async for line in f]

    async def refresh(self, vm: VMDescriptor, handler: VMEventHandler) -> SyncReport:
        """Run one synchronization pass for ``vm``."""
        report = SyncReport()
        try:
            lines = await self._read_lines(vm.history_path)
        except OSError as exc:
            logger.error("read history of (%s) at (%s) failed: %s", vm.name, vm.history_path, exc)
            return report

        synced = self.records.load(vm.name)
        with vm.datafs:
            for line in lines:
                if not line.strip() or line.startswith("#"):
                    continue
                record_id = line_record_id(line)
                if record_id in synced:
                    report.skipped += 1
                    continue

                event = parse_vm_event(line)
                if event is None:
                    logger.error("get an invalid line from (%s), skip", vm.name)
                    outcome = VMEventOutcome.HANDLED
                else:
                    outcome = await handler(vm, event)

                if outcome == VMEventOutcome.DEFERRED:
                    logger.info("deferred (%s) line %s", vm.name, record_id)
                    report.deferred += 1
                    continue

                try:
                    self.records.record(vm.name, record_id)
                except StateError as exc:
                    logger.error("%s", exc)
                synced.add(record_id)
                report.handled += 1

        logger.debug(
            "synced (%s): handled=%d deferred=%d skipped=%d",
            vm.name,
            report.handled,
            report.deferred,
            report.skipped,
        )
        return report

"""Core data models for the probe pipeline."""

from __future__ import annotations

import re
import shlex
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from .vm_sync import GuestFilesystem

# "[*]/var/log/foo*" (every match) or "[-1]/var/log/foo*" (newest match)
CONFIG_PATTERN_RE = re.compile(r"^\[(?P<select>\*|-1)\](?P<path>/.+)$")


class EventType(str, Enum):
    """Kinds of events produced by the (external) detectors."""

    CRASH = "CRASH"
    INFO = "INFO"
    UPTIME = "UPTIME"
    REBOOT = "REBOOT"
    VM = "VM"


class LogKind(str, Enum):
    """Collection strategy of a log descriptor."""

    FILE = "file"
    NODE = "node"
    CMD = "cmd"


class Severity(IntEnum):
    """Telemetry record severities."""

    INFO = 2
    CRASH = 4


class VMEventOutcome(str, Enum):
    """Result of handling one guest history line.

    HANDLED lines are recorded and never revisited; DEFERRED lines are retried
    on the next synchronization pass.
    """

    HANDLED = "HANDLED"
    DEFERRED = "DEFERRED"


@dataclass(frozen=True, slots=True)
class LogSpec:
    """One diagnostic artifact to collect and how to collect it."""

    name: str
    kind: LogKind
    path: str
    lines: int | None = None  # FILE only: tail this many lines

    @property
    def is_pattern(self) -> bool:
        return CONFIG_PATTERN_RE.match(self.path) is not None

    @property
    def argv(self) -> list[str]:
        """Command line of a CMD log, split without shell interpolation."""
        return shlex.split(self.path)


@dataclass(frozen=True, slots=True)
class TriggerSpec:
    """Where the file that triggered a crash/info event lives."""

    kind: str  # "dir" or "file"
    path: str


@dataclass(frozen=True, slots=True)
class Reclassification:
    """A reclassified crash plus up to three auxiliary fields."""

    crash: CrashSpec
    data0: str | None = None
    data1: str | None = None
    data2: str | None = None

    @property
    def data(self) -> tuple[str | None, str | None, str | None]:
        return self.data0, self.data1, self.data2


class Reclassifier(Protocol):
    """Turn a generic crash into a specific one by inspecting its trigger file."""

    def __call__(self, crash: CrashSpec, trigger_file: Path | None) -> Reclassification:
        ...


@dataclass(frozen=True, slots=True)
class CrashSpec:
    """A crash class and the logs associated with it."""

    name: str
    logs: tuple[LogSpec, ...] = ()
    trigger: TriggerSpec | None = None
    reclassify: Reclassifier | None = field(default=None, compare=False)
    children: tuple[CrashSpec, ...] = ()
    contents: tuple[str, ...] = ()
    might_contents: tuple[str, ...] = ()
    data_patterns: tuple[str, ...] = ()  # at most three, see Reclassification


@dataclass(frozen=True, slots=True)
class InfoSpec:
    """An informational event class and the logs associated with it."""

    name: str
    logs: tuple[LogSpec, ...] = ()
    trigger: TriggerSpec | None = None


@dataclass(slots=True)
class Event:
    """A detected event travelling through every sender.

    Senders fill in ``directory`` once an output directory exists and replace
    ``spec`` when a crash gets reclassified, so later senders see both.
    """

    type: EventType
    channel: str
    path: str = ""
    directory: Path | None = None
    spec: CrashSpec | InfoSpec | None = None


@dataclass(frozen=True, slots=True)
class UptimeConfig:
    path: Path
    event_hours: int


@dataclass(frozen=True, slots=True)
class SenderConfig:
    """Static configuration of one sender."""

    name: str
    outdir: Path
    quota: int  # bytes
    max_crash_dirs: int = 1000
    uptime: UptimeConfig | None = None
    spool_dir: Path | None = None  # telemetry spool, telemd only

    @property
    def vm_record_path(self) -> Path:
        return self.outdir / "VM_eventsID.log"


@dataclass(frozen=True, slots=True)
class VMDescriptor:
    """A guest VM whose history log is synchronized."""

    name: str
    datafs: GuestFilesystem
    history_path: Path


@dataclass(frozen=True, slots=True)
class VMEvent:
    """One parsed line of a guest history log."""

    event: str
    vmkey: str
    longtime: str
    type: str
    rest: str

    @property
    def log_ref(self) -> str | None:
        """The ``/logs/...`` reference embedded in ``rest``, if any."""
        idx = self.rest.find("/logs/")
        if idx < 0:
            return None
        return self.rest[idx:].split()[0]


@dataclass(frozen=True, slots=True)
class TelemetryRecord:
    """One record handed to the telemetry client."""

    severity: Severity
    cls: str
    payload: str
    event_id: str | None = None


@dataclass(frozen=True, slots=True)
class ProbeConfig:
    """Immutable configuration value built once at startup."""

    senders: tuple[SenderConfig, ...] = ()
    crashes: tuple[CrashSpec, ...] = ()
    infos: tuple[InfoSpec, ...] = ()
    vms: tuple[VMDescriptor, ...] = ()
    build_version: str = "unknown"
    startup_reason_path: Path | None = None

    def sender(self, name: str) -> SenderConfig | None:
        return next((s for s in self.senders if s.name == name), None)

    def crash(self, name: str) -> CrashSpec | None:
        return next((c for c in self.crashes if c.name == name), None)

    def info(self, name: str) -> InfoSpec | None:
        return next((i for i in self.infos if i.name == name), None)

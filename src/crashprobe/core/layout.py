"""On-disk layout of archived events.

Every archived event gets a fresh directory ``<outdir>/<mode><slot>_<key>``.
Slots rotate through ``max_dirs`` values per mode; reusing a slot removes the
directory that previously occupied it.
"""

from __future__ import annotations

import logging
import shutil
from datetime import datetime
from enum import Enum
from pathlib import Path

from .errors import ProbeError
from .keys import CounterStore

logger = logging.getLogger(__name__)

MANIFEST_NAME = "crashfile"


class LogDirMode(str, Enum):
    CRASH = "crashlog"
    STATS = "stats"
    VMEVENT = "vmevent"


class OutputLayout:
    """Allocate per-event directories inside a sender's output directory."""

    def __init__(self, outdir: str | Path, *, max_dirs: int = 1000) -> None:
        if max_dirs < 1:
            raise ValueError("max_dirs must be >= 1")
        self.outdir = Path(outdir)
        self.max_dirs = max_dirs

    def _next_slot(self, mode: LogDirMode) -> int:
        counter = CounterStore(self.outdir / f".{mode.value}_slot")
        return (counter.next() - 1) % self.max_dirs

    def create_event_dir(self, mode: LogDirMode, key: str) -> Path:
        """Create a fresh, empty directory for one event."""
        slot = self._next_slot(mode)
        for stale in self.outdir.glob(f"{mode.value}{slot}_*"):
            logger.debug("recycling (%s)", stale)
            try:
                shutil.rmtree(stale)
            except OSError as exc:
                logger.warning("remove (%s) failed, error (%s)", stale, exc.strerror)

        path = self.outdir / f"{mode.value}{slot}_{key}"
        try:
            path.mkdir(parents=True)
        except OSError as exc:
            raise ProbeError(f"generate log dir ({path}) failed, error ({exc.strerror})") from exc
        return path


def write_manifest(
    directory: Path,
    event: str,
    key: str,
    type_: str,
    data0: str | None = None,
    data1: str | None = None,
    data2: str | None = None,
    *,
    now: datetime | None = None,
) -> Path:
    """Write the ``crashfile`` describing an archived event."""
    now = now or datetime.now()
    lines = [
        f"EVENT={event}",
        f"ID={key}",
        f"DATE={now.strftime('%Y-%m-%d/%H:%M:%S')}",
        f"TYPE={type_}",
    ]
    for i, value in enumerate((data0, data1, data2)):
        if value:
            lines.append(f"DATA{i}={value}")
    lines.append("_END")

    path = directory / MANIFEST_NAME
    try:
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    except OSError as exc:
        raise ProbeError(f"write manifest ({path}) failed, error ({exc.strerror})") from exc
    return path

"""Append-only history of archived events."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Protocol

from .errors import ProbeError
from .keys import KeyGenerator

logger = logging.getLogger(__name__)

HISTORY_NAME = "history_event"
HISTORY_VERSION = "#V1.0"
_UPTIME_HEADER = f"{HISTORY_VERSION} CURRENTUPTIME   "
_COLUMNS_HEADER = "#EVENT  ID                    DATE                 TYPE"


class HistoryStore(Protocol):
    """Structured record sink; the pipeline never reads it back."""

    def raise_event(
        self, event: str, cls: str, directory: Path | None, extra: str, key: str
    ) -> None:
        ...

    def raise_info_error(self, code: str) -> None:
        ...

    def raise_uptime(self, uptime: str) -> None:
        ...


def format_record(
    event: str, key: str, date: str, cls: str, directory: Path | None, extra: str = ""
) -> str:
    """One fixed-column history line."""
    line = f"{event:<8}{key:<22}{date:<20} {cls:<16} {directory or ''}"
    if extra:
        line = f"{line} {extra}"
    return line.rstrip() + "\n"


class FileHistoryStore:
    """History kept in a text file inside the local sender's outdir."""

    def __init__(
        self,
        path: str | Path,
        keys: KeyGenerator,
        *,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.path = Path(path)
        self.keys = keys
        self._now = now

    def prepare(self) -> None:
        """Create the file with its headers unless it already exists."""
        if self.path.is_file():
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            f"{_UPTIME_HEADER}0000:00:00\n{_COLUMNS_HEADER}\n", encoding="utf-8"
        )

    def _append(self, line: str) -> None:
        try:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line)
        except OSError as exc:
            raise ProbeError(f"write history ({self.path}) failed, error ({exc.strerror})") from exc

    def _date(self) -> str:
        return self._now().strftime("%Y-%m-%d/%H:%M:%S")

    def raise_event(
        self, event: str, cls: str, directory: Path | None, extra: str, key: str
    ) -> None:
        logger.info("history: %s %s (%s) key=%s", event, cls, directory or "-", key)
        self._append(format_record(event, key, self._date(), cls, directory, extra))

    def raise_info_error(self, code: str) -> None:
        key = self.keys.new_key("ERROR", code)
        logger.warning("history: ERROR %s key=%s", code, key)
        self._append(format_record("ERROR", key, self._date(), code, None))

    def raise_uptime(self, uptime: str) -> None:
        """Refresh the CURRENTUPTIME header in place."""
        try:
            lines = self.path.read_text(encoding="utf-8").splitlines(keepends=True)
        except FileNotFoundError:
            self.prepare()
            lines = self.path.read_text(encoding="utf-8").splitlines(keepends=True)
        except OSError as exc:
            raise ProbeError(f"read history ({self.path}) failed, error ({exc.strerror})") from exc

        header = f"{_UPTIME_HEADER}{uptime}\n"
        if lines and lines[0].startswith(_UPTIME_HEADER):
            lines[0] = header
        else:
            lines.insert(0, header)
        try:
            self.path.write_text("".join(lines), encoding="utf-8")
        except OSError as exc:
            raise ProbeError(f"write history ({self.path}) failed, error ({exc.strerror})") from exc

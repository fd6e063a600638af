"""Crash reclassification by trigger file content."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from .errors import ClassificationError
from .models import CrashSpec, Reclassification

logger = logging.getLogger(__name__)

MAX_DATA_FIELDS = 3


def _read_trigger(trigger_file: Path | None) -> str:
    if trigger_file is None:
        raise ClassificationError("no trigger file to inspect")
    try:
        return trigger_file.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        raise ClassificationError(
            f"read trigger ({trigger_file}) failed, error ({exc.strerror})"
        ) from exc


def matches_content(crash: CrashSpec, text: str) -> bool:
    """All ``contents`` present and, when given, any of ``might_contents``."""
    if not crash.contents and not crash.might_contents:
        return False
    if not all(c in text for c in crash.contents):
        return False
    if crash.might_contents and not any(c in text for c in crash.might_contents):
        return False
    return True


def extract_data(patterns: tuple[str, ...], text: str) -> list[str | None]:
    """Search each pattern; group 1 (or the whole match) fills a field."""
    out: list[str | None] = [None] * MAX_DATA_FIELDS
    for i, pattern in enumerate(patterns[:MAX_DATA_FIELDS]):
        try:
            m = re.search(pattern, text, re.MULTILINE)
        except re.error as exc:
            raise ClassificationError(f"bad data pattern {pattern!r}: {exc}") from exc
        if m is None:
            continue
        out[i] = (m.group(1) if m.groups() else m.group(0)).strip()
    return out


class ContentReclassifier:
    """Descend into the first child whose content matches the trigger file."""

    def __call__(self, crash: CrashSpec, trigger_file: Path | None) -> Reclassification:
        text = _read_trigger(trigger_file)

        current = crash
        while True:
            child = next((c for c in current.children if matches_content(c, text)), None)
            if child is None:
                break
            current = child

        if current is not crash:
            logger.info("reclassified crash (%s) as (%s)", crash.name, current.name)

        data0, data1, data2 = extract_data(current.data_patterns, text)
        return Reclassification(crash=current, data0=data0, data1=data1, data2=data2)


def reclassify(crash: CrashSpec, trigger_file: Path | None) -> Reclassification:
    """Apply the crash's reclassifier, or return it unchanged if it has none."""
    if crash.reclassify is None:
        return Reclassification(crash=crash)
    return crash.reclassify(crash, trigger_file)

"""Deduplication keys and telemetry event ids."""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path

from .errors import KeyGenerationError

logger = logging.getLogger(__name__)

KEY_LENGTH = 20
EVENT_ID_LENGTH = 32


class CounterStore:
    """A monotonically increasing counter persisted in a small text file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def current(self) -> int:
        try:
            raw = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return 0
        except OSError as exc:
            raise KeyGenerationError(f"read counter ({self.path}) failed: {exc.strerror}") from exc
        try:
            return int(raw or 0)
        except ValueError as exc:
            raise KeyGenerationError(f"corrupt counter in ({self.path}): {raw!r}") from exc

    def ensure(self) -> None:
        """Create the counter file at zero if it does not exist yet."""
        if self.path.exists():
            return
        try:
            self.path.write_text("0\n", encoding="utf-8")
        except OSError as exc:
            raise KeyGenerationError(f"create counter ({self.path}) failed: {exc.strerror}") from exc

    def next(self) -> int:
        """Advance the counter and persist it before returning the new value."""
        value = self.current() + 1
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            tmp.write_text(f"{value}\n", encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as exc:
            raise KeyGenerationError(f"write counter ({self.path}) failed: {exc.strerror}") from exc
        return value


class KeyGenerator:
    """Derive archival keys and telemetry event ids."""

    def __init__(self, counter: CounterStore) -> None:
        self.counter = counter

    def new_key(self, label: str, cls: str) -> str:
        """Return a key unique to this call, even for identical inputs."""
        seq = self.counter.next()
        h = hashlib.sha256(f"{label}/{cls}/{seq}".encode("utf-8", errors="ignore"))
        key = h.hexdigest()[:KEY_LENGTH]
        logger.debug("new key %s for (%s, %s) seq=%d", key, label, cls, seq)
        return key

    @staticmethod
    def digest(cls: str) -> str:
        """Deterministic fixed-length id for a class string."""
        return hashlib.sha256(cls.encode("utf-8", errors="ignore")).hexdigest()[:EVENT_ID_LENGTH]

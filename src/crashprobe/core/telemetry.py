"""Telemetry submission adapter.

The client API mirrors the record lifecycle of the remote service:
create -> (set_event_id) -> set_payload -> send, with ``release`` on every
exit path.
"""

from __future__ import annotations

import itertools
import logging
import uuid
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, Field

from .errors import TelemetryError
from .models import Severity, TelemetryRecord

logger = logging.getLogger(__name__)

RECORD_VERSION = 1


class TelemetryClient(Protocol):
    def create_record(self, severity: int, cls: str, version: int) -> Any:
        ...

    def set_event_id(self, handle: Any, event_id: str) -> None:
        ...

    def set_payload(self, handle: Any, payload: str) -> None:
        ...

    def send(self, handle: Any) -> None:
        ...

    def release(self, handle: Any) -> None:
        ...


class NullTelemetryClient:
    """Used when the telemetry capability is disabled: every record fails."""

    def create_record(self, severity: int, cls: str, version: int) -> Any:
        raise TelemetryError("telemetry capability is disabled")

    def set_event_id(self, handle: Any, event_id: str) -> None:
        raise TelemetryError("telemetry capability is disabled")

    def set_payload(self, handle: Any, payload: str) -> None:
        raise TelemetryError("telemetry capability is disabled")

    def send(self, handle: Any) -> None:
        raise TelemetryError("telemetry capability is disabled")

    def release(self, handle: Any) -> None:
        return None


class SpooledRecord(BaseModel):
    """Record document written to the spool for an out-of-process uploader."""

    severity: int = Field(ge=1, le=4)
    classification: str
    version: int = RECORD_VERSION
    event_id: str | None = Field(default=None, max_length=32)
    payload: str = ""


class SpoolTelemetryClient:
    """Write each sent record as one JSON document into ``spool_dir``."""

    def __init__(self, spool_dir: str | Path) -> None:
        self.spool_dir = Path(spool_dir)
        self._records: dict[int, SpooledRecord] = {}
        self._handles = itertools.count(1)

    def _get(self, handle: int) -> SpooledRecord:
        try:
            return self._records[handle]
        except KeyError as exc:
            raise TelemetryError(f"unknown record handle {handle}") from exc

    def create_record(self, severity: int, cls: str, version: int) -> int:
        if not 1 <= severity <= 4:
            raise TelemetryError(f"invalid severity {severity}")
        handle = next(self._handles)
        self._records[handle] = SpooledRecord(
            severity=severity, classification=cls, version=version
        )
        return handle

    def set_event_id(self, handle: int, event_id: str) -> None:
        if len(event_id) != 32:
            raise TelemetryError(f"event id must be 32 characters, got {len(event_id)}")
        record = self._get(handle)
        self._records[handle] = record.model_copy(update={"event_id": event_id})

    def set_payload(self, handle: int, payload: str) -> None:
        record = self._get(handle)
        self._records[handle] = record.model_copy(update={"payload": payload})

    def send(self, handle: int) -> None:
        record = self._get(handle)
        path = self.spool_dir / f"{uuid.uuid4().hex}.json"
        try:
            self.spool_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(record.model_dump_json(), encoding="utf-8")
        except OSError as exc:
            raise TelemetryError(f"spool ({path}) failed, error ({exc.strerror})") from exc

    def release(self, handle: int) -> None:
        self._records.pop(handle, None)


def submit(client: TelemetryClient, record: TelemetryRecord) -> bool:
    """Push one record through ``client``; False (logged) on any failure."""
    handle = None
    try:
        handle = client.create_record(int(record.severity), record.cls, RECORD_VERSION)
        if record.event_id:
            client.set_event_id(handle, record.event_id)
        client.set_payload(handle, record.payload)
        client.send(handle)
    except TelemetryError as exc:
        logger.error("failed to submit record (%s): %s", record.cls, exc)
        return False
    finally:
        if handle is not None:
            client.release(handle)
    return True


def crash_record(cls: str, payload: str, event_id: str | None = None) -> TelemetryRecord:
    return TelemetryRecord(severity=Severity.CRASH, cls=cls, payload=payload, event_id=event_id)


def info_record(cls: str, payload: str, event_id: str | None = None) -> TelemetryRecord:
    return TelemetryRecord(severity=Severity.INFO, cls=cls, payload=payload, event_id=event_id)

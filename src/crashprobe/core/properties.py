"""Per-sender property store and host boot facts."""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, ValidationError

from .errors import StateError

logger = logging.getLogger(__name__)

PROPERTIES_NAME = "properties.json"
UNKNOWN_REASON = "UNKNOWN"


class SenderProperties(BaseModel):
    build_version: str


class PropertyStore:
    """Remember the build version each sender last ran under."""

    def __init__(self, outdir: str | Path) -> None:
        self.path = Path(outdir) / PROPERTIES_NAME

    def load(self) -> SenderProperties | None:
        try:
            return SenderProperties.model_validate_json(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StateError(f"read properties ({self.path}) failed, error ({exc.strerror})") from exc
        except ValidationError as exc:
            logger.warning("ignoring corrupt properties (%s): %s", self.path, exc)
            return None

    def save(self, props: SenderProperties) -> None:
        try:
            self.path.write_text(props.model_dump_json(), encoding="utf-8")
        except OSError as exc:
            raise StateError(f"write properties ({self.path}) failed, error ({exc.strerror})") from exc

    def initialize(self, build_version: str) -> None:
        """Seed the store on first activation; raises StateError if unusable."""
        if self.load() is None:
            self.save(SenderProperties(build_version=build_version))

    def swupdated(self, build_version: str) -> bool:
        """True once after the running build differs from the stored one."""
        props = self.load()
        if props is not None and props.build_version == build_version:
            return False
        try:
            self.save(SenderProperties(build_version=build_version))
        except StateError as exc:
            logger.error("%s", exc)
        return props is not None


def read_startup_reason(path: str | Path | None) -> str:
    """Reason of the last boot as exported by firmware/kernel, if available."""
    if path is None:
        return UNKNOWN_REASON
    try:
        reason = Path(path).read_text(encoding="utf-8", errors="replace").strip()
    except OSError as exc:
        logger.warning("read startup reason (%s) failed, error (%s)", path, exc.strerror)
        return UNKNOWN_REASON
    return reason.split()[0] if reason else UNKNOWN_REASON

"""Exception hierarchy for the probe pipeline."""

from __future__ import annotations


class ProbeError(Exception):
    """Base class for every non-fatal pipeline failure."""


class CollectionError(ProbeError):
    """A single artifact could not be copied, drained or captured."""


class ClassificationError(ProbeError):
    """A crash could not be reclassified from its trigger file."""


class KeyGenerationError(ProbeError):
    """The durable event counter could not be advanced."""


class TelemetryError(ProbeError):
    """A telemetry client call failed."""


class GuestExtractError(ProbeError):
    """Dumping a directory out of a guest filesystem failed.

    ``recovered`` is the number of files written before the failure; zero
    means nothing existed to extract.
    """

    def __init__(self, message: str, *, recovered: int = 0) -> None:
        super().__init__(message)
        self.recovered = recovered


class StateError(ProbeError):
    """Persisted sender state (sync cursor, properties) could not be read or written."""


class SenderActivationError(Exception):
    """Fatal: a sender could not be brought up (outdir, properties, history)."""

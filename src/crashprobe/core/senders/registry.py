"""Sender registry and activation."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator

from ..clock import uptime_string
from ..collector import LogCollector
from ..errors import KeyGenerationError, SenderActivationError, StateError
from ..history import HISTORY_NAME, FileHistoryStore
from ..keys import CounterStore, KeyGenerator
from ..models import ProbeConfig, SenderConfig
from ..properties import PropertyStore
from ..quota import QuotaGuard
from ..telemetry import NullTelemetryClient, SpoolTelemetryClient, TelemetryClient
from .base import Sender
from .crashlog import CrashlogSender
from .telemd import TelemdSender

logger = logging.getLogger(__name__)

LOCAL_SENDER = "crashlog"
TELEMETRY_SENDER = "telemd"
EVENT_COUNTER_NAME = ".event_counter"


class SenderRegistry:
    """Senders in configuration order."""

    def __init__(self, senders: Iterable[Sender] = ()) -> None:
        self._senders: list[Sender] = list(senders)

    def __iter__(self) -> Iterator[Sender]:
        return iter(self._senders)

    def __len__(self) -> int:
        return len(self._senders)

    def get(self, name: str) -> Sender | None:
        return next((s for s in self._senders if s.name == name), None)


def _prepare_outdir(config: SenderConfig, build_version: str) -> None:
    try:
        config.outdir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise SenderActivationError(
            f"mkdir ({config.outdir}) failed, error ({exc.strerror})"
        ) from exc

    try:
        PropertyStore(config.outdir).initialize(build_version)
    except StateError as exc:
        raise SenderActivationError(f"init properties of ({config.name}) failed: {exc}") from exc

    # the uptime detector watches this file, it has to exist
    if config.uptime is not None:
        try:
            config.uptime.path.parent.mkdir(parents=True, exist_ok=True)
            config.uptime.path.touch(exist_ok=True)
        except OSError as exc:
            raise SenderActivationError(
                f"open ({config.uptime.path}) failed, error ({exc.strerror})"
            ) from exc


def activate_senders(
    probe: ProbeConfig,
    *,
    telemetry_client: TelemetryClient | None = None,
    collector: LogCollector | None = None,
    quota: QuotaGuard | None = None,
    uptime: Callable[[], tuple[str, int]] = uptime_string,
) -> SenderRegistry:
    """Bring up every configured sender; raises SenderActivationError."""
    local = probe.sender(LOCAL_SENDER)
    senders: list[Sender] = []

    for config in probe.senders:
        _prepare_outdir(config, probe.build_version)

        if config.name == LOCAL_SENDER:
            counter = CounterStore(config.outdir / EVENT_COUNTER_NAME)
            keys = KeyGenerator(counter)
            history = FileHistoryStore(config.outdir / HISTORY_NAME, keys)
            # seeded here, not on the first event
            try:
                counter.ensure()
                history.prepare()
            except (OSError, KeyGenerationError) as exc:
                raise SenderActivationError(
                    f"prepare history ({history.path}) failed: {exc}"
                ) from exc
            senders.append(
                CrashlogSender(
                    config,
                    probe,
                    keys=keys,
                    history=history,
                    collector=collector,
                    quota=quota,
                    uptime=uptime,
                )
            )
        elif config.name == TELEMETRY_SENDER:
            client = telemetry_client
            if client is None:
                if config.spool_dir is not None:
                    client = SpoolTelemetryClient(config.spool_dir)
                else:
                    client = NullTelemetryClient()
            senders.append(
                TelemdSender(
                    config,
                    probe,
                    client=client,
                    archive_dir=local.outdir if local is not None else None,
                    uptime=uptime,
                )
            )
        else:
            logger.warning("unknown sender (%s), ignored", config.name)
            continue
        logger.info("sender (%s) active, outdir=%s", config.name, config.outdir)

    return SenderRegistry(senders)

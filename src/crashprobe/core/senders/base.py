"""Sender base class: one coroutine per event type."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from pathlib import Path

from ..clock import UptimeMilestones, uptime_string
from ..models import (
    CrashSpec,
    Event,
    EventType,
    InfoSpec,
    ProbeConfig,
    SenderConfig,
    VMDescriptor,
    VMEvent,
    VMEventOutcome,
)
from ..properties import PropertyStore, read_startup_reason
from ..vm_sync import VMEventSync, VMRecordStore

logger = logging.getLogger(__name__)

INOTIFY_CHANNEL = "inotify"


def trigger_file(spec: CrashSpec | InfoSpec, event: Event) -> Path | None:
    """Path of the file that triggered ``event``, if its class declares a trigger."""
    trigger = spec.trigger
    if trigger is None:
        return None
    if trigger.kind == "dir":
        return Path(trigger.path) / event.path
    return Path(trigger.path)


class Sender(ABC):
    """A configured destination for processed events."""

    def __init__(
        self,
        config: SenderConfig,
        probe: ProbeConfig,
        *,
        uptime: Callable[[], tuple[str, int]] = uptime_string,
    ) -> None:
        self.config = config
        self.probe = probe
        self._uptime = uptime
        self.properties = PropertyStore(config.outdir)
        self.vm_sync = VMEventSync(VMRecordStore(config.vm_record_path))
        self._milestones = (
            UptimeMilestones(config.uptime.event_hours) if config.uptime is not None else None
        )
        self._handlers: dict[EventType, Callable[[Event], Awaitable[None]]] = {
            EventType.CRASH: self.on_crash,
            EventType.INFO: self.on_info,
            EventType.UPTIME: self.on_uptime,
            EventType.REBOOT: self.on_reboot,
            EventType.VM: self.on_vm,
        }

    @property
    def name(self) -> str:
        return self.config.name

    async def send(self, event: Event) -> None:
        """Run the handler registered for ``event.type``."""
        handler = self._handlers.get(event.type)
        if handler is None:
            logger.error("unsupported event type %r", event.type)
            return
        await handler(event)

    def uptime_milestone(self) -> tuple[str, bool]:
        """Current uptime string and whether a new milestone was crossed."""
        text, hours = self._uptime()
        if self._milestones is None:
            return text, False
        return text, self._milestones.reached(hours)

    def swupdated(self) -> bool:
        return self.properties.swupdated(self.probe.build_version)

    def startup_reason(self) -> str:
        return read_startup_reason(self.probe.startup_reason_path)

    async def on_vm(self, event: Event) -> None:
        """Synchronize every configured guest's history."""
        for vm in self.probe.vms:
            await self.vm_sync.refresh(vm, self.on_vm_event)

    @abstractmethod
    async def on_crash(self, event: Event) -> None:
        ...

    @abstractmethod
    async def on_info(self, event: Event) -> None:
        ...

    @abstractmethod
    async def on_uptime(self, event: Event) -> None:
        ...

    @abstractmethod
    async def on_reboot(self, event: Event) -> None:
        ...

    @abstractmethod
    async def on_vm_event(self, vm: VMDescriptor, vm_event: VMEvent) -> VMEventOutcome:
        ...

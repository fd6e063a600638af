"""Event dispatch: fan one detected event out to every sender."""

from __future__ import annotations

import asyncio
import logging

from .errors import ProbeError
from .models import Event, EventType, ProbeConfig
from .senders import SenderRegistry, activate_senders

logger = logging.getLogger(__name__)


class EventDispatcher:
    """Route events to each sender's handler, one event at a time."""

    def __init__(self, senders: SenderRegistry) -> None:
        self.senders = senders
        self._lock = asyncio.Lock()

    async def dispatch(self, event: Event) -> None:
        """Run every sender's handler for ``event`` in configuration order.

        A failing sender is logged and does not keep the others from running.
        """
        if not isinstance(event.type, EventType):
            logger.error("unsupported event type %r", event.type)
            return

        async with self._lock:
            logger.debug("dispatching %s event (%s) via %s", event.type.value, event.path, event.channel)
            for sender in self.senders:
                try:
                    await sender.send(event)
                except ProbeError as exc:
                    logger.error(
                        "sender (%s) failed on %s event: %s", sender.name, event.type.value, exc
                    )


def build_dispatcher(probe: ProbeConfig, **activate_kwargs) -> EventDispatcher:
    """Activate the configured senders and wrap them in a dispatcher."""
    return EventDispatcher(activate_senders(probe, **activate_kwargs))


def make_event(
    probe: ProbeConfig,
    event_type: EventType,
    *,
    name: str | None = None,
    path: str = "",
    channel: str = "manual",
) -> Event:
    """Build an event the way a detector would, resolving ``name`` to its spec."""
    spec = None
    if event_type == EventType.CRASH:
        spec = probe.crash(name or "")
        if spec is None:
            raise ValueError(f"Unknown crash class '{name}'.")
    elif event_type == EventType.INFO:
        spec = probe.info(name or "")
        if spec is None:
            raise ValueError(f"Unknown info class '{name}'.")
    return Event(type=event_type, channel=channel, path=path, spec=spec)

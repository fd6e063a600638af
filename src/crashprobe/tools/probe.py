"""MCP tool implementations.

Keep this layer thin: validate inputs, translate them into core calls, and
return JSON-serializable data structures.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from crashprobe.core.config import load_config, resolve_config_path
from crashprobe.core.dispatcher import EventDispatcher, build_dispatcher, make_event
from crashprobe.core.models import EventType, ProbeConfig

ALL_EVENT_TYPES = [t.value for t in EventType]

_RUNTIMES: dict[Path, tuple[ProbeConfig, EventDispatcher]] = {}


def _parse_event_type(event_type: str) -> EventType:
    name = event_type.strip().upper()
    try:
        return EventType[name]
    except KeyError as e:
        valid = ", ".join(ALL_EVENT_TYPES)
        raise ValueError(
            f"Unknown event type '{event_type}'. Valid values: {valid}. "
            "Tip: event_type is case-insensitive (e.g., 'crash', 'INFO')."
        ) from e


def get_runtime(config_path: str | None = None) -> tuple[ProbeConfig, EventDispatcher]:
    """Load the config and activate senders once per config file."""
    key = resolve_config_path(config_path).resolve()
    if key not in _RUNTIMES:
        probe = load_config(key)
        _RUNTIMES[key] = (probe, build_dispatcher(probe))
    return _RUNTIMES[key]


def reset_runtimes() -> None:
    _RUNTIMES.clear()


async def dispatch_event_impl(
    *,
    event_type: str,
    name: str | None = None,
    path: str = "",
    channel: str = "manual",
    config_path: str | None = None,
) -> dict[str, Any]:
    """Implementation for the `dispatch_event` MCP tool."""
    etype = _parse_event_type(event_type)
    if etype == EventType.VM:
        raise ValueError("Use sync_vm_events for VM events.")
    if etype in (EventType.CRASH, EventType.INFO) and not name:
        raise ValueError(f"name is required for {etype.value} events.")

    probe, dispatcher = get_runtime(config_path)
    event = make_event(probe, etype, name=name, path=path, channel=channel)
    await dispatcher.dispatch(event)

    return {
        "type": etype.value,
        "class": event.spec.name if event.spec is not None else None,
        "directory": str(event.directory) if event.directory is not None else None,
        "senders": [s.name for s in dispatcher.senders],
    }


async def sync_vm_events_impl(*, config_path: str | None = None) -> dict[str, Any]:
    """Implementation for the `sync_vm_events` MCP tool."""
    probe, dispatcher = get_runtime(config_path)
    await dispatcher.dispatch(make_event(probe, EventType.VM, channel="manual"))
    return {
        "type": EventType.VM.value,
        "vms": [vm.name for vm in probe.vms],
        "senders": [s.name for s in dispatcher.senders],
    }

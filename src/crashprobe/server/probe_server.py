"""MCP server entrypoint (stdio transport).

This module wires together:
- Tools: dispatch one event, synchronize guest VM histories
- Resources: the local archive's history (via URI)

Run locally (stdio):
    python -m crashprobe.server.probe_server
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Sequence
from typing import Any

from mcp.server.fastmcp import FastMCP

from crashprobe.resources.registry import register_resources
from crashprobe.tools.probe import dispatch_event_impl, sync_vm_events_impl

LOGGER = logging.getLogger(__name__)


def _configure_logging() -> None:
    """Configure a reasonable default logging setup.

    The MCP client typically captures stderr; keeping logs concise makes them easier to consume.
    """
    level_name = os.getenv("CRASHPROBE_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


mcp = FastMCP("crashprobe", json_response=True)

register_resources(mcp)


@mcp.tool()
async def dispatch_event(
    event_type: str,
    name: str | None = None,
    path: str = "",
    channel: str = "manual",
) -> dict[str, Any]:
    """Run one detected event through every configured sender.

    Parameters
    ----------
    event_type:
        One of crash, info, uptime, reboot (case-insensitive).
    name:
        Crash or info class name from the configuration (required for crash/info).
    path:
        Trigger file name relative to the class's trigger directory.
    channel:
        Detector that saw the event; "inotify" also archives the trigger file.

    Returns
    -------
    dict:
        {"type": str, "class": str | None, "directory": str | None, "senders": list[str]}
    """
    return await dispatch_event_impl(
        event_type=event_type,
        name=name,
        path=path,
        channel=channel,
    )


@mcp.tool()
async def sync_vm_events() -> dict[str, Any]:
    """Run one synchronization pass over every configured guest VM history."""
    return await sync_vm_events_impl()


def main(argv: Sequence[str] | None = None) -> None:
    """Start the MCP server over stdio."""
    _configure_logging()
    LOGGER.debug("Starting MCP server (transport=stdio)")
    _ = argv or sys.argv[1:]
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()

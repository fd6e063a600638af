"""MCP resource registry.

Resources are addressable by URI and can be fetched by the MCP client on demand.
"""

from __future__ import annotations

from collections import deque
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from crashprobe.core.config import load_config
from crashprobe.core.history import HISTORY_NAME
from crashprobe.core.senders import LOCAL_SENDER

TEXT_ENCODING = "utf-8"
TEXT_ERRORS = "replace"
DEFAULT_TAIL_LINES = 200


def history_path() -> Path:
    """History file of the local sender from the configured outdir."""
    probe = load_config()
    local = probe.sender(LOCAL_SENDER)
    if local is None:
        raise ValueError(f"No '{LOCAL_SENDER}' sender configured.")
    return local.outdir / HISTORY_NAME


def tail_text(path: Path, lines: int = DEFAULT_TAIL_LINES) -> str:
    """Last ``lines`` lines of a text file."""
    if lines < 1:
        raise ValueError("lines must be >= 1")
    if not path.is_file():
        raise FileNotFoundError(f"File not found: {path}")
    with path.open(encoding=TEXT_ENCODING, errors=TEXT_ERRORS) as f:
        return "".join(deque(f, maxlen=lines))


def register_resources(mcp: FastMCP) -> None:
    """Register resource handlers on the MCP server."""

    @mcp.resource("app://crashprobe/help")
    def help_resource() -> str:
        return (
            "crashprobe MCP server\n\n"
            "Tools:\n"
            "- dispatch_event(event_type, name?, path?, channel?): run one event through all senders\n"
            "- sync_vm_events(): synchronize guest VM histories\n\n"
            "Resources:\n"
            "- app://crashprobe/history (last archived events)\n"
            "- app://crashprobe/history/{lines} (last N history lines)\n"
        )

    @mcp.resource("app://crashprobe/history")
    def history_resource() -> str:
        return tail_text(history_path())

    @mcp.resource("app://crashprobe/history/{lines}")
    def history_tail_resource(lines: str) -> str:
        return tail_text(history_path(), int(lines))

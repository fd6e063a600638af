"""Senders: the local archive and the optional telemetry forwarder."""

from __future__ import annotations

from .base import INOTIFY_CHANNEL, Sender, trigger_file
from .crashlog import SPACE_FULL, CrashlogSender
from .registry import (
    LOCAL_SENDER,
    TELEMETRY_SENDER,
    SenderRegistry,
    activate_senders,
)
from .telemd import TelemdSender, find_dir

__all__ = [
    "INOTIFY_CHANNEL",
    "LOCAL_SENDER",
    "SPACE_FULL",
    "TELEMETRY_SENDER",
    "CrashlogSender",
    "Sender",
    "SenderRegistry",
    "TelemdSender",
    "activate_senders",
    "find_dir",
    "trigger_file",
]

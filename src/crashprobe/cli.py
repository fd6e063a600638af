from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

from crashprobe.core.errors import SenderActivationError
from crashprobe.core.models import EventType
from crashprobe.tools.probe import dispatch_event_impl, sync_vm_events_impl


def _parse_event_type(s: str) -> str:
    name = s.strip().upper()
    if name not in EventType.__members__ or name == EventType.VM.value:
        raise argparse.ArgumentTypeError("Invalid event type. Allowed: CRASH, INFO, UPTIME, REBOOT")
    return name


def _configure_logging(verbose: bool) -> None:
    level_name = "DEBUG" if verbose else os.getenv("CRASHPROBE_LOG_LEVEL", "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main() -> None:
    p = argparse.ArgumentParser(description="Crash/telemetry probe: dispatch events to senders.")
    p.add_argument("--config", default=None, help="Config file (default: $CRASHPROBE_CONFIG)")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    d = sub.add_parser("dispatch", help="Run one event through every sender")
    d.add_argument("event_type", type=_parse_event_type, help="CRASH, INFO, UPTIME or REBOOT")
    d.add_argument("name", nargs="?", default=None, help="Crash/info class name")
    d.add_argument("--path", default="", help="Trigger file name, relative to the trigger dir")
    d.add_argument("--channel", default="manual", help='Detector channel ("inotify" archives the trigger)')

    sub.add_parser("sync-vm", help="Synchronize guest VM histories")

    args = p.parse_args()
    _configure_logging(args.verbose)

    try:
        if args.command == "dispatch":
            out = asyncio.run(
                dispatch_event_impl(
                    event_type=args.event_type,
                    name=args.name,
                    path=args.path,
                    channel=args.channel,
                    config_path=args.config,
                )
            )
        else:
            out = asyncio.run(sync_vm_events_impl(config_path=args.config))
    except FileNotFoundError as e:
        print(str(e), file=sys.stderr)
        raise SystemExit(2)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(2)
    except SenderActivationError as e:
        print(f"Fatal: {e}", file=sys.stderr)
        raise SystemExit(1)

    for k, v in out.items():
        print(f"{k}: {v}")


if __name__ == "__main__":
    main()

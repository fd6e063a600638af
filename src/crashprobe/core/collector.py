"""Log collection strategies.

A ``LogSpec`` is fetched into a destination directory by one of four
strategies selected by its kind: whole-file copy, tail of the last N lines,
device-node drain, or command output capture.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections import deque
from collections.abc import Callable
from pathlib import Path

import aiofiles

from .clock import uptime_string
from .errors import CollectionError
from .models import CONFIG_PATTERN_RE, LogKind, LogSpec

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
SLOW_COLLECTION_SECONDS = 5


def expand_config_pattern(pattern: str) -> list[Path]:
    """Expand ``[*]/dir/prefix*`` or ``[-1]/dir/prefix*`` into files."""
    m = CONFIG_PATTERN_RE.match(pattern)
    if not m:
        raise CollectionError(f"not a config-format pattern: {pattern}")
    target = Path(m.group("path"))
    prefix = target.name.rstrip("*")
    try:
        files = sorted(
            p for p in target.parent.iterdir() if p.name.startswith(prefix) and p.is_file()
        )
    except OSError as exc:
        raise CollectionError(
            f"parse config format ({pattern}) failed, error ({exc.strerror})"
        ) from exc
    if m.group("select") == "-1":
        return files[-1:]
    return files


def destination_path(spec: LogSpec, dest_dir: Path, filename: str, *, uptime: str) -> Path:
    """Archive path for one artifact.

    Tailed logs and command output get the uptime appended since the same
    class is captured repeatedly into the same kind of directory.
    """
    if spec.kind == LogKind.CMD or spec.lines:
        return dest_dir / f"{filename}_{uptime}"
    return dest_dir / filename


async def _stream(src: Path, dest: Path) -> int:
    written = 0
    async with aiofiles.open(src, "rb") as fin, aiofiles.open(dest, "wb") as fout:
        while True:
            chunk = await fin.read(CHUNK_SIZE)
            if not chunk:
                break
            await fout.write(chunk)
            written += len(chunk)
    return written


async def copy_file(src: Path, dest: Path) -> int:
    """Copy a regular file verbatim; return bytes written."""
    if not src.is_file():
        raise CollectionError(f"copy ({src}) failed, error (not a regular file)")
    try:
        return await _stream(src, dest)
    except OSError as exc:
        raise CollectionError(f"copy ({src}) failed, error ({exc.strerror})") from exc


async def copy_tail(src: Path, dest: Path, lines: int) -> int:
    """Write the last ``lines`` logical lines of ``src``; return source line count."""
    tail: deque[bytes] = deque(maxlen=lines)
    total = 0
    try:
        async with aiofiles.open(src, "rb") as f:
            async for line in f:
                tail.append(line)
                total += 1
        if total == 0:
            raise CollectionError(f"get lines ({src}) failed, file is empty")
        async with aiofiles.open(dest, "wb") as out:
            await out.write(b"".join(tail))
    except OSError as exc:
        raise CollectionError(f"tail ({src}) failed, error ({exc.strerror})") from exc
    return total


async def drain_node(src: Path, dest: Path) -> int:
    """Read a device/special file until end-of-stream."""
    try:
        return await _stream(src, dest)
    except OSError as exc:
        raise CollectionError(f"copy ({src}) failed, error ({exc.strerror})") from exc


async def capture_command(argv: list[str], dest: Path) -> int:
    """Run ``argv`` (no shell) and write its standard output to ``dest``."""
    if not argv:
        raise CollectionError("empty command")
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
        out, _ = await proc.communicate()
    except OSError as exc:
        raise CollectionError(f"exec {argv[0]} failed, error ({exc.strerror})") from exc
    if proc.returncode:
        raise CollectionError(f"exec {' '.join(argv)} returns ({proc.returncode})")
    try:
        async with aiofiles.open(dest, "wb") as f:
            await f.write(out)
    except OSError as exc:
        raise CollectionError(f"write ({dest}) failed, error ({exc.strerror})") from exc
    return len(out)


class LogCollector:
    """Fetch the artifacts described by log specs into event directories."""

    def __init__(self, *, uptime: Callable[[], tuple[str, int]] = uptime_string) -> None:
        self._uptime = uptime

    async def fetch(self, spec: LogSpec, dest: Path, source: Path) -> None:
        """Run the strategy selected by ``spec.kind``."""
        if spec.kind == LogKind.FILE:
            if spec.lines is not None and spec.lines > 0:
                await copy_tail(source, dest, spec.lines)
            else:
                await copy_file(source, dest)
        elif spec.kind == LogKind.NODE:
            await drain_node(source, dest)
        elif spec.kind == LogKind.CMD:
            await capture_command(spec.argv, dest)
        else:  # pragma: no cover
            raise CollectionError(f"unknown log kind {spec.kind!r}")

    def sources(self, spec: LogSpec) -> list[tuple[str, Path]]:
        """Pairs of (archive filename, source path) for one spec."""
        if spec.is_pattern:
            return [(p.name, p) for p in expand_config_pattern(spec.path)]
        return [(spec.name, Path(spec.path))]

    async def collect(self, spec: LogSpec, dest_dir: Path) -> bool:
        """Collect every file of ``spec`` into ``dest_dir``.

        Failures are logged per file and never raised; returns True when all
        files were collected.
        """
        start = time.monotonic()
        try:
            sources = self.sources(spec)
        except CollectionError as exc:
            logger.error("%s", exc)
            return False
        if not sources:
            logger.warning("no logs found for (%s)", spec.name)
            return False

        ok = True
        for filename, source in sources:
            uptime, _ = self._uptime()
            dest = destination_path(spec, dest_dir, filename, uptime=uptime)
            try:
                await self.fetch(spec, dest, source)
            except CollectionError as exc:
                logger.error("get (%s) failed: %s", spec.name, exc)
                ok = False
                _discard(dest)

        spent = int(time.monotonic() - start)
        if spent < SLOW_COLLECTION_SECONDS:
            logger.debug("get (%s) spend %ds", spec.name, spent)
        else:
            logger.warning("get (%s) spend %ds", spec.name, spent)
        return ok


def _discard(path: Path) -> None:
    """Remove a half-written artifact."""
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("remove (%s) failed, error (%s)", path, exc.strerror)

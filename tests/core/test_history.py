from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

from crashprobe.core.errors import ProbeError
from crashprobe.core.history import FileHistoryStore, format_record
from crashprobe.core.keys import CounterStore, KeyGenerator
from crashprobe.core.layout import LogDirMode, OutputLayout, write_manifest

NOW = datetime(2020, 1, 2, 3, 4, 5)


def _store(tmp_path: Path) -> FileHistoryStore:
    keys = KeyGenerator(CounterStore(tmp_path / ".event_counter"))
    store = FileHistoryStore(tmp_path / "history_event", keys, now=lambda: NOW)
    store.prepare()
    return store


def test_format_record_columns() -> None:
    line = format_record("CRASH", "k" * 20, "2020-01-02/03:04:05", "IPANIC", Path("/x/crashlog0_k"))
    assert line.startswith("CRASH   " + "k" * 20 + "  2020-01-02/03:04:05  IPANIC")
    assert line.endswith(" /x/crashlog0_k\n")


def test_prepare_writes_headers_once(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.raise_event("REBOOT", "POWER-ON", None, "", "k1")
    store.prepare()

    lines = store.path.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "#V1.0 CURRENTUPTIME   0000:00:00"
    assert lines[1].startswith("#EVENT")
    assert lines[2].startswith("REBOOT  k1")


def test_raise_uptime_rewrites_header(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.raise_event("INFO", "BOOT", None, "", "k1")
    store.raise_uptime("0005:00:00")
    store.raise_uptime("0006:00:00")

    lines = store.path.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "#V1.0 CURRENTUPTIME   0006:00:00"
    assert len(lines) == 3


def test_raise_info_error_gets_a_key(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.raise_info_error("SPACE_FULL")
    store.raise_info_error("SPACE_FULL")

    errors = [l for l in store.path.read_text(encoding="utf-8").splitlines() if l.startswith("ERROR")]
    assert len(errors) == 2
    assert errors[0].split()[1] != errors[1].split()[1]
    assert all("SPACE_FULL" in l for l in errors)


def test_layout_rotates_slots_and_recycles(tmp_path: Path) -> None:
    layout = OutputLayout(tmp_path, max_dirs=2)
    first = layout.create_event_dir(LogDirMode.CRASH, "aaa")
    (first / "log").write_text("x", encoding="utf-8")
    second = layout.create_event_dir(LogDirMode.CRASH, "bbb")
    third = layout.create_event_dir(LogDirMode.CRASH, "ccc")

    assert (first.name, second.name, third.name) == ("crashlog0_aaa", "crashlog1_bbb", "crashlog0_ccc")
    assert not first.exists()
    assert second.is_dir() and third.is_dir()


def test_layout_modes_count_independently(tmp_path: Path) -> None:
    layout = OutputLayout(tmp_path)
    assert layout.create_event_dir(LogDirMode.CRASH, "a").name == "crashlog0_a"
    assert layout.create_event_dir(LogDirMode.STATS, "b").name == "stats0_b"
    assert layout.create_event_dir(LogDirMode.VMEVENT, "c").name == "vmevent0_c"


def test_layout_replaces_leftover_dir(tmp_path: Path) -> None:
    layout = OutputLayout(tmp_path, max_dirs=1)
    (tmp_path / "crashlog0_same").mkdir()
    (tmp_path / "crashlog0_same" / "keep").write_text("x", encoding="utf-8")
    path = layout.create_event_dir(LogDirMode.CRASH, "same")
    assert list(path.iterdir()) == []


def test_layout_invalid_max_dirs(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        OutputLayout(tmp_path, max_dirs=0)


def test_write_manifest_skips_empty_data(tmp_path: Path) -> None:
    path = write_manifest(tmp_path, "CRASH", "k1", "IPANIC", None, "x", None, now=NOW)
    assert path.read_text(encoding="utf-8") == (
        "EVENT=CRASH\nID=k1\nDATE=2020-01-02/03:04:05\nTYPE=IPANIC\nDATA1=x\n_END\n"
    )


def test_write_manifest_missing_dir_raises(tmp_path: Path) -> None:
    with pytest.raises(ProbeError):
        write_manifest(tmp_path / "missing", "CRASH", "k1", "IPANIC")

from __future__ import annotations

import json
from pathlib import Path

import pytest

from crashprobe.core.history import HISTORY_NAME
from crashprobe.resources.registry import tail_text
from crashprobe.tools.probe import (
    dispatch_event_impl,
    get_runtime,
    reset_runtimes,
    sync_vm_events_impl,
)


@pytest.fixture(autouse=True)
def _fresh_runtimes():
    reset_runtimes()
    yield
    reset_runtimes()


def _write_config(tmp_path: Path) -> Path:
    (tmp_path / "var").mkdir()
    (tmp_path / "var" / "messages").write_text("boot\npanic\n", encoding="utf-8")
    guest_logs = tmp_path / "vm1" / "logs"
    (guest_logs / "crashlog0_abc").mkdir(parents=True)
    (guest_logs / "crashlog0_abc" / "logcat").write_text("E/App: boom\n", encoding="utf-8")
    (guest_logs / "history_event").write_text(
        "#V1.0 CURRENTUPTIME   0000:10:00\n"
        "CRASH   k0000000000000000002  2020-01-01/00:00:00  JAVACRASH  /logs/crashlog0_abc\n",
        encoding="utf-8",
    )
    doc = {
        "build_version": "1.0",
        "logs": [
            {"name": "messages", "type": "file", "path": str(tmp_path / "var" / "messages")},
        ],
        "crashes": [{"name": "IPANIC", "logs": ["messages"]}],
        "infos": [{"name": "BOOT", "logs": ["messages"]}],
        "senders": [
            {"name": "crashlog", "outdir": str(tmp_path / "crashlog"), "quota": 1048576},
            {
                "name": "telemd",
                "outdir": str(tmp_path / "telemd"),
                "quota": 1048576,
                "spool_dir": str(tmp_path / "spool"),
            },
        ],
        "vms": [{"name": "VM1", "data_root": str(tmp_path / "vm1")}],
    }
    path = tmp_path / "config.json"
    path.write_text(json.dumps(doc), encoding="utf-8")
    return path


def _spooled(tmp_path: Path) -> list[dict]:
    return [json.loads(p.read_text(encoding="utf-8")) for p in (tmp_path / "spool").glob("*.json")]


@pytest.mark.asyncio
async def test_dispatch_event_impl_crash(tmp_path: Path) -> None:
    config = _write_config(tmp_path)

    out = await dispatch_event_impl(event_type="crash", name="IPANIC", config_path=str(config))

    assert out["type"] == "CRASH"
    assert out["class"] == "IPANIC"
    assert out["senders"] == ["crashlog", "telemd"]
    directory = Path(out["directory"])
    assert (directory / "messages").read_text(encoding="utf-8") == "boot\npanic\n"
    assert [d["payload"] for d in _spooled(tmp_path)] == [str(directory / "messages")]

    history = tail_text(tmp_path / "crashlog" / HISTORY_NAME, 1)
    assert history.startswith("CRASH")
    assert "IPANIC" in history


@pytest.mark.asyncio
async def test_dispatch_event_impl_reboot_has_no_class(tmp_path: Path) -> None:
    config = _write_config(tmp_path)

    out = await dispatch_event_impl(event_type="REBOOT", config_path=str(config))

    assert out["class"] is None
    assert out["directory"] is None
    assert [d["classification"] for d in _spooled(tmp_path)] == ["clearlinux/reboot/UNKNOWN"]


@pytest.mark.asyncio
async def test_dispatch_event_impl_validates_input(tmp_path: Path) -> None:
    config = str(_write_config(tmp_path))

    with pytest.raises(ValueError, match="Unknown event type"):
        await dispatch_event_impl(event_type="panic", config_path=config)
    with pytest.raises(ValueError, match="name is required"):
        await dispatch_event_impl(event_type="crash", config_path=config)
    with pytest.raises(ValueError, match="sync_vm_events"):
        await dispatch_event_impl(event_type="vm", config_path=config)
    with pytest.raises(ValueError, match="Unknown crash class"):
        await dispatch_event_impl(event_type="crash", name="NOPE", config_path=config)


@pytest.mark.asyncio
async def test_sync_vm_events_impl_archives_and_forwards(tmp_path: Path) -> None:
    config = str(_write_config(tmp_path))

    out = await sync_vm_events_impl(config_path=config)
    again = await sync_vm_events_impl(config_path=config)

    assert out == again == {"type": "VM", "vms": ["VM1"], "senders": ["crashlog", "telemd"]}
    [vmdir] = [p for p in (tmp_path / "crashlog").iterdir() if p.name.startswith("vmevent")]
    assert (vmdir / "crashlog0_abc" / "logcat").is_file()

    spooled = _spooled(tmp_path)
    assert [d["payload"] for d in spooled] == [str(vmdir / "crashlog0_abc" / "logcat")]
    assert spooled[0]["classification"] == "VM1/CRASH/JAVACRASH"
    for name in ("crashlog", "telemd"):
        records = (tmp_path / name / "VM_eventsID.log").read_text(encoding="utf-8")
        assert records == "VM1 k0000000000000000002\n"


def test_get_runtime_is_cached_per_config(tmp_path: Path) -> None:
    config = str(_write_config(tmp_path))
    assert get_runtime(config) is get_runtime(config)


def test_missing_config(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        get_runtime(str(tmp_path / "missing.json"))

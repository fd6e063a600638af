"""Configuration loading.

The JSON configuration file is validated with pydantic and converted once
into the immutable ``ProbeConfig`` value that the rest of the pipeline uses.
"""

from __future__ import annotations

import os
from dataclasses import replace
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from .classifier import ContentReclassifier
from .models import (
    CrashSpec,
    InfoSpec,
    LogKind,
    LogSpec,
    ProbeConfig,
    SenderConfig,
    TriggerSpec,
    UptimeConfig,
    VMDescriptor,
)
from .vm_sync import MountedGuestFilesystem

CONFIG_ENV = "CRASHPROBE_CONFIG"
BUILD_VERSION_ENV = "CRASHPROBE_BUILD_VERSION"
MAX_CRASH_DIRS_ENV = "CRASHPROBE_MAX_CRASH_DIRS"
DEFAULT_CONFIG_PATH = "/etc/crashprobe/config.json"


class LogModel(BaseModel):
    name: str = Field(min_length=1)
    type: Literal["file", "node", "cmd"]
    path: str = Field(min_length=1)
    lines: int | None = Field(default=None, description="Tail this many lines (file only).")


class TriggerModel(BaseModel):
    type: Literal["dir", "file"]
    path: str


class CrashModel(BaseModel):
    name: str = Field(min_length=1)
    trigger: TriggerModel | None = None
    logs: list[str] = Field(default_factory=list, description="Names from the log table.")
    children: list[str] = Field(default_factory=list, description="Names of more specific crashes.")
    contents: list[str] = Field(default_factory=list)
    might_contents: list[str] = Field(default_factory=list)
    data: list[str] = Field(default_factory=list, max_length=3, description="Regexes for DATA0..2.")


class InfoModel(BaseModel):
    name: str = Field(min_length=1)
    trigger: TriggerModel | None = None
    logs: list[str] = Field(default_factory=list)


class UptimeModel(BaseModel):
    path: str
    event_hours: int = Field(ge=1)


class SenderModel(BaseModel):
    name: str = Field(min_length=1)
    outdir: str
    quota: int = Field(gt=0, description="Bytes the outdir may occupy.")
    max_crash_dirs: int = Field(default=1000, ge=1)
    uptime: UptimeModel | None = None
    spool_dir: str | None = None


class VMModel(BaseModel):
    name: str = Field(min_length=1)
    data_root: str = Field(description="Host directory where the guest data partition is mounted.")
    history: str = "logs/history_event"


class ProbeConfigModel(BaseModel):
    build_version: str = "unknown"
    startup_reason_path: str | None = None
    logs: list[LogModel] = Field(default_factory=list)
    crashes: list[CrashModel] = Field(default_factory=list)
    infos: list[InfoModel] = Field(default_factory=list)
    senders: list[SenderModel] = Field(default_factory=list)
    vms: list[VMModel] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_references(self) -> ProbeConfigModel:
        for kind, names in (
            ("log", [x.name for x in self.logs]),
            ("crash", [x.name for x in self.crashes]),
            ("info", [x.name for x in self.infos]),
            ("sender", [x.name for x in self.senders]),
            ("vm", [x.name for x in self.vms]),
        ):
            dupes = sorted({n for n in names if names.count(n) > 1})
            if dupes:
                raise ValueError(f"duplicate {kind} names: {', '.join(dupes)}")

        logs = {x.name for x in self.logs}
        crashes = {x.name: x for x in self.crashes}
        for owner in [*self.crashes, *self.infos]:
            missing = [n for n in owner.logs if n not in logs]
            if missing:
                raise ValueError(f"{owner.name} references unknown logs: {', '.join(missing)}")
        for crash in self.crashes:
            missing = [n for n in crash.children if n not in crashes]
            if missing:
                raise ValueError(f"{crash.name} references unknown children: {', '.join(missing)}")

        def visit(name: str, stack: tuple[str, ...]) -> None:
            if name in stack:
                raise ValueError(f"crash hierarchy has a cycle: {' -> '.join((*stack, name))}")
            for child in crashes[name].children:
                visit(child, (*stack, name))

        for name in crashes:
            visit(name, ())
        return self

    def to_config(self) -> ProbeConfig:
        """Build the immutable configuration value."""
        logs = {
            m.name: LogSpec(name=m.name, kind=LogKind(m.type), path=m.path, lines=m.lines)
            for m in self.logs
        }
        models = {m.name: m for m in self.crashes}
        parents: dict[str, str] = {}
        for m in self.crashes:
            for child in m.children:
                parents.setdefault(child, m.name)

        def trigger_of(name: str) -> TriggerSpec | None:
            # children without their own trigger share their parent's
            while name is not None:
                t = models[name].trigger
                if t is not None:
                    return TriggerSpec(kind=t.type, path=t.path)
                name = parents.get(name)
            return None

        built: dict[str, CrashSpec] = {}

        def build(name: str) -> CrashSpec:
            if name in built:
                return built[name]
            m = models[name]
            children = tuple(build(c) for c in m.children)
            spec = CrashSpec(
                name=m.name,
                logs=tuple(logs[n] for n in m.logs),
                trigger=trigger_of(name),
                reclassify=ContentReclassifier() if children or m.data else None,
                children=children,
                contents=tuple(m.contents),
                might_contents=tuple(m.might_contents),
                data_patterns=tuple(m.data),
            )
            built[name] = spec
            return spec

        crashes = tuple(build(m.name) for m in self.crashes)
        infos = tuple(
            InfoSpec(
                name=m.name,
                logs=tuple(logs[n] for n in m.logs),
                trigger=TriggerSpec(kind=m.trigger.type, path=m.trigger.path) if m.trigger else None,
            )
            for m in self.infos
        )
        senders = tuple(
            SenderConfig(
                name=m.name,
                outdir=Path(m.outdir),
                quota=m.quota,
                max_crash_dirs=m.max_crash_dirs,
                uptime=(
                    UptimeConfig(path=Path(m.uptime.path), event_hours=m.uptime.event_hours)
                    if m.uptime
                    else None
                ),
                spool_dir=Path(m.spool_dir) if m.spool_dir else None,
            )
            for m in self.senders
        )
        vms = tuple(
            VMDescriptor(
                name=m.name,
                datafs=MountedGuestFilesystem(m.data_root),
                history_path=Path(m.data_root) / m.history,
            )
            for m in self.vms
        )
        return ProbeConfig(
            senders=senders,
            crashes=crashes,
            infos=infos,
            vms=vms,
            build_version=self.build_version,
            startup_reason_path=Path(self.startup_reason_path) if self.startup_reason_path else None,
        )


def resolve_probe_config(cfg: ProbeConfig) -> ProbeConfig:
    """Return config with optional env overrides applied."""
    version = os.getenv(BUILD_VERSION_ENV)
    if version:
        cfg = replace(cfg, build_version=version)

    env = os.getenv(MAX_CRASH_DIRS_ENV)
    if env is None or env == "":
        return cfg
    try:
        value = int(env)
    except ValueError as exc:
        raise ValueError(f"{MAX_CRASH_DIRS_ENV} must be an integer") from exc
    if value < 1:
        raise ValueError(f"{MAX_CRASH_DIRS_ENV} must be >= 1")
    return replace(cfg, senders=tuple(replace(s, max_crash_dirs=value) for s in cfg.senders))


def resolve_config_path(path: str | Path | None = None) -> Path:
    if path is not None:
        return Path(path)
    return Path(os.getenv(CONFIG_ENV) or DEFAULT_CONFIG_PATH)


def load_config(path: str | Path | None = None) -> ProbeConfig:
    """Read, validate and resolve the configuration file."""
    config_path = resolve_config_path(path)
    if not config_path.is_file():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    model = ProbeConfigModel.model_validate_json(config_path.read_text(encoding="utf-8"))
    return resolve_probe_config(model.to_config())

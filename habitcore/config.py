"""Data root, config.yaml and timezone helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from habitcore.fileio import read_yaml

VALID_STORES = {"file", "memory"}


@dataclass
class AppConfig:
    timezone: str = "UTC"
    log_level: str = "INFO"
    store: str = "file"
    users: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> AppConfig:
        if not d or not isinstance(d, dict):
            return cls()
        store = str(d.get("store", "file")).strip().lower()
        if store not in VALID_STORES:
            store = "file"
        users = d.get("users") or {}
        return cls(
            timezone=str(d.get("timezone", "UTC")),
            log_level=str(d.get("log_level", "INFO")).upper(),
            store=store,
            users={str(k): str(v) for k, v in users.items()} if isinstance(users, dict) else {},
        )

    def tzinfo(self) -> ZoneInfo:
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            return ZoneInfo("UTC")


def data_root() -> Path:
    """Directory holding config.yaml and the file store (``$HABITS_ROOT``)."""
    return Path(
        os.environ.get("HABITS_ROOT", str(Path.home() / "habits"))
    ).expanduser().resolve()


def config_path(root: Path | None = None) -> Path:
    if root is None:
        root = data_root()
    return root / "config.yaml"


def store_dir(root: Path | None = None) -> Path:
    if root is None:
        root = data_root()
    return root / "store"


def load_config(root: Path | None = None) -> AppConfig:
    """Load config.yaml, defaulting every missing key."""
    return AppConfig.from_dict(read_yaml(config_path(root)))

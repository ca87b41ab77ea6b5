"""Shared test fixtures for habit core tests."""

from __future__ import annotations

import os
from datetime import datetime, timedelta
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest
import yaml

from habitcore.errors import StoreError
from habitcore.store import MemoryDocumentStore
from habitcore.sync import HabitBoard, UserContext

UTC = ZoneInfo("UTC")


class FakeClock:
    """Settable clock; call it to read the time."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current

    def set(self, moment: datetime) -> None:
        self.current = moment


class FlakyStore(MemoryDocumentStore):
    """Memory store whose writes and reads can be switched off."""

    def __init__(self, clock=None) -> None:
        super().__init__(clock=clock)
        self.fail_writes = False
        self.fail_reads = False

    def _check_write(self) -> None:
        if self.fail_writes:
            raise StoreError("store unreachable")

    def _check_read(self) -> None:
        if self.fail_reads:
            raise StoreError("store unreachable")

    async def get_all(self, collection):
        self._check_read()
        return await super().get_all(collection)

    async def get(self, path):
        self._check_read()
        return await super().get(path)

    async def add(self, collection, data):
        self._check_write()
        return await super().add(collection, data)

    async def update(self, path, updates):
        self._check_write()
        await super().update(path, updates)

    async def set(self, path, data, merge=False):
        self._check_write()
        await super().set(path, data, merge=merge)

    async def delete(self, path):
        self._check_write()
        await super().delete(path)

    async def commit_batch(self, writes):
        self._check_write()
        await super().commit_batch(writes)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    # A Wednesday morning, well past the default 04:00 rollover
    return FakeClock(datetime(2026, 2, 11, 9, 0, 0, tzinfo=UTC))


@pytest.fixture
def store(clock: FakeClock) -> FlakyStore:
    return FlakyStore(clock=clock)


@pytest.fixture
def board(store: FlakyStore, clock: FakeClock) -> HabitBoard:
    return HabitBoard(UserContext(uid="user-1", store=store), clock=clock)


@pytest.fixture
def data_root(tmp_path: Path) -> Path:
    """Temporary HABITS_ROOT with a config.yaml."""
    root = tmp_path / "habits"
    root.mkdir()
    config = {
        "timezone": "Asia/Tokyo",
        "log_level": "debug",
        "store": "memory",
        "users": {"alice": "s3cret"},
    }
    (root / "config.yaml").write_text(yaml.dump(config, default_flow_style=False), encoding="utf-8")
    os.environ["HABITS_ROOT"] = str(root)
    yield root
    if "HABITS_ROOT" in os.environ:
        del os.environ["HABITS_ROOT"]

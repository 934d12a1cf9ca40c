"""Pytest configuration and fixtures."""

import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator

import pytest

# Keep test runs from writing dated log files into the working directory
os.environ.setdefault("LOG_TO_FILE", "false")

from lifecycle import ArtifactLifecycleManager  # noqa: E402
from storage import ArtifactStore, DiskBacking, MemoryBacking  # noqa: E402

TTL = timedelta(minutes=5)


class FakeClock:
    """Controllable stand-in for ``storage.utcnow``."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def fake_render(text: str) -> bytes:
    """Deterministic renderer so tests can compare exact bytes."""
    return b"%PDF-fake\n" + text.encode("utf-8")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def disk_backing(temp_dir: Path) -> DiskBacking:
    return DiskBacking(str(temp_dir / "artifacts"))


@pytest.fixture
def disk_store(disk_backing: DiskBacking, clock: FakeClock) -> ArtifactStore:
    return ArtifactStore(disk_backing, ttl=TTL, clock=clock)


@pytest.fixture
def memory_store(clock: FakeClock) -> ArtifactStore:
    return ArtifactStore(MemoryBacking(), ttl=TTL, clock=clock)


@pytest.fixture
def lifecycle(disk_store: ArtifactStore) -> ArtifactLifecycleManager:
    return ArtifactLifecycleManager(disk_store, renderer=fake_render)

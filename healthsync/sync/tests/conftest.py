"""Shared fixtures and fake collaborators for sync engine tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from unittest.mock import AsyncMock

import pytest

from healthsync.sync.base import (
    MeasurementSnapshot,
    MeasurementSource,
    ProjectContext,
    StaticContextSource,
    SyncBatch,
    UploadClient,
    UserProfile,
)
from healthsync.sync.catalog import MeasurementCatalog, load_measurement_catalog
from healthsync.sync.scheduler import SyncScheduler
from healthsync.sync.state import InMemorySyncStateStore, SyncState

# Canonical test instant and project
T0 = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)
TEST_PROJECT_ID = 42
TEST_PROFILE = UserProfile(user_id="apple-user-001", provider="apple", gender="female")


def minutes(n: int) -> timedelta:
    return timedelta(minutes=n)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class MinuteSource(MeasurementSource):
    """Returns a step count equal to the minute of the requested instant."""

    SOURCE_ID = "fake"

    def __init__(self) -> None:
        self.calls: list[datetime] = []
        self.on_call: Callable[[datetime], Any] | None = None

    async def snapshot(self, at: datetime) -> MeasurementSnapshot:
        self.calls.append(at)
        if self.on_call is not None:
            self.on_call(at)
        return MeasurementSnapshot(timestamp=at, step_count=float(at.minute))


class RecordingUploader(UploadClient):
    """Keeps every delivered batch; can be told to fail or block."""

    def __init__(self) -> None:
        self.batches: list[SyncBatch] = []
        self.error: Exception | None = None
        self.block: asyncio.Event | None = None
        self.entered = asyncio.Event()

    async def send(self, batch: SyncBatch) -> None:
        self.entered.set()
        if self.block is not None:
            await self.block.wait()
        if self.error is not None:
            raise self.error
        self.batches.append(batch)

    @property
    def timestamps(self) -> list[list[datetime]]:
        return [[s.timestamp for s in b.snapshots] for b in self.batches]


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the event loop until ``predicate()`` holds."""

    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout=timeout)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def measurement_catalog() -> MeasurementCatalog:
    """Load the real bundled catalog for tests."""
    return load_measurement_catalog()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def source() -> MinuteSource:
    return MinuteSource()


@pytest.fixture
def uploader() -> RecordingUploader:
    return RecordingUploader()


@pytest.fixture
def store() -> InMemorySyncStateStore:
    """Store that already remembers the test project but has no watermark."""
    return InMemorySyncStateStore(SyncState(project_id=TEST_PROJECT_ID))


@pytest.fixture
def context_source() -> StaticContextSource:
    return StaticContextSource(TEST_PROFILE)


@pytest.fixture
def project_context() -> ProjectContext:
    return ProjectContext(project_id=TEST_PROJECT_ID, profile=TEST_PROFILE)


@pytest.fixture
def make_scheduler(
    source: MinuteSource,
    uploader: RecordingUploader,
    store: InMemorySyncStateStore,
    context_source: StaticContextSource,
    clock: FakeClock,
) -> Callable[..., SyncScheduler]:
    """Factory for schedulers wired to the fakes above.

    The default interval is long so the periodic timer never fires unless a
    test asks for it.
    """

    def _make(**overrides: Any) -> SyncScheduler:
        kwargs: dict[str, Any] = {
            "source": source,
            "uploader": uploader,
            "store": store,
            "context_source": context_source,
            "interval_seconds": 3600.0,
            "clock": clock,
            "sleep": AsyncMock(),
        }
        kwargs.update(overrides)
        return SyncScheduler(**kwargs)

    return _make

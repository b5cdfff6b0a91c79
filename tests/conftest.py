"""Shared test fixtures for the spconflict test suite."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from spconflict.detection.scheduler import PollingScheduler
from spconflict.models import Actor, VersionStamp

LIST_ID = "5f2c8b1e-0d4a-4c55-9a7e-3b1f2e6d9c10"
T0 = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


def make_stamp(
    version: str = "1",
    modified: datetime = T0,
    by: str = "Bob",
    email: str | None = None,
) -> VersionStamp:
    return VersionStamp(version=version, modified=modified, modified_by=Actor(by, email))


class FakeFetcher:
    """In-memory stamp fetcher.

    ``stamp`` is returned, or ``error`` raised, on each call.  Setting
    ``gate`` to an :class:`asyncio.Event` holds every fetch until it is set.
    """

    def __init__(self, stamp: VersionStamp | None = None) -> None:
        self.stamp = stamp or make_stamp()
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch_stamp(self, list_id: str, item_id: int) -> VersionStamp:
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.error is not None:
                raise self.error
            return self.stamp
        finally:
            self.in_flight -= 1


@pytest.fixture
def fetcher() -> FakeFetcher:
    """Fetcher answering with version ``"1"`` modified at T0 by Bob."""
    return FakeFetcher(make_stamp("1"))


@pytest.fixture
def stamp_factory():
    return make_stamp


@pytest.fixture
def fast_scheduler() -> PollingScheduler:
    """Scheduler with a millisecond band so timer tests run quickly."""
    return PollingScheduler(min_interval_ms=10, max_interval_ms=60_000)


@pytest.fixture
def recent() -> datetime:
    """A modification time 30 seconds in the past."""
    return datetime.now(timezone.utc) - timedelta(seconds=30)


@pytest.fixture
def list_id() -> str:
    return LIST_ID


@pytest.fixture
def fetcher_factory():
    """Build additional :class:`FakeFetcher` instances."""
    return FakeFetcher

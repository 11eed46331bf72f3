"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from cognitive_hub.config import AgentSettings, QueueSettings
from cognitive_hub.jobs.queue import JobQueue
from cognitive_hub.storage.content_store import ContentStore
from cognitive_hub.tools import build_default_registry
from cognitive_hub.tools.registry import ToolRegistry


class FakeClock:
    """Manually advanced UTC clock for lease and schedule tests."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "cognitive_hub.db"


@pytest.fixture()
def store(db_path: Path) -> Iterator[ContentStore]:
    store = ContentStore(db_path)
    store.init_schema()
    yield store
    store.close()


@pytest.fixture()
def registry(store: ContentStore) -> ToolRegistry:
    return build_default_registry(store, AgentSettings())


@pytest.fixture()
def queue(db_path: Path) -> Iterator[JobQueue]:
    queue = JobQueue(
        db_path,
        settings=QueueSettings(retry_base_seconds=0, retry_max_seconds=0),
    )
    queue.init_schema()
    yield queue
    queue.close()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 10, 19, 1, 59, 30, tzinfo=UTC))


@pytest.fixture()
def clocked_queue(db_path: Path, clock: FakeClock) -> Iterator[JobQueue]:
    queue = JobQueue(
        db_path,
        settings=QueueSettings(lease_seconds=60, retry_base_seconds=0, retry_max_seconds=0),
        clock=clock,
    )
    queue.init_schema()
    yield queue
    queue.close()

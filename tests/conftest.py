from __future__ import annotations

from typing import Callable, List

import pytest

from agent_builder.bootstrap import Container, build_container
from agent_builder.config import DatabaseConfig, Settings
from agent_builder.handoff import InMemoryHandoffQueue
from agent_builder.persistence import ProjectStore
from agent_builder.schemas import NotificationEvent


class FakeClock:
    """Settable clock for queue deduplication and cache expiry."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store() -> ProjectStore:
    return ProjectStore.from_url("sqlite:///:memory:")


@pytest.fixture()
def queue(clock: FakeClock) -> InMemoryHandoffQueue:
    return InMemoryHandoffQueue(dedup_window_seconds=300, clock=clock)


@pytest.fixture()
def events(store: ProjectStore) -> List[NotificationEvent]:
    received: List[NotificationEvent] = []
    store.subscribe(received.append)
    return received


@pytest.fixture()
def settings() -> Settings:
    return Settings(database=DatabaseConfig(url="sqlite:///:memory:"), dry_run=True)


@pytest.fixture()
def container(settings: Settings, queue: InMemoryHandoffQueue) -> Container:
    return build_container(settings, queue=queue)


@pytest.fixture()
def drain(container: Container) -> Callable[[], int]:
    def _drain() -> int:
        return container.queue.drain(container.processor.process)

    return _drain

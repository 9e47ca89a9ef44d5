"""Queue hand-off between agent stages.

A hand-off is ``(project_id, agent_name)`` tagged with the project's current run
id, plus a deduplication token that the producer derives from those and the
current time bucket. Messages for one project are delivered in the order they
were enqueued; the same stage of the same run is enqueued at most once per
dedup window, while a restarted run gets fresh tokens.
"""

from __future__ import annotations

import hashlib
import logging
import time
from collections import OrderedDict, deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional, Protocol

from .persistence import ProjectStore
from .pipeline import get_stage, next_agent, previous_agent
from .schemas import HandoffMessage, ProjectStatus, Task


LOGGER = logging.getLogger("agent_builder.handoff")

DEFAULT_DEDUP_WINDOW_SECONDS = 300


def dedup_token(
    project_id: str,
    agent_name: str,
    *,
    now: float,
    window_seconds: int = DEFAULT_DEDUP_WINDOW_SECONDS,
    run_id: Optional[str] = None,
) -> str:
    """Stable token for ``(project_id, run_id, agent_name)`` within one time bucket."""

    bucket = int(now // max(window_seconds, 1))
    run = f"{run_id}:" if run_id else ""
    raw = f"{project_id}:{run}{agent_name}:{bucket}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def _token_for(message: HandoffMessage, now: float, window_seconds: int) -> str:
    return dedup_token(
        message.project_id, message.agent_name, now=now, window_seconds=window_seconds, run_id=message.run_id
    )


@dataclass(frozen=True)
class QueuedMessage:
    message: HandoffMessage
    dedup_token: str
    group_id: str
    enqueued_at: float


class HandoffQueue(Protocol):
    def enqueue(self, message: HandoffMessage) -> Optional[QueuedMessage]:
        """Send ``message``; returns ``None`` when it was suppressed as a duplicate."""


class InMemoryHandoffQueue:
    """In-process FIFO-per-project queue used for local runs and tests."""

    def __init__(
        self,
        dedup_window_seconds: int = DEFAULT_DEDUP_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.dedup_window_seconds = dedup_window_seconds
        self._clock = clock
        self._groups: "OrderedDict[str, Deque[QueuedMessage]]" = OrderedDict()
        self._seen: Dict[str, float] = {}

    def enqueue(self, message: HandoffMessage) -> Optional[QueuedMessage]:
        now = self._clock()
        self._expire(now)
        token = _token_for(message, now, self.dedup_window_seconds)
        if token in self._seen:
            LOGGER.info("Suppressed duplicate hand-off to %s for project %s", message.agent_name, message.project_id)
            return None
        self._seen[token] = now
        queued = QueuedMessage(message=message, dedup_token=token, group_id=message.project_id, enqueued_at=now)
        self._groups.setdefault(message.project_id, deque()).append(queued)
        LOGGER.debug("Queued %s for project %s", message.agent_name, message.project_id)
        return queued

    def pop(self) -> Optional[QueuedMessage]:
        """Take the oldest message of the first project group that has one."""

        for group_id in list(self._groups):
            group = self._groups[group_id]
            if group:
                queued = group.popleft()
                if not group:
                    del self._groups[group_id]
                return queued
            del self._groups[group_id]
        return None

    def pending(self, project_id: Optional[str] = None) -> List[QueuedMessage]:
        if project_id is not None:
            return list(self._groups.get(project_id, ()))
        return [queued for group in self._groups.values() for queued in group]

    def drain(self, handler: Callable[[HandoffMessage], Any], limit: Optional[int] = None) -> int:
        """Deliver queued messages to ``handler`` until empty; returns how many were handled."""

        handled = 0
        while limit is None or handled < limit:
            queued = self.pop()
            if queued is None:
                break
            handler(queued.message)
            handled += 1
        return handled

    def __len__(self) -> int:
        return sum(len(group) for group in self._groups.values())

    def _expire(self, now: float) -> None:
        stale = [token for token, seen_at in self._seen.items() if now - seen_at >= self.dedup_window_seconds]
        for token in stale:
            del self._seen[token]


class CeleryHandoffQueue:
    """Publish hand-offs as Celery task messages on an SQS FIFO queue."""

    def __init__(
        self,
        task: Any,
        *,
        queue_name: str,
        dedup_window_seconds: int = DEFAULT_DEDUP_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._task = task
        self._queue_name = queue_name
        self.dedup_window_seconds = dedup_window_seconds
        self._clock = clock

    def enqueue(self, message: HandoffMessage) -> Optional[QueuedMessage]:
        now = self._clock()
        token = _token_for(message, now, self.dedup_window_seconds)
        # The FIFO queue itself drops a repeated deduplication id inside its window.
        self._task.apply_async(
            kwargs={"message": message.to_wire()},
            queue=self._queue_name,
            MessageGroupId=message.project_id,
            MessageDeduplicationId=token,
        )
        LOGGER.info("Sent %s hand-off for project %s", message.agent_name, message.project_id)
        return QueuedMessage(message=message, dedup_token=token, group_id=message.project_id, enqueued_at=now)


@dataclass(frozen=True)
class StageHandoff:
    task: Task
    queued: Optional[QueuedMessage]

    @property
    def suppressed(self) -> bool:
        return self.queued is None


def enqueue_stage(
    store: ProjectStore,
    queue: HandoffQueue,
    project_id: str,
    agent_name: str,
    *,
    run_id: Optional[str] = None,
) -> StageHandoff:
    """Create (or reuse) the stage's task and enqueue its hand-off message for ``run_id``."""

    stage = get_stage(agent_name)
    dependencies: List[str] = []
    upstream = previous_agent(agent_name)
    if upstream is not None:
        upstream_task = store.find_task(project_id, upstream)
        if upstream_task is not None:
            dependencies.append(upstream_task.task_id)
    task = store.ensure_task(project_id, agent_name, dependencies=dependencies, description=stage.description)
    queued = queue.enqueue(HandoffMessage(project_id=project_id, agent_name=agent_name, run_id=run_id))
    return StageHandoff(task=task, queued=queued)


def advance_pipeline(
    store: ProjectStore,
    queue: HandoffQueue,
    project_id: str,
    agent_name: str,
    *,
    run_id: Optional[str] = None,
) -> Optional[StageHandoff]:
    """Hand off to the stage after ``agent_name``, or complete the project after the last one."""

    upcoming = next_agent(agent_name)
    if upcoming is None:
        store.set_project_status(project_id, ProjectStatus.COMPLETED)
        LOGGER.info("Project %s completed after %s", project_id, agent_name)
        return None
    handoff = enqueue_stage(store, queue, project_id, upcoming, run_id=run_id)
    if handoff.suppressed:
        LOGGER.info("%s already handed off for project %s", upcoming, project_id)
    return handoff


__all__ = [
    "CeleryHandoffQueue",
    "DEFAULT_DEDUP_WINDOW_SECONDS",
    "HandoffQueue",
    "InMemoryHandoffQueue",
    "QueuedMessage",
    "StageHandoff",
    "advance_pipeline",
    "dedup_token",
    "enqueue_stage",
]

from __future__ import annotations

from typing import Any, Dict, List

from agent_builder.handoff import (
    CeleryHandoffQueue,
    InMemoryHandoffQueue,
    advance_pipeline,
    dedup_token,
    enqueue_stage,
)
from agent_builder.pipeline import BACKEND_ENGINEER, DEVOPS_ENGINEER, PRODUCT_MANAGER
from agent_builder.schemas import HandoffMessage, ProjectStatus


def test_dedup_token_is_stable_within_a_window() -> None:
    first = dedup_token("p1", PRODUCT_MANAGER, now=1000.0, window_seconds=300)
    assert first == dedup_token("p1", PRODUCT_MANAGER, now=1100.0, window_seconds=300)
    assert first != dedup_token("p1", PRODUCT_MANAGER, now=1300.0, window_seconds=300)
    assert first != dedup_token("p2", PRODUCT_MANAGER, now=1000.0, window_seconds=300)


def test_dedup_token_separates_runs() -> None:
    run_a = dedup_token("p1", PRODUCT_MANAGER, now=1000.0, window_seconds=300, run_id="run-a")
    run_b = dedup_token("p1", PRODUCT_MANAGER, now=1000.0, window_seconds=300, run_id="run-b")

    assert run_a != run_b
    assert run_a != dedup_token("p1", PRODUCT_MANAGER, now=1000.0, window_seconds=300)


def test_new_run_is_not_suppressed_inside_the_window(queue: InMemoryHandoffQueue, clock) -> None:
    assert queue.enqueue(HandoffMessage(project_id="p1", agent_name=PRODUCT_MANAGER, run_id="run-a")) is not None
    clock.advance(30)

    assert queue.enqueue(HandoffMessage(project_id="p1", agent_name=PRODUCT_MANAGER, run_id="run-a")) is None
    assert queue.enqueue(HandoffMessage(project_id="p1", agent_name=PRODUCT_MANAGER, run_id="run-b")) is not None
    assert [queued.message.run_id for queued in queue.pending("p1")] == ["run-a", "run-b"]


def test_duplicate_enqueue_is_suppressed_until_window_passes(queue: InMemoryHandoffQueue, clock) -> None:
    message = HandoffMessage(project_id="p1", agent_name=PRODUCT_MANAGER)

    assert queue.enqueue(message) is not None
    clock.advance(100)
    assert queue.enqueue(message) is None
    assert len(queue) == 1

    clock.advance(300)
    assert queue.enqueue(message) is not None
    assert len(queue) == 2


def test_messages_pop_in_order_per_project(queue: InMemoryHandoffQueue) -> None:
    queue.enqueue(HandoffMessage(project_id="p1", agent_name=PRODUCT_MANAGER))
    queue.enqueue(HandoffMessage(project_id="p2", agent_name=PRODUCT_MANAGER))
    queue.enqueue(HandoffMessage(project_id="p1", agent_name=BACKEND_ENGINEER))

    assert [queued.message.agent_name for queued in queue.pending("p1")] == [PRODUCT_MANAGER, BACKEND_ENGINEER]

    handled: List[HandoffMessage] = []
    assert queue.drain(handled.append) == 3
    p1 = [message.agent_name for message in handled if message.project_id == "p1"]
    assert p1 == [PRODUCT_MANAGER, BACKEND_ENGINEER]
    assert queue.pop() is None


def test_drain_respects_limit(queue: InMemoryHandoffQueue) -> None:
    queue.enqueue(HandoffMessage(project_id="p1", agent_name=PRODUCT_MANAGER))
    queue.enqueue(HandoffMessage(project_id="p1", agent_name=BACKEND_ENGINEER))

    assert queue.drain(lambda message: None, limit=1) == 1
    assert len(queue) == 1


def test_enqueue_stage_records_upstream_dependency(store, queue: InMemoryHandoffQueue) -> None:
    project = store.create_project("owner-1", "Todo", "Build a todo list application")

    first = enqueue_stage(store, queue, project.project_id, PRODUCT_MANAGER)
    second = enqueue_stage(store, queue, project.project_id, BACKEND_ENGINEER)

    assert first.task.dependencies == []
    assert second.task.dependencies == [first.task.task_id]
    assert second.task.description
    assert [queued.message.agent_name for queued in queue.pending(project.project_id)] == [
        PRODUCT_MANAGER,
        BACKEND_ENGINEER,
    ]


def test_enqueue_stage_reuses_existing_task(store, queue: InMemoryHandoffQueue, clock) -> None:
    project = store.create_project("owner-1", "Todo", "Build a todo list application")

    first = enqueue_stage(store, queue, project.project_id, PRODUCT_MANAGER)
    clock.advance(600)
    again = enqueue_stage(store, queue, project.project_id, PRODUCT_MANAGER)

    assert again.task.task_id == first.task.task_id
    assert not again.suppressed
    assert len(store.list_tasks(project.project_id)) == 1


class _RecordingTask:
    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []

    def apply_async(self, **kwargs: Any) -> None:
        self.calls.append(kwargs)


def test_celery_queue_sends_group_and_dedup_ids(clock) -> None:
    task = _RecordingTask()
    celery_queue = CeleryHandoffQueue(task, queue_name="agent-tasks.fifo", dedup_window_seconds=300, clock=clock)

    queued = celery_queue.enqueue(HandoffMessage(project_id="p1", agent_name=PRODUCT_MANAGER))

    assert queued is not None
    call = task.calls[0]
    assert call["kwargs"] == {"message": {"projectId": "p1", "agentName": PRODUCT_MANAGER}}
    assert call["queue"] == "agent-tasks.fifo"
    assert call["MessageGroupId"] == "p1"
    assert call["MessageDeduplicationId"] == dedup_token("p1", PRODUCT_MANAGER, now=clock.now, window_seconds=300)


def test_celery_queue_carries_the_run_id(clock) -> None:
    task = _RecordingTask()
    celery_queue = CeleryHandoffQueue(task, queue_name="agent-tasks.fifo", dedup_window_seconds=300, clock=clock)

    celery_queue.enqueue(HandoffMessage(project_id="p1", agent_name=PRODUCT_MANAGER, run_id="run-a"))

    call = task.calls[0]
    assert call["kwargs"]["message"]["runId"] == "run-a"
    assert call["MessageDeduplicationId"] == dedup_token(
        "p1", PRODUCT_MANAGER, now=clock.now, window_seconds=300, run_id="run-a"
    )


def test_enqueue_stage_reports_suppressed_duplicates(store, queue: InMemoryHandoffQueue) -> None:
    project = store.create_project("owner-1", "Todo", "Build a todo list application")

    first = enqueue_stage(store, queue, project.project_id, PRODUCT_MANAGER, run_id="run-a")
    again = enqueue_stage(store, queue, project.project_id, PRODUCT_MANAGER, run_id="run-a")

    assert first.queued.message.run_id == "run-a"
    assert again.suppressed
    assert again.task.task_id == first.task.task_id


def test_advance_pipeline_completes_after_the_last_stage(store, queue: InMemoryHandoffQueue) -> None:
    project = store.create_project("owner-1", "Todo", "Build a todo list application")

    handoff = advance_pipeline(store, queue, project.project_id, PRODUCT_MANAGER, run_id="run-a")
    assert handoff.task.assigned_agent == BACKEND_ENGINEER
    assert handoff.queued.message.run_id == "run-a"

    assert advance_pipeline(store, queue, project.project_id, DEVOPS_ENGINEER) is None
    assert store.require_project(project.project_id).status is ProjectStatus.COMPLETED

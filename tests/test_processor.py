from __future__ import annotations

from typing import Any, Dict, Mapping

from agent_builder.bootstrap import build_container
from agent_builder.generation import GenerationError, TemplateSpecGenerator
from agent_builder.pipeline import BACKEND_ENGINEER, DEVOPS_ENGINEER, FRONTEND_ENGINEER, PRODUCT_MANAGER
from agent_builder.schemas import ArtifactType, EventType, HandoffMessage, ProjectStatus, TaskStatus
from agent_builder.worker import ProcessingOutcome


class _FrontendDown(TemplateSpecGenerator):
    def generate_frontend(self, requirements: Mapping[str, Any]) -> Dict[str, Any]:
        raise GenerationError("frontend generation failed: rate limited", stage="frontend")


def _started_project(container):
    project = container.store.create_project("owner-1", "Todo", "Build a todo list application")
    container.orchestrator.start(project.project_id)
    return project


def test_full_pipeline_completes_in_order(container, drain) -> None:
    received = []
    container.store.subscribe(received.append)
    project = _started_project(container)

    assert drain() == 4

    store = container.store
    assert store.require_project(project.project_id).status is ProjectStatus.COMPLETED
    tasks = {task.assigned_agent: task for task in store.list_tasks(project.project_id)}
    assert all(task.status is TaskStatus.DONE and task.progress == 100 for task in tasks.values())
    assert tasks[BACKEND_ENGINEER].dependencies == [tasks[PRODUCT_MANAGER].task_id]
    assert tasks[DEVOPS_ENGINEER].dependencies == [tasks[FRONTEND_ENGINEER].task_id]

    artifacts = store.list_artifacts(project.project_id)
    assert [(a.agent_name, a.artifact_type) for a in artifacts] == [
        (PRODUCT_MANAGER, ArtifactType.SRS_DOCUMENT),
        (BACKEND_ENGINEER, ArtifactType.SOURCE_CODE),
        (FRONTEND_ENGINEER, ArtifactType.SOURCE_CODE),
        (DEVOPS_ENGINEER, ArtifactType.DEPLOYMENT_URL),
        (DEVOPS_ENGINEER, ArtifactType.TEST_REPORT),
    ]
    assert tasks[PRODUCT_MANAGER].output_artifact_id == artifacts[0].artifact_id

    completions = [event.data["agentName"] for event in received if event.type is EventType.AGENT_COMPLETE]
    assert completions == [PRODUCT_MANAGER, BACKEND_ENGINEER, FRONTEND_ENGINEER, DEVOPS_ENGINEER]
    statuses = [event.data["status"] for event in received if event.type is EventType.PROJECT_UPDATE]
    assert statuses == ["IN_PROGRESS", "COMPLETED"]


def test_stage_failure_fails_task_and_project(settings, queue) -> None:
    container = build_container(settings, queue=queue, generator=_FrontendDown())
    project = _started_project(container)

    assert container.queue.drain(container.processor.process) == 3

    store = container.store
    assert store.require_project(project.project_id).status is ProjectStatus.FAILED
    frontend = store.find_task(project.project_id, FRONTEND_ENGINEER)
    assert frontend.status is TaskStatus.FAILED
    assert "rate limited" in frontend.error_message
    assert store.find_task(project.project_id, DEVOPS_ENGINEER) is None
    assert len(store.list_artifacts(project.project_id)) == 2
    assert len(queue) == 0


def test_redelivered_message_reuses_stored_output(container) -> None:
    project = _started_project(container)
    message = HandoffMessage(project_id=project.project_id, agent_name=PRODUCT_MANAGER)

    first = container.processor.process(message)
    second = container.processor.process(message)

    assert first.outcome is ProcessingOutcome.COMPLETED
    assert second.outcome is ProcessingOutcome.COMPLETED
    assert second.response.metadata == {"reused": True}
    assert len(container.store.list_artifacts(project.project_id)) == 1
    pending = [queued.message.agent_name for queued in container.queue.pending(project.project_id)]
    assert pending == [PRODUCT_MANAGER, BACKEND_ENGINEER]


def test_messages_for_finished_projects_are_dropped(container, drain) -> None:
    project = _started_project(container)
    drain()

    result = container.processor.process(HandoffMessage(project_id=project.project_id, agent_name=PRODUCT_MANAGER))

    assert result.outcome is ProcessingOutcome.SKIPPED
    assert result.reason == "project is COMPLETED"
    assert len(container.store.list_artifacts(project.project_id)) == 5


def test_unknown_project_and_agent_are_skipped(container) -> None:
    missing = container.processor.process(HandoffMessage(project_id="missing", agent_name=PRODUCT_MANAGER))
    assert missing.outcome is ProcessingOutcome.SKIPPED

    project = _started_project(container)
    unknown = container.processor.process(HandoffMessage(project_id=project.project_id, agent_name="QaAgent"))
    assert unknown.to_dict() == {
        "outcome": "skipped",
        "projectId": project.project_id,
        "agentName": "QaAgent",
        "reason": "unknown agent",
        "artifactIds": [],
    }


def test_messages_from_an_earlier_run_are_dropped(container) -> None:
    project = _started_project(container)

    result = container.processor.process(
        HandoffMessage(project_id=project.project_id, agent_name=PRODUCT_MANAGER, run_id="earlier-run")
    )

    assert result.outcome is ProcessingOutcome.SKIPPED
    assert result.reason == "stale run"
    assert container.store.list_artifacts(project.project_id) == []
    assert container.store.find_task(project.project_id, PRODUCT_MANAGER).status is TaskStatus.TODO


def test_parked_stage_ignores_redelivery(settings, queue) -> None:
    settings.orchestration.approval_stages = [PRODUCT_MANAGER]
    container = build_container(settings, queue=queue)
    received = []
    container.store.subscribe(received.append)
    project = _started_project(container)
    message = queue.pop().message

    first = container.processor.process(message)
    again = container.processor.process(message)

    assert first.outcome is ProcessingOutcome.COMPLETED
    assert again.outcome is ProcessingOutcome.SKIPPED
    assert again.reason == "awaiting approval"
    assert len(queue) == 0
    completions = [event.data for event in received if event.type is EventType.AGENT_COMPLETE]
    assert completions[0]["awaitingApproval"] is True


def test_failed_task_is_retried_by_a_new_run(settings, queue, clock) -> None:
    container = build_container(settings, queue=queue, generator=_FrontendDown())
    project = _started_project(container)
    queue.drain(container.processor.process)
    frontend = container.store.find_task(project.project_id, FRONTEND_ENGINEER)
    assert frontend.status is TaskStatus.FAILED

    clock.advance(5)
    container.orchestrator.start(project.project_id)
    queue.drain(container.processor.process)

    # The same generator fails again, moving the task through TODO and IN_PROGRESS back to FAILED.
    frontend = container.store.find_task(project.project_id, FRONTEND_ENGINEER)
    assert frontend.status is TaskStatus.FAILED
    assert container.store.require_project(project.project_id).status is ProjectStatus.FAILED
    assert len(container.store.list_artifacts(project.project_id)) == 2

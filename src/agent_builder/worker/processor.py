"""Processing of one hand-off message."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional

from ..agents import AgentUnit
from ..persistence import ProjectStore
from ..pipeline import get_stage
from ..schemas import (
    AgentInvocation,
    AgentResponse,
    EventType,
    HandoffMessage,
    NotificationEvent,
    ProjectStatus,
    Task,
    TaskStatus,
    utcnow,
)


LOGGER = logging.getLogger("agent_builder.worker")


class ProcessingOutcome(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class ProcessingResult:
    outcome: ProcessingOutcome
    project_id: str
    agent_name: str
    response: Optional[AgentResponse] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "projectId": self.project_id,
            "agentName": self.agent_name,
            "reason": self.reason,
            "artifactIds": [artifact.artifact_id for artifact in self.response.artifacts] if self.response else [],
        }


class HandoffProcessor:
    """
    Run the stage named by a hand-off message and record the outcome.

    Messages for unknown projects or agents, and for projects that are no
    longer IN_PROGRESS, are dropped; this absorbs redelivery after a project
    finished. So are messages tagged with a run id other than the project's
    current one. Stages named in ``approval_stages`` park their task in
    PENDING_APPROVAL instead of handing off; the orchestrator resumes them.
    Store errors raised here propagate to the queue consumer so the message
    is delivered again.
    """

    def __init__(
        self,
        store: ProjectStore,
        units: Mapping[str, AgentUnit],
        approval_stages: Iterable[str] = (),
    ) -> None:
        self._store = store
        self._units = dict(units)
        self.approval_stages = frozenset(approval_stages)

    def process(self, message: HandoffMessage) -> ProcessingResult:
        project_id, agent_name = message.project_id, message.agent_name
        project = self._store.get_project(project_id)
        if project is None:
            LOGGER.warning("Dropping hand-off to %s: project %s not found", agent_name, project_id)
            return ProcessingResult(ProcessingOutcome.SKIPPED, project_id, agent_name, reason="project not found")
        if project.status is not ProjectStatus.IN_PROGRESS:
            LOGGER.info(
                "Dropping hand-off to %s: project %s is %s", agent_name, project_id, project.status.value
            )
            return ProcessingResult(
                ProcessingOutcome.SKIPPED, project_id, agent_name, reason=f"project is {project.status.value}"
            )
        if message.run_id is not None and message.run_id != project.run_id:
            LOGGER.info("Dropping hand-off to %s for project %s from an earlier run", agent_name, project_id)
            return ProcessingResult(ProcessingOutcome.SKIPPED, project_id, agent_name, reason="stale run")
        unit = self._units.get(agent_name)
        if unit is None:
            LOGGER.error("Dropping hand-off for project %s: unknown agent %s", project_id, agent_name)
            return ProcessingResult(ProcessingOutcome.SKIPPED, project_id, agent_name, reason="unknown agent")

        task = self._store.ensure_task(project_id, agent_name, description=get_stage(agent_name).description)
        if task.status is TaskStatus.PENDING_APPROVAL:
            LOGGER.info("Dropping hand-off to %s: project %s is awaiting approval", agent_name, project_id)
            return ProcessingResult(ProcessingOutcome.SKIPPED, project_id, agent_name, reason="awaiting approval")
        # A rejected stage keeps its old output id until it is generated again.
        superseded = task.output_artifact_id if task.status is not TaskStatus.DONE else None
        task = self._begin(task)
        # A DONE task is being rerun after a restart; its stored output is reused.
        needs_approval = task.status is TaskStatus.IN_PROGRESS and agent_name in self.approval_stages

        invocation = AgentInvocation(
            project_id=project_id,
            project=project,
            previous_artifacts=self._store.list_artifacts(project_id),
            superseded_artifact_id=superseded,
        )
        response = unit.invoke(invocation, hand_off=not needs_approval)

        if response.success:
            output_id = response.artifacts[0].artifact_id if response.artifacts else None
            if needs_approval:
                self._store.mark_for_approval(task.task_id, output_artifact_id=output_id)
                LOGGER.info("%s output for project %s is waiting for approval", agent_name, project_id)
            elif task.status is TaskStatus.IN_PROGRESS:
                self._store.update_task(
                    task.task_id,
                    status=TaskStatus.DONE,
                    progress=100,
                    completed_at=utcnow(),
                    output_artifact_id=output_id,
                )
            self._store.publish(
                NotificationEvent(
                    type=EventType.AGENT_COMPLETE,
                    project_id=project_id,
                    data={
                        "agentName": agent_name,
                        "artifactIds": [artifact.artifact_id for artifact in response.artifacts],
                        "awaitingApproval": needs_approval,
                    },
                )
            )
            return ProcessingResult(ProcessingOutcome.COMPLETED, project_id, agent_name, response=response)

        LOGGER.warning("%s failed for project %s: %s", agent_name, project_id, response.error_message)
        if task.status is TaskStatus.IN_PROGRESS:
            self._store.update_task(
                task.task_id,
                status=TaskStatus.FAILED,
                completed_at=utcnow(),
                error_message=response.error_message,
            )
        self._store.set_project_status(project_id, ProjectStatus.FAILED)
        return ProcessingResult(
            ProcessingOutcome.FAILED, project_id, agent_name, response=response, reason=response.error_message
        )

    def _begin(self, task: Task) -> Task:
        """Move the task to IN_PROGRESS; DONE and IN_PROGRESS tasks are left as they are."""

        if task.status is TaskStatus.FAILED:
            task = self._store.update_task(task.task_id, status=TaskStatus.TODO)
        if task.status is not TaskStatus.TODO:
            return task
        return self._store.update_task(
            task.task_id,
            status=TaskStatus.IN_PROGRESS,
            progress=0,
            started_at=utcnow(),
            completed_at=None,
            error_message=None,
        )


__all__ = ["HandoffProcessor", "ProcessingOutcome", "ProcessingResult"]

"""Entry points that start, resume and reject a project's pipeline."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Mapping, Optional, Tuple

from .config import RestartPolicy
from .errors import ServiceError, as_service_error, error_body, log_error
from .handoff import HandoffQueue, advance_pipeline, enqueue_stage
from .persistence import ProjectStore
from .pipeline import first_stage
from .schemas import Project, ProjectStatus


LOGGER = logging.getLogger("agent_builder.orchestrator")


class Orchestrator:
    """
    Start, resume and reject project pipelines.

    Every start opens a new run: the project gets a fresh run id and the first
    stage is enqueued under it, so hand-offs left over from an earlier run are
    neither deduplicated against nor processed.
    """

    def __init__(
        self,
        store: ProjectStore,
        queue: HandoffQueue,
        restart_policy: RestartPolicy = RestartPolicy.REJECT,
    ) -> None:
        self._store = store
        self._queue = queue
        self.restart_policy = restart_policy

    def start(self, project_id: str) -> Dict[str, str]:
        if not isinstance(project_id, str) or not project_id.strip():
            raise ServiceError.validation("projectId is required")
        project = self._store.get_project(project_id)
        if project is None:
            raise ServiceError.not_found("Project", project_id)

        if project.status is ProjectStatus.IN_PROGRESS:
            match self.restart_policy:
                case RestartPolicy.REJECT:
                    raise ServiceError.conflict(
                        "Project pipeline is already running", project_id=project_id, status=project.status.value
                    )
                case RestartPolicy.RESTART:
                    LOGGER.warning("Restarting pipeline for project %s from the first stage", project_id)

        previous_status = project.status
        run_id = uuid.uuid4().hex
        updated = self._store.set_project_status(project_id, ProjectStatus.IN_PROGRESS, run_id=run_id)
        first = first_stage().agent_name
        try:
            handoff = enqueue_stage(self._store, self._queue, project_id, first, run_id=run_id)
            if handoff.suppressed:
                raise ServiceError.conflict(
                    "Start hand-off was suppressed as a duplicate", project_id=project_id, agent_name=first
                )
        except Exception:
            LOGGER.error("Could not enqueue %s for project %s; restoring status", first, project_id)
            self._store.set_project_status(project_id, previous_status, run_id=project.run_id)
            raise
        LOGGER.info("Started pipeline run %s for project %s with %s", run_id, project_id, first)
        return {"project_id": project_id, "status": updated.status.value}

    def resume(self, project_id: str, task_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Approve the stage waiting for review and continue the pipeline.

        With ``task_id`` only that task is resumed; otherwise the first task
        pending approval is. The next stage is enqueued under the project's
        current run, or the project completes after the last stage.
        """
        project = self._require_running(project_id)
        pending = self._store.find_pending_approval(project_id, task_id)
        if pending is None:
            raise ServiceError.validation("No task pending approval found", project_id=project_id, task_id=task_id)

        task = self._store.approve_task(pending.task_id)
        handoff = advance_pipeline(
            self._store, self._queue, project_id, task.assigned_agent, run_id=project.run_id
        )
        next_agent_name = handoff.task.assigned_agent if handoff is not None else None
        LOGGER.info("Resumed project %s after approving %s", project_id, task.assigned_agent)
        return {
            "project_id": project_id,
            "task_id": task.task_id,
            "approved_agent": task.assigned_agent,
            "next_agent": next_agent_name,
            "status": self._store.require_project(project_id).status.value,
        }

    def reject(self, project_id: str, task_id: str, reason: Optional[str] = None) -> Dict[str, Any]:
        """
        Turn down the output of a task pending approval and stop the run.

        The task goes back to TODO; the next start generates the stage again
        as a new artifact version.
        """
        self._require_running(project_id)
        pending = self._store.find_pending_approval(project_id, task_id)
        if pending is None:
            raise ServiceError.validation("No task pending approval found", project_id=project_id, task_id=task_id)
        task = self._store.reject_task(pending.task_id, reason)
        project = self._store.set_project_status(project_id, ProjectStatus.FAILED)
        LOGGER.warning("Rejected %s output for project %s: %s", task.assigned_agent, project_id, reason or "no reason")
        return {"project_id": project_id, "task_id": task.task_id, "status": project.status.value}

    def _require_running(self, project_id: str) -> Project:
        project = self._store.get_project(project_id)
        if project is None:
            raise ServiceError.not_found("Project", project_id)
        if project.status is not ProjectStatus.IN_PROGRESS:
            raise ServiceError.conflict(
                "Project pipeline is not running", project_id=project_id, status=project.status.value
            )
        return project


def handle_start_request(orchestrator: Orchestrator, payload: Mapping[str, Any]) -> Tuple[int, Dict[str, Any]]:
    """
    Invocation boundary for ``{"projectId": ...}`` start commands.

    Returns ``(status_code, body)``; every failure is converted into the
    structured error body rather than raised.
    """
    try:
        result = orchestrator.start(payload.get("projectId") if isinstance(payload, Mapping) else None)
    except Exception as exc:  # noqa: BLE001
        error = as_service_error(exc)
        log_error(LOGGER, error, "Start orchestration failed")
        return error.status_code, error_body(error)
    return 200, {"projectId": result["project_id"], "status": result["status"]}


__all__ = ["Orchestrator", "handle_start_request"]

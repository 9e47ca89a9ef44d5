"""Progress summary for a project's pipeline."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional, Sequence

from ..pipeline import STAGES
from ..schemas import Project, ProjectStatus, Task, TaskStatus, utcnow
from .models import ProjectStatusReport, TaskSummary

MINUTES_PER_STAGE = 7


def summarize_progress(project: Project, tasks: Sequence[Task], now: Optional[datetime] = None) -> ProjectStatusReport:
    """
    Percent complete over all pipeline stages, counting partial progress of the
    running task. Stages not yet handed off count as pending.
    """
    now = now or utcnow()
    total = len(STAGES)
    completed = sum(1 for task in tasks if task.status is TaskStatus.DONE)
    failed = sum(1 for task in tasks if task.status is TaskStatus.FAILED)
    running = [task for task in tasks if task.status is TaskStatus.IN_PROGRESS]
    awaiting = [task for task in tasks if task.status is TaskStatus.PENDING_APPROVAL]
    started = completed + failed + len(running) + len(awaiting)

    # Output waiting for approval is generated, so it counts as progress.
    progress = (completed + len(awaiting)) / total * 100
    current_task = None
    estimated_completion = None
    if awaiting:
        current_task = f"{awaiting[0].assigned_agent} awaiting approval"
    if running:
        task = running[0]
        current_task = task.description or f"{task.assigned_agent} working..."
        progress += task.progress / 100 * (100 / total)
        estimated_completion = now + timedelta(minutes=(total - completed) * MINUTES_PER_STAGE)
    if project.status is ProjectStatus.COMPLETED:
        progress = 100

    return ProjectStatusReport(
        project_id=project.project_id,
        status=project.status,
        progress=round(progress),
        current_task=current_task,
        estimated_completion=estimated_completion,
        task_summary=TaskSummary(
            total=total,
            completed=completed,
            in_progress=len(running),
            awaiting_approval=len(awaiting),
            failed=failed,
            pending=total - started,
        ),
    )

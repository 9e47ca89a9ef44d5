"""Transactional store for users, projects, tasks, artifacts and connections."""

from __future__ import annotations

import datetime as dt
import logging
import uuid
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ..errors import ServiceError
from ..schemas import (
    Artifact,
    Connection,
    EventType,
    NewArtifact,
    NotificationEvent,
    Project,
    ProjectStatus,
    Task,
    TaskStatus,
    User,
    utcnow,
)
from .database import (
    ArtifactRecord,
    ConnectionRecord,
    ProjectRecord,
    TaskRecord,
    UserRecord,
    create_session_factory,
    session_scope,
)


LOGGER = logging.getLogger("agent_builder.store")

StateListener = Callable[[NotificationEvent], Any]

_TASK_FIELDS = frozenset(
    {"status", "progress", "started_at", "completed_at", "error_message", "output_artifact_id", "description"}
)
_USER_FIELDS = frozenset({"email", "name", "given_name", "family_name", "picture"})

TASK_TRANSITIONS: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    TaskStatus.TODO: frozenset({TaskStatus.IN_PROGRESS}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.DONE, TaskStatus.FAILED, TaskStatus.PENDING_APPROVAL}),
    TaskStatus.DONE: frozenset(),
    TaskStatus.FAILED: frozenset({TaskStatus.TODO}),
    TaskStatus.PENDING_APPROVAL: frozenset({TaskStatus.DONE, TaskStatus.TODO}),
}


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    return target is current or target in TASK_TRANSITIONS[current]


def _aware(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value


def _new_id() -> str:
    return str(uuid.uuid4())


def _to_project(record: ProjectRecord) -> Project:
    return Project(
        project_id=record.project_id,
        owner_id=record.owner_id,
        project_name=record.project_name,
        request_prompt=record.request_prompt,
        status=ProjectStatus(record.status),
        run_id=record.run_id,
        created_at=_aware(record.created_at),
        updated_at=_aware(record.updated_at),
    )


def _to_task(record: TaskRecord) -> Task:
    return Task(
        task_id=record.task_id,
        project_id=record.project_id,
        assigned_agent=record.assigned_agent,
        status=record.status,
        dependencies=list(record.dependencies or []),
        description=record.description,
        progress=record.progress,
        started_at=_aware(record.started_at),
        completed_at=_aware(record.completed_at),
        error_message=record.error_message,
        output_artifact_id=record.output_artifact_id,
        created_at=_aware(record.created_at),
        updated_at=_aware(record.updated_at),
    )


def _to_artifact(record: ArtifactRecord) -> Artifact:
    return Artifact(
        artifact_id=record.artifact_id,
        project_id=record.project_id,
        agent_name=record.agent_name,
        artifact_type=record.artifact_type,
        metadata=dict(record.extra or {}),
        location=record.location,
        version=record.version,
        title=record.title,
        description=record.description,
        created_at=_aware(record.created_at),
    )


def _to_user(record: UserRecord) -> User:
    return User(
        user_id=record.user_id,
        email=record.email,
        name=record.name,
        given_name=record.given_name,
        family_name=record.family_name,
        picture=record.picture,
        provider=record.provider,
        provider_user_id=record.provider_user_id,
        created_at=_aware(record.created_at),
        updated_at=_aware(record.updated_at),
    )


def _to_connection(record: ConnectionRecord) -> Connection:
    return Connection(
        connection_id=record.connection_id,
        project_id=record.project_id,
        user_id=record.user_id,
        connected_at=_aware(record.connected_at),
        expires_at=_aware(record.expires_at),
    )


class ProjectStore:
    """
    Persistence for every record the pipeline touches.

    Projects, tasks, users and connections are mutable. Artifacts are never
    changed or deleted once written, and each project's artifacts are listed in
    insertion order. Task status changes follow ``TASK_TRANSITIONS``. State
    changes to projects and tasks are published to subscribed listeners after
    the transaction commits.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory
        self._listeners: List[StateListener] = []

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> "ProjectStore":
        return cls(create_session_factory(database_url, echo=echo))

    # -- state change listeners -------------------------------------------------

    def subscribe(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def publish(self, event: NotificationEvent) -> None:
        """Hand ``event`` to every listener; a failing listener never affects the writer."""

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                LOGGER.exception("State listener failed for %s event on project %s", event.type.value, event.project_id)

    # -- users ----------------------------------------------------------------

    def upsert_user(self, user: User) -> User:
        with session_scope(self._session_factory) as session:
            record = session.get(UserRecord, user.user_id)
            if record is None:
                record = UserRecord(user_id=user.user_id, created_at=utcnow())
                session.add(record)
            record.email = user.email
            record.name = user.name
            record.given_name = user.given_name
            record.family_name = user.family_name
            record.picture = user.picture
            record.provider = user.provider.value
            record.provider_user_id = user.provider_user_id
            record.updated_at = utcnow()
            session.flush()
            return _to_user(record)

    def get_user(self, user_id: str) -> Optional[User]:
        with session_scope(self._session_factory) as session:
            record = session.get(UserRecord, user_id)
            return _to_user(record) if record else None

    def update_user(self, user_id: str, **changes: Any) -> User:
        unknown = set(changes) - _USER_FIELDS
        if unknown:
            raise ServiceError.validation("Unsupported profile fields", fields=sorted(unknown))
        with session_scope(self._session_factory) as session:
            record = session.get(UserRecord, user_id)
            if record is None:
                raise ServiceError.not_found("User", user_id)
            for key, value in changes.items():
                setattr(record, key, value)
            record.updated_at = utcnow()
            session.flush()
            return _to_user(record)

    # -- projects -------------------------------------------------------------

    def create_project(self, owner_id: str, project_name: str, request_prompt: str) -> Project:
        now = utcnow()
        with session_scope(self._session_factory) as session:
            record = ProjectRecord(
                project_id=_new_id(),
                owner_id=owner_id,
                project_name=project_name,
                request_prompt=request_prompt,
                status=ProjectStatus.PENDING.value,
                created_at=now,
                updated_at=now,
            )
            session.add(record)
            session.flush()
            project = _to_project(record)
        LOGGER.info("Created project %s for owner %s", project.project_id, owner_id)
        return project

    def get_project(self, project_id: str) -> Optional[Project]:
        with session_scope(self._session_factory) as session:
            record = session.get(ProjectRecord, project_id)
            return _to_project(record) if record else None

    def require_project(self, project_id: str) -> Project:
        project = self.get_project(project_id)
        if project is None:
            raise ServiceError.not_found("Project", project_id)
        return project

    def list_projects(self, owner_id: str) -> List[Project]:
        with session_scope(self._session_factory) as session:
            stmt = (
                select(ProjectRecord)
                .where(ProjectRecord.owner_id == owner_id)
                .order_by(ProjectRecord.created_at.desc())
            )
            return [_to_project(record) for record in session.scalars(stmt)]

    def update_project(
        self,
        project_id: str,
        *,
        project_name: Optional[str] = None,
        request_prompt: Optional[str] = None,
    ) -> Project:
        with session_scope(self._session_factory) as session:
            record = session.get(ProjectRecord, project_id)
            if record is None:
                raise ServiceError.not_found("Project", project_id)
            if project_name is not None:
                record.project_name = project_name
            if request_prompt is not None:
                record.request_prompt = request_prompt
            record.updated_at = utcnow()
            session.flush()
            return _to_project(record)

    def set_project_status(
        self, project_id: str, status: ProjectStatus, *, run_id: Optional[str] = None
    ) -> Project:
        """Change the status; a ``run_id`` marks the start of a new pipeline run."""

        with session_scope(self._session_factory) as session:
            record = session.get(ProjectRecord, project_id)
            if record is None:
                raise ServiceError.not_found("Project", project_id)
            previous = record.status
            record.status = status.value
            if run_id is not None:
                record.run_id = run_id
            record.updated_at = utcnow()
            session.flush()
            project = _to_project(record)
        LOGGER.info("Project %s status %s -> %s", project_id, previous, status.value)
        self.publish(
            NotificationEvent(
                type=EventType.PROJECT_UPDATE,
                project_id=project_id,
                data={"status": status.value, "previousStatus": previous},
            )
        )
        return project

    # -- tasks ----------------------------------------------------------------

    def find_task(self, project_id: str, agent_name: str) -> Optional[Task]:
        with session_scope(self._session_factory) as session:
            stmt = select(TaskRecord).where(
                TaskRecord.project_id == project_id,
                TaskRecord.assigned_agent == agent_name,
            )
            record = session.scalars(stmt).first()
            return _to_task(record) if record else None

    def ensure_task(
        self,
        project_id: str,
        agent_name: str,
        *,
        dependencies: Sequence[str] = (),
        description: Optional[str] = None,
    ) -> Task:
        """Return the task for ``(project_id, agent_name)``, creating it on first use."""

        existing = self.find_task(project_id, agent_name)
        if existing is not None:
            return existing
        now = utcnow()
        try:
            with session_scope(self._session_factory) as session:
                record = TaskRecord(
                    task_id=_new_id(),
                    project_id=project_id,
                    assigned_agent=agent_name,
                    dependencies=list(dependencies),
                    description=description,
                    progress=0,
                    created_at=now,
                    updated_at=now,
                )
                session.add(record)
                session.flush()
                task = _to_task(record)
        except IntegrityError:
            # A concurrent hand-off created it first.
            existing = self.find_task(project_id, agent_name)
            if existing is None:
                raise
            return existing
        LOGGER.debug("Created task %s for %s on project %s", task.task_id, agent_name, project_id)
        return task

    def get_task(self, task_id: str) -> Optional[Task]:
        with session_scope(self._session_factory) as session:
            record = session.get(TaskRecord, task_id)
            return _to_task(record) if record else None

    def update_task(self, task_id: str, **changes: Any) -> Task:
        unknown = set(changes) - _TASK_FIELDS
        if unknown:
            raise ServiceError.validation("Unsupported task fields", fields=sorted(unknown))
        with session_scope(self._session_factory) as session:
            record = session.get(TaskRecord, task_id)
            if record is None:
                raise ServiceError.not_found("Task", task_id)
            if "status" in changes:
                current, target = TaskStatus(record.status), TaskStatus(changes["status"])
                if not can_transition(current, target):
                    raise ServiceError.conflict(
                        f"Task cannot move from {current.value} to {target.value}",
                        task_id=task_id,
                        current_status=current.value,
                        target_status=target.value,
                    )
            for key, value in changes.items():
                setattr(record, key, value.value if isinstance(value, Enum) else value)
            record.updated_at = utcnow()
            session.flush()
            task = _to_task(record)
        self.publish(
            NotificationEvent(
                type=EventType.TASK_UPDATE,
                project_id=task.project_id,
                data={
                    "taskId": task.task_id,
                    "agentName": task.assigned_agent,
                    "status": task.status.value,
                    "progress": task.progress,
                },
            )
        )
        return task

    def mark_for_approval(self, task_id: str, output_artifact_id: Optional[str] = None) -> Task:
        """Park a finished stage until a reviewer approves or rejects it."""
        return self.update_task(
            task_id,
            status=TaskStatus.PENDING_APPROVAL,
            progress=100,
            completed_at=utcnow(),
            output_artifact_id=output_artifact_id,
        )

    def approve_task(self, task_id: str) -> Task:
        self._require_pending(task_id)
        return self.update_task(task_id, status=TaskStatus.DONE)

    def reject_task(self, task_id: str, reason: Optional[str] = None) -> Task:
        """
        Send a parked stage back to TODO so it is generated again.

        ``output_artifact_id`` keeps pointing at the rejected output; the next
        run writes a new version instead of reusing it.
        """
        self._require_pending(task_id)
        return self.update_task(
            task_id,
            status=TaskStatus.TODO,
            progress=0,
            started_at=None,
            completed_at=None,
            error_message=reason,
        )

    def find_pending_approval(self, project_id: str, task_id: Optional[str] = None) -> Optional[Task]:
        for task in self.list_tasks(project_id):
            if task.status is not TaskStatus.PENDING_APPROVAL:
                continue
            if task_id is None or task.task_id == task_id:
                return task
        return None

    def _require_pending(self, task_id: str) -> Task:
        task = self.get_task(task_id)
        if task is None:
            raise ServiceError.not_found("Task", task_id)
        if task.status is not TaskStatus.PENDING_APPROVAL:
            raise ServiceError.conflict(
                f"Task is {task.status.value}, not PENDING_APPROVAL", task_id=task_id
            )
        return task

    def list_tasks(self, project_id: str) -> List[Task]:
        with session_scope(self._session_factory) as session:
            stmt = (
                select(TaskRecord)
                .where(TaskRecord.project_id == project_id)
                .order_by(TaskRecord.created_at, TaskRecord.task_id)
            )
            return [_to_task(record) for record in session.scalars(stmt)]

    # -- artifacts ------------------------------------------------------------

    def create_artifacts(self, project_id: str, agent_name: str, drafts: Sequence[NewArtifact]) -> List[Artifact]:
        """
        Persist ``drafts`` in one transaction and return them in order.

        Creation is keyed by (project, agent, type, version). A draft whose key
        already exists is not written again; the stored artifact is returned in
        its place, so a redelivered stage yields the same artifacts.
        """
        try:
            with session_scope(self._session_factory) as session:
                artifacts = [self._get_or_add_artifact(session, project_id, agent_name, draft) for draft in drafts]
        except IntegrityError:
            LOGGER.info("Artifacts for %s on project %s were created concurrently", agent_name, project_id)
            with session_scope(self._session_factory) as session:
                artifacts = []
                for draft in drafts:
                    record = self._find_artifact(session, project_id, agent_name, draft)
                    if record is None:
                        raise
                    artifacts.append(_to_artifact(record))
        return artifacts

    def add_artifact(self, project_id: str, agent_name: str, draft: NewArtifact) -> Artifact:
        """Persist one artifact; an existing (project, agent, type, version) key is a conflict."""
        try:
            with session_scope(self._session_factory) as session:
                if self._find_artifact(session, project_id, agent_name, draft) is not None:
                    raise self._duplicate_artifact(project_id, agent_name, draft)
                record = self._artifact_record(project_id, agent_name, draft)
                session.add(record)
                session.flush()
                return _to_artifact(record)
        except IntegrityError as exc:
            raise self._duplicate_artifact(project_id, agent_name, draft) from exc

    def list_artifacts(self, project_id: str) -> List[Artifact]:
        with session_scope(self._session_factory) as session:
            stmt = (
                select(ArtifactRecord)
                .where(ArtifactRecord.project_id == project_id)
                .order_by(ArtifactRecord.sequence)
            )
            return [_to_artifact(record) for record in session.scalars(stmt)]

    @staticmethod
    def _find_artifact(
        session: Session, project_id: str, agent_name: str, draft: NewArtifact
    ) -> Optional[ArtifactRecord]:
        stmt = select(ArtifactRecord).where(
            ArtifactRecord.project_id == project_id,
            ArtifactRecord.agent_name == agent_name,
            ArtifactRecord.artifact_type == draft.artifact_type.value,
            ArtifactRecord.version == draft.version,
        )
        return session.scalars(stmt).first()

    def _get_or_add_artifact(
        self, session: Session, project_id: str, agent_name: str, draft: NewArtifact
    ) -> Artifact:
        existing = self._find_artifact(session, project_id, agent_name, draft)
        if existing is not None:
            LOGGER.info(
                "Artifact %s v%s for %s already stored on project %s",
                draft.artifact_type.value,
                draft.version,
                agent_name,
                project_id,
            )
            return _to_artifact(existing)
        record = self._artifact_record(project_id, agent_name, draft)
        session.add(record)
        session.flush()
        return _to_artifact(record)

    @staticmethod
    def _duplicate_artifact(project_id: str, agent_name: str, draft: NewArtifact) -> ServiceError:
        return ServiceError.conflict(
            "Artifact already exists",
            project_id=project_id,
            agent_name=agent_name,
            artifact_type=draft.artifact_type.value,
            version=draft.version,
        )

    @staticmethod
    def _artifact_record(project_id: str, agent_name: str, draft: NewArtifact) -> ArtifactRecord:
        return ArtifactRecord(
            artifact_id=_new_id(),
            project_id=project_id,
            agent_name=agent_name,
            artifact_type=draft.artifact_type.value,
            location=draft.location,
            version=draft.version,
            title=draft.title,
            description=draft.description,
            extra=dict(draft.metadata),
            created_at=utcnow(),
        )
        session.add(record)
        session.flush()
        return _to_artifact(record)

    # -- connections ----------------------------------------------------------

    def add_connection(self, connection: Connection) -> Connection:
        with session_scope(self._session_factory) as session:
            record = session.get(ConnectionRecord, connection.connection_id)
            if record is None:
                record = ConnectionRecord(connection_id=connection.connection_id)
                session.add(record)
            record.project_id = connection.project_id
            record.user_id = connection.user_id
            record.connected_at = connection.connected_at
            record.expires_at = connection.expires_at
            session.flush()
            return _to_connection(record)

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        with session_scope(self._session_factory) as session:
            record = session.get(ConnectionRecord, connection_id)
            return _to_connection(record) if record else None

    def bind_connection(
        self, connection_id: str, project_id: Optional[str], expires_at: dt.datetime
    ) -> Connection:
        with session_scope(self._session_factory) as session:
            record = session.get(ConnectionRecord, connection_id)
            if record is None:
                raise ServiceError.not_found("Connection", connection_id)
            record.project_id = project_id
            record.expires_at = expires_at
            session.flush()
            return _to_connection(record)

    def remove_connection(self, connection_id: str) -> bool:
        with session_scope(self._session_factory) as session:
            record = session.get(ConnectionRecord, connection_id)
            if record is None:
                return False
            session.delete(record)
            return True

    def list_connections(self, project_id: str, now: Optional[dt.datetime] = None) -> List[Connection]:
        """Return the live (unexpired) connections subscribed to ``project_id``."""

        cutoff = now or utcnow()
        with session_scope(self._session_factory) as session:
            stmt = (
                select(ConnectionRecord)
                .where(ConnectionRecord.project_id == project_id, ConnectionRecord.expires_at > cutoff)
                .order_by(ConnectionRecord.connected_at)
            )
            return [_to_connection(record) for record in session.scalars(stmt)]


__all__ = ["ProjectStore", "StateListener"]

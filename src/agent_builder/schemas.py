"""Shared data models for projects, tasks, artifacts and pipeline messages."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProjectStatus(str, Enum):
    """Lifecycle states of a project."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (ProjectStatus.COMPLETED, ProjectStatus.FAILED)


class TaskStatus(str, Enum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"
    FAILED = "FAILED"
    PENDING_APPROVAL = "PENDING_APPROVAL"


class ArtifactType(str, Enum):
    SRS_DOCUMENT = "SRS_DOCUMENT"
    SOURCE_CODE = "SOURCE_CODE"
    DEPLOYMENT_URL = "DEPLOYMENT_URL"
    TEST_REPORT = "TEST_REPORT"


class AuthProvider(str, Enum):
    GOOGLE = "google"
    COGNITO = "cognito"


class EventType(str, Enum):
    """Notification types pushed to live connections."""

    PROJECT_UPDATE = "project_update"
    TASK_UPDATE = "task_update"
    AGENT_COMPLETE = "agent_complete"


class DomainModel(BaseModel):
    """Base model serialising to camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Project(DomainModel):
    project_id: str
    owner_id: str
    project_name: str
    request_prompt: str
    status: ProjectStatus = ProjectStatus.PENDING
    run_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Task(DomainModel):
    """One pipeline stage of a project, assigned to a single agent."""

    task_id: str
    project_id: str
    assigned_agent: str
    status: TaskStatus = TaskStatus.TODO
    dependencies: List[str] = Field(default_factory=list, description="Task ids that must finish first, in order.")
    description: Optional[str] = None
    progress: int = Field(default=0, ge=0, le=100)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    output_artifact_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Artifact(DomainModel):
    """Immutable work product of one pipeline stage."""

    model_config = ConfigDict(frozen=True)

    artifact_id: str
    project_id: str
    agent_name: str
    artifact_type: ArtifactType
    metadata: Dict[str, Any] = Field(default_factory=dict)
    location: str
    version: str = "1.0"
    title: str
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class NewArtifact(DomainModel):
    """Artifact content before the store assigns an id and timestamp."""

    artifact_type: ArtifactType
    location: str
    version: str = "1.0"
    title: str
    description: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class User(DomainModel):
    user_id: str
    email: str
    name: Optional[str] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    picture: Optional[str] = None
    provider: AuthProvider = AuthProvider.COGNITO
    provider_user_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Connection(DomainModel):
    """A live WebSocket connection, optionally bound to one project."""

    connection_id: str
    project_id: Optional[str] = None
    user_id: Optional[str] = None
    connected_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime


class HandoffMessage(DomainModel):
    """Queue payload asking ``agent_name`` to run for ``project_id`` within one run."""

    project_id: str = Field(..., min_length=1)
    agent_name: str = Field(..., min_length=1)
    run_id: Optional[str] = None

    def to_wire(self) -> Dict[str, str]:
        return self.model_dump(by_alias=True, exclude_none=True)

    @classmethod
    def from_wire(cls, payload: Dict[str, Any]) -> "HandoffMessage":
        return cls.model_validate(payload)


class AgentInvocation(DomainModel):
    project_id: str
    project: Project
    previous_artifacts: List[Artifact] = Field(default_factory=list)
    # Rejected output of this stage; it is never reused and is superseded by a new version.
    superseded_artifact_id: Optional[str] = None


class AgentResponse(DomainModel):
    """Outcome of one agent stage. Failures are data, never exceptions."""

    success: bool
    artifacts: List[Artifact] = Field(default_factory=list)
    metadata: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None


class NotificationEvent(DomainModel):
    type: EventType
    project_id: str
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


__all__ = [
    "AgentInvocation",
    "AgentResponse",
    "Artifact",
    "ArtifactType",
    "AuthProvider",
    "Connection",
    "DomainModel",
    "EventType",
    "HandoffMessage",
    "NewArtifact",
    "NotificationEvent",
    "Project",
    "ProjectStatus",
    "Task",
    "TaskStatus",
    "User",
    "utcnow",
]

"""Pydantic request and response models for the HTTP API."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import Field, HttpUrl, field_validator

from ..schemas import ArtifactType, AuthProvider, DomainModel, ProjectStatus


def _clean_name(value: str) -> str:
    value = value.strip()
    if not 1 <= len(value) <= 100:
        raise ValueError("Project name must be between 1 and 100 characters")
    return value


def _clean_prompt(value: str) -> str:
    value = value.strip()
    if not 10 <= len(value) <= 2000:
        raise ValueError("Request prompt must be between 10 and 2000 characters")
    return value


class CreateProjectRequest(DomainModel):
    project_name: str = Field(..., description="Display name, 1-100 characters after trimming")
    request_prompt: str = Field(..., description="What to build, 10-2000 characters after trimming")

    @field_validator("project_name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        return _clean_name(value)

    @field_validator("request_prompt")
    @classmethod
    def _check_prompt(cls, value: str) -> str:
        return _clean_prompt(value)


class UpdateProjectRequest(DomainModel):
    project_name: Optional[str] = Field(default=None, description="1-100 characters after trimming")
    request_prompt: Optional[str] = Field(default=None, description="10-2000 characters after trimming")

    @field_validator("project_name")
    @classmethod
    def _check_name(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _clean_name(value)

    @field_validator("request_prompt")
    @classmethod
    def _check_prompt(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _clean_prompt(value)


class OrchestrateRequest(DomainModel):
    project_id: str = Field(..., min_length=1)


class OrchestrateResponse(DomainModel):
    project_id: str
    status: ProjectStatus


class ResumeRequest(DomainModel):
    task_id: Optional[str] = None


class ResumeResponse(DomainModel):
    project_id: str
    task_id: str
    approved_agent: str
    next_agent: Optional[str] = None
    status: ProjectStatus


class RejectRequest(DomainModel):
    reason: Optional[str] = Field(default=None, max_length=2000)


class CreateArtifactRequest(DomainModel):
    project_id: str = Field(..., min_length=1)
    agent_name: str = Field(default="User", min_length=1)
    artifact_type: ArtifactType
    location: str = Field(..., min_length=1)
    version: str = Field(default="1.0", min_length=1)
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class CreateUserRequest(DomainModel):
    email: str = Field(..., min_length=3, max_length=320)
    name: Optional[str] = Field(default=None, max_length=100)
    given_name: Optional[str] = Field(default=None, max_length=50)
    family_name: Optional[str] = Field(default=None, max_length=50)
    picture: Optional[HttpUrl] = None
    provider: AuthProvider = AuthProvider.COGNITO
    provider_user_id: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        value = value.strip()
        local, _, domain = value.partition("@")
        if not local or "." not in domain:
            raise ValueError("A valid email address is required")
        return value


class UpdateProfileRequest(DomainModel):
    name: Optional[str] = Field(default=None, max_length=100)
    given_name: Optional[str] = Field(default=None, max_length=50)
    family_name: Optional[str] = Field(default=None, max_length=50)
    picture: Optional[HttpUrl] = None


class TaskSummary(DomainModel):
    total: int
    completed: int
    in_progress: int
    awaiting_approval: int
    failed: int
    pending: int


class ProjectStatusReport(DomainModel):
    project_id: str
    status: ProjectStatus
    progress: int
    current_task: Optional[str] = None
    estimated_completion: Optional[datetime] = None
    task_summary: TaskSummary


class HealthResponse(DomainModel):
    status: str
    timestamp: datetime
    version: str

"""API routes for projects, tasks, artifacts, users and orchestration."""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends

from .. import __version__
from ..errors import ErrorKind, ServiceError
from ..orchestrator import Orchestrator
from ..persistence import ProjectStore
from ..pipeline import agent_names
from ..schemas import Artifact, NewArtifact, Project, ProjectStatus, Task, User, utcnow
from .auth import current_user_id, enforce_rate_limit, require_api_key
from .dependencies import get_orchestrator, get_store
from .models import (
    CreateArtifactRequest,
    CreateProjectRequest,
    CreateUserRequest,
    HealthResponse,
    OrchestrateRequest,
    OrchestrateResponse,
    ProjectStatusReport,
    RejectRequest,
    ResumeRequest,
    ResumeResponse,
    UpdateProfileRequest,
    UpdateProjectRequest,
)
from .progress import summarize_progress

router = APIRouter()
protected = [Depends(require_api_key), Depends(enforce_rate_limit)]


def _owned_project(store: ProjectStore, project_id: str, user_id: str) -> Project:
    project = store.require_project(project_id)
    if project.owner_id != user_id:
        raise ServiceError(ErrorKind.FORBIDDEN, "Project belongs to another user", {"project_id": project_id})
    return project


@router.get("/health", response_model=HealthResponse)
async def healthcheck() -> HealthResponse:
    return HealthResponse(status="ok", timestamp=utcnow(), version=__version__)


@router.post("/projects", response_model=Project, status_code=201, dependencies=protected)
def create_project(
    payload: CreateProjectRequest,
    user_id: str = Depends(current_user_id),
    store: ProjectStore = Depends(get_store),
) -> Project:
    return store.create_project(user_id, payload.project_name, payload.request_prompt)


@router.get("/projects", response_model=List[Project], dependencies=protected)
def list_projects(
    user_id: str = Depends(current_user_id),
    store: ProjectStore = Depends(get_store),
) -> List[Project]:
    return store.list_projects(user_id)


@router.get("/projects/{project_id}", response_model=Project, dependencies=protected)
def get_project(
    project_id: str,
    user_id: str = Depends(current_user_id),
    store: ProjectStore = Depends(get_store),
) -> Project:
    return _owned_project(store, project_id, user_id)


@router.patch("/projects/{project_id}", response_model=Project, dependencies=protected)
def update_project(
    project_id: str,
    payload: UpdateProjectRequest,
    user_id: str = Depends(current_user_id),
    store: ProjectStore = Depends(get_store),
) -> Project:
    project = _owned_project(store, project_id, user_id)
    if payload.request_prompt is not None and project.status is not ProjectStatus.PENDING:
        raise ServiceError.conflict("The request prompt can only change before the pipeline starts")
    return store.update_project(
        project_id,
        project_name=payload.project_name,
        request_prompt=payload.request_prompt,
    )


@router.get("/projects/{project_id}/tasks", response_model=List[Task], dependencies=protected)
def list_tasks(
    project_id: str,
    user_id: str = Depends(current_user_id),
    store: ProjectStore = Depends(get_store),
) -> List[Task]:
    _owned_project(store, project_id, user_id)
    return store.list_tasks(project_id)


@router.get("/projects/{project_id}/status", response_model=ProjectStatusReport, dependencies=protected)
def project_status(
    project_id: str,
    user_id: str = Depends(current_user_id),
    store: ProjectStore = Depends(get_store),
) -> ProjectStatusReport:
    project = _owned_project(store, project_id, user_id)
    return summarize_progress(project, store.list_tasks(project_id))


@router.get("/projects/{project_id}/artifacts", response_model=List[Artifact], dependencies=protected)
def list_artifacts(
    project_id: str,
    user_id: str = Depends(current_user_id),
    store: ProjectStore = Depends(get_store),
) -> List[Artifact]:
    _owned_project(store, project_id, user_id)
    return store.list_artifacts(project_id)


@router.post("/artifacts", response_model=Artifact, status_code=201, dependencies=protected)
def create_artifact(
    payload: CreateArtifactRequest,
    user_id: str = Depends(current_user_id),
    store: ProjectStore = Depends(get_store),
) -> Artifact:
    _owned_project(store, payload.project_id, user_id)
    if payload.agent_name in agent_names():
        raise ServiceError.validation(
            "Pipeline stage artifacts are created by the pipeline", agent_name=payload.agent_name
        )
    draft = NewArtifact(
        artifact_type=payload.artifact_type,
        location=payload.location,
        version=payload.version,
        title=payload.title,
        description=payload.description,
        metadata=payload.metadata,
    )
    return store.add_artifact(payload.project_id, payload.agent_name, draft)


@router.post("/orchestrate", response_model=OrchestrateResponse, dependencies=protected)
def orchestrate(
    payload: OrchestrateRequest,
    user_id: str = Depends(current_user_id),
    store: ProjectStore = Depends(get_store),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> OrchestrateResponse:
    project = store.get_project(payload.project_id)
    if project is not None and project.owner_id != user_id:
        raise ServiceError(ErrorKind.FORBIDDEN, "Project belongs to another user", {"project_id": payload.project_id})
    result = orchestrator.start(payload.project_id)
    return OrchestrateResponse(project_id=result["project_id"], status=result["status"])


@router.post("/projects/{project_id}/resume", response_model=ResumeResponse, dependencies=protected)
def resume_project(
    project_id: str,
    payload: Optional[ResumeRequest] = None,
    user_id: str = Depends(current_user_id),
    store: ProjectStore = Depends(get_store),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> ResumeResponse:
    _owned_project(store, project_id, user_id)
    result = orchestrator.resume(project_id, payload.task_id if payload else None)
    return ResumeResponse(**result)


@router.post(
    "/projects/{project_id}/tasks/{task_id}/reject", response_model=OrchestrateResponse, dependencies=protected
)
def reject_task(
    project_id: str,
    task_id: str,
    payload: Optional[RejectRequest] = None,
    user_id: str = Depends(current_user_id),
    store: ProjectStore = Depends(get_store),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> OrchestrateResponse:
    _owned_project(store, project_id, user_id)
    result = orchestrator.reject(project_id, task_id, payload.reason if payload else None)
    return OrchestrateResponse(project_id=result["project_id"], status=result["status"])


@router.post("/users", response_model=User, status_code=201, dependencies=protected)
def create_user(
    payload: CreateUserRequest,
    user_id: str = Depends(current_user_id),
    store: ProjectStore = Depends(get_store),
) -> User:
    existing = store.get_user(user_id)
    user = User(
        user_id=user_id,
        email=payload.email,
        name=payload.name,
        given_name=payload.given_name,
        family_name=payload.family_name,
        picture=str(payload.picture) if payload.picture else None,
        provider=payload.provider,
        provider_user_id=payload.provider_user_id,
        created_at=existing.created_at if existing else utcnow(),
    )
    return store.upsert_user(user)


@router.get("/users/profile", response_model=User, dependencies=protected)
def get_profile(
    user_id: str = Depends(current_user_id),
    store: ProjectStore = Depends(get_store),
) -> User:
    user = store.get_user(user_id)
    if user is None:
        raise ServiceError.not_found("User", user_id)
    return user


@router.patch("/users/profile", response_model=User, dependencies=protected)
def update_profile(
    payload: UpdateProfileRequest,
    user_id: str = Depends(current_user_id),
    store: ProjectStore = Depends(get_store),
) -> User:
    changes = payload.model_dump(exclude_unset=True)
    if "picture" in changes and changes["picture"] is not None:
        changes["picture"] = str(changes["picture"])
    if not changes:
        raise ServiceError.validation("No profile fields to update")
    return store.update_user(user_id, **changes)

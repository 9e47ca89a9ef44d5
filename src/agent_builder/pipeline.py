"""The fixed, ordered list of agent stages every project moves through."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from .errors import ServiceError
from .schemas import ArtifactType


PRODUCT_MANAGER = "ProductManagerAgent"
BACKEND_ENGINEER = "BackendEngineerAgent"
FRONTEND_ENGINEER = "FrontendEngineerAgent"
DEVOPS_ENGINEER = "DevOpsEngineerAgent"


@dataclass(frozen=True)
class Stage:
    """Descriptor for one pipeline stage."""

    agent_name: str
    description: str
    produces: Tuple[ArtifactType, ...]


STAGES: Tuple[Stage, ...] = (
    Stage(
        agent_name=PRODUCT_MANAGER,
        description="Analyse the request and write the software requirements specification",
        produces=(ArtifactType.SRS_DOCUMENT,),
    ),
    Stage(
        agent_name=BACKEND_ENGINEER,
        description="Design the backend APIs and database schema",
        produces=(ArtifactType.SOURCE_CODE,),
    ),
    Stage(
        agent_name=FRONTEND_ENGINEER,
        description="Design the frontend components, pages and routing",
        produces=(ArtifactType.SOURCE_CODE,),
    ),
    Stage(
        agent_name=DEVOPS_ENGINEER,
        description="Plan deployment, monitoring and the test report",
        produces=(ArtifactType.DEPLOYMENT_URL, ArtifactType.TEST_REPORT),
    ),
)


def agent_names() -> List[str]:
    return [stage.agent_name for stage in STAGES]


def first_stage() -> Stage:
    return STAGES[0]


def _index(agent_name: str) -> int:
    for position, stage in enumerate(STAGES):
        if stage.agent_name == agent_name:
            return position
    raise ServiceError.validation(f"Unknown agent: {agent_name}", agent_name=agent_name)


def get_stage(agent_name: str) -> Stage:
    return STAGES[_index(agent_name)]


def next_agent(agent_name: str) -> Optional[str]:
    """Name of the stage after ``agent_name``, or ``None`` for the last stage."""

    position = _index(agent_name) + 1
    return STAGES[position].agent_name if position < len(STAGES) else None


def previous_agent(agent_name: str) -> Optional[str]:
    position = _index(agent_name)
    return STAGES[position - 1].agent_name if position > 0 else None


def is_terminal(agent_name: str) -> bool:
    return next_agent(agent_name) is None


__all__ = [
    "BACKEND_ENGINEER",
    "DEVOPS_ENGINEER",
    "FRONTEND_ENGINEER",
    "PRODUCT_MANAGER",
    "STAGES",
    "Stage",
    "agent_names",
    "first_stage",
    "get_stage",
    "is_terminal",
    "next_agent",
    "previous_agent",
]

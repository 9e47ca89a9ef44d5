"""Agent units, one per pipeline stage."""

from __future__ import annotations

from typing import Dict, Type

from ..generation import SpecGenerator
from ..handoff import HandoffQueue
from ..persistence import ProjectStore
from ..pipeline import STAGES
from .backend_engineer import BackendEngineerUnit
from .base import AgentUnit
from .devops_engineer import DevOpsEngineerUnit
from .frontend_engineer import FrontendEngineerUnit
from .product_manager import ProductManagerUnit

UNIT_TYPES: Dict[str, Type[AgentUnit]] = {
    unit.agent_name: unit
    for unit in (ProductManagerUnit, BackendEngineerUnit, FrontendEngineerUnit, DevOpsEngineerUnit)
}


def build_agent_units(store: ProjectStore, queue: HandoffQueue, generator: SpecGenerator) -> Dict[str, AgentUnit]:
    """Instantiate one unit per stage, keyed by agent name in pipeline order."""

    missing = [stage.agent_name for stage in STAGES if stage.agent_name not in UNIT_TYPES]
    if missing:
        raise RuntimeError(f"No agent unit registered for: {', '.join(missing)}")
    return {stage.agent_name: UNIT_TYPES[stage.agent_name](store, queue, generator) for stage in STAGES}


__all__ = [
    "AgentUnit",
    "BackendEngineerUnit",
    "DevOpsEngineerUnit",
    "FrontendEngineerUnit",
    "ProductManagerUnit",
    "UNIT_TYPES",
    "build_agent_units",
]

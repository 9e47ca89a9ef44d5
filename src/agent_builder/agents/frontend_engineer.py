from __future__ import annotations

from typing import Any, Dict, List, Tuple

from ..pipeline import FRONTEND_ENGINEER
from ..schemas import AgentInvocation, ArtifactType, NewArtifact
from .base import AgentUnit, as_list


class FrontendEngineerUnit(AgentUnit):
    """Designs the single-page frontend from the latest requirements specification."""

    agent_name = FRONTEND_ENGINEER

    def build_artifacts(self, invocation: AgentInvocation) -> Tuple[List[NewArtifact], Dict[str, Any]]:
        requirements = self.requirements_from(invocation.previous_artifacts)
        specs = self._generator.generate_frontend(requirements)
        components = as_list(specs.get("components"))
        pages = as_list(specs.get("pages"))

        artifact = NewArtifact(
            artifact_type=ArtifactType.SOURCE_CODE,
            location=f"https://github.com/agent-builder/{invocation.project_id}-frontend",
            title="Frontend Source Code",
            description=f"React application with TypeScript for {invocation.project.project_name}",
            metadata={
                "framework": "React 18 + TypeScript",
                "styling": specs.get("styling") or "Tailwind CSS",
                "state_management": "Redux Toolkit",
                "routing": as_list(specs.get("routing")),
                "components": components,
                "pages": pages,
                "features": as_list(requirements.get("features")),
                "generated_at": self.generated_at(),
                "ai_generated": self.ai_generated,
            },
        )
        return [artifact], {"components": len(components), "pages": len(pages)}


__all__ = ["FrontendEngineerUnit"]

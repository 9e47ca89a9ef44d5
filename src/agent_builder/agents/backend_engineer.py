from __future__ import annotations

from typing import Any, Dict, List, Tuple

from ..pipeline import BACKEND_ENGINEER
from ..schemas import AgentInvocation, ArtifactType, NewArtifact
from .base import AgentUnit, as_list


class BackendEngineerUnit(AgentUnit):
    """Designs the backend from the latest requirements specification."""

    agent_name = BACKEND_ENGINEER

    def build_artifacts(self, invocation: AgentInvocation) -> Tuple[List[NewArtifact], Dict[str, Any]]:
        requirements = self.requirements_from(invocation.previous_artifacts)
        specs = self._generator.generate_backend(requirements)
        apis = as_list(specs.get("apis"))

        artifact = NewArtifact(
            artifact_type=ArtifactType.SOURCE_CODE,
            location=f"https://github.com/agent-builder/{invocation.project_id}-backend",
            title="Backend Source Code",
            description=f"Serverless backend on AWS Lambda and DynamoDB for {invocation.project.project_name}",
            metadata={
                "framework": "AWS Lambda",
                "database": "Amazon DynamoDB",
                "apis": apis,
                "database_schema": specs.get("database") or {},
                "architecture": specs.get("architecture") or "",
                "authentication": "AWS Cognito",
                "generated_at": self.generated_at(),
                "ai_generated": self.ai_generated,
            },
        )
        return [artifact], {"apiEndpoints": len(apis), "architecture": "Serverless"}


__all__ = ["BackendEngineerUnit"]

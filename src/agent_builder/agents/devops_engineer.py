from __future__ import annotations

import re
from typing import Any, Dict, List, Tuple

from ..pipeline import BACKEND_ENGINEER, DEVOPS_ENGINEER, FRONTEND_ENGINEER
from ..schemas import AgentInvocation, ArtifactType, NewArtifact
from .base import AgentUnit


def deployment_host(project_id: str) -> str:
    slug = re.sub(r"[^a-z0-9]", "-", project_id.lower())
    return f"https://{slug}.agent-builder.app"


class DevOpsEngineerUnit(AgentUnit):
    """Final stage: plans the deployment and publishes the live URL and test report."""

    agent_name = DEVOPS_ENGINEER

    def build_artifacts(self, invocation: AgentInvocation) -> Tuple[List[NewArtifact], Dict[str, Any]]:
        previous = invocation.previous_artifacts
        backend = self.find_latest(previous, ArtifactType.SOURCE_CODE, BACKEND_ENGINEER)
        frontend = self.find_latest(previous, ArtifactType.SOURCE_CODE, FRONTEND_ENGINEER)
        if backend is None or frontend is None:
            self._logger.warning("Missing source artifacts for project %s; planning from partial input", invocation.project_id)
        specs = self._generator.generate_devops(
            backend.metadata if backend else {},
            frontend.metadata if frontend else {},
        )

        project_name = invocation.project.project_name
        deployment = NewArtifact(
            artifact_type=ArtifactType.DEPLOYMENT_URL,
            location=deployment_host(invocation.project_id),
            title="Live Application",
            description=f"Deployed {project_name} running on AWS",
            metadata={
                "infrastructure": specs.get("infrastructure") or {},
                "deployment": specs.get("deployment") or {},
                "monitoring": specs.get("monitoring") or {},
                "security": specs.get("security") or {},
                "generated_at": self.generated_at(),
                "ai_generated": self.ai_generated,
            },
        )
        report = NewArtifact(
            artifact_type=ArtifactType.TEST_REPORT,
            location=f"https://reports.agent-builder.app/{invocation.project_id}/tests.html",
            title="Test Report",
            description="Automated test results and quality metrics",
            metadata={
                "unit_tests": "Jest + React Testing Library",
                "e2e_tests": "Playwright",
                "security_scan": "OWASP dependency and header checks",
                "source_artifacts": [artifact.artifact_id for artifact in (backend, frontend) if artifact is not None],
            },
        )
        return [deployment, report], {"deploymentUrl": deployment.location}


__all__ = ["DevOpsEngineerUnit", "deployment_host"]

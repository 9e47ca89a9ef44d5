"""Product manager stage: turns the request prompt into a requirements specification."""

from __future__ import annotations

import math
from typing import Any, Dict, List, Mapping, Tuple

from ..errors import ServiceError
from ..pipeline import PRODUCT_MANAGER
from ..schemas import AgentInvocation, ArtifactType, NewArtifact
from .base import AgentUnit


def _non_empty_strings(values: Any) -> List[str]:
    if not isinstance(values, list):
        return []
    return [value for value in values if isinstance(value, str) and value.strip()]


def extract_features(requirements: Mapping[str, Any]) -> List[str]:
    return _non_empty_strings(requirements.get("features"))


def extract_user_stories(requirements: Mapping[str, Any]) -> List[str]:
    return _non_empty_strings(requirements.get("userStories"))


def validate_requirements(requirements: Any) -> bool:
    """Generated requirements must carry the three lists and an architecture string."""

    if not isinstance(requirements, Mapping):
        return False
    return (
        isinstance(requirements.get("features"), list)
        and isinstance(requirements.get("userStories"), list)
        and isinstance(requirements.get("technicalRequirements"), list)
        and isinstance(requirements.get("architecture"), str)
    )


def calculate_complexity(requirements: Mapping[str, Any]) -> str:
    total = len(extract_features(requirements)) + len(extract_user_stories(requirements))
    if total <= 5:
        return "Low"
    if total <= 10:
        return "Medium"
    return "High"


def estimate_development_time(requirements: Mapping[str, Any]) -> str:
    base_weeks = {"Low": 1, "Medium": 2, "High": 4}[calculate_complexity(requirements)]
    total_weeks = base_weeks + math.ceil(len(extract_features(requirements)) * 0.5)
    if total_weeks <= 2:
        return "1-2 weeks"
    if total_weeks <= 4:
        return "2-4 weeks"
    if total_weeks <= 8:
        return "4-8 weeks"
    return "8+ weeks"


class ProductManagerUnit(AgentUnit):
    agent_name = PRODUCT_MANAGER

    def build_artifacts(self, invocation: AgentInvocation) -> Tuple[List[NewArtifact], Dict[str, Any]]:
        project = invocation.project
        requirements = self._generator.generate_requirements(project.request_prompt)
        if not validate_requirements(requirements):
            raise ServiceError.validation(
                "Generated requirements are invalid or incomplete", keys=sorted(requirements or {})
            )

        features = extract_features(requirements)
        user_stories = extract_user_stories(requirements)
        complexity = calculate_complexity(requirements)
        estimate = estimate_development_time(requirements)

        srs = NewArtifact(
            artifact_type=ArtifactType.SRS_DOCUMENT,
            location=f"https://example.com/srs/{invocation.project_id}.pdf",
            title="Software Requirements Specification",
            description=f"Detailed requirements and specifications for {project.project_name}",
            metadata={
                "features": features,
                "user_stories": user_stories,
                "technical_requirements": requirements["technicalRequirements"],
                "architecture": requirements["architecture"],
                "complexity": complexity,
                "estimated_development_time": estimate,
                "total_features": len(features),
                "total_user_stories": len(user_stories),
                "generated_at": self.generated_at(),
                "ai_generated": self.ai_generated,
            },
        )
        summary = {
            "complexity": complexity,
            "estimatedDevelopmentTime": estimate,
            "features": len(features),
            "userStories": len(user_stories),
        }
        return [srs], summary


__all__ = [
    "ProductManagerUnit",
    "calculate_complexity",
    "estimate_development_time",
    "extract_features",
    "extract_user_stories",
    "validate_requirements",
]

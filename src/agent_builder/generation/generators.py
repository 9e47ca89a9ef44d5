"""Specification generators used by the agent stages."""

from __future__ import annotations

import copy
import json
import logging
from typing import Any, Dict, Mapping, Protocol

from ..errors import ErrorKind, ServiceError
from .openai_client import OpenAIClient


LOGGER = logging.getLogger("agent_builder.generation")

REQUIREMENTS_PROMPT = """You are a senior product manager. Generate comprehensive software requirements based on the user's request. Respond with a JSON object containing:
- features: Array of key features (5-10 items)
- userStories: Array of user stories (5-8 items)
- technicalRequirements: Array of technical requirements (5-8 items)
- architecture: Recommended architecture approach (string)"""

BACKEND_PROMPT = """You are a senior backend engineer. Generate backend specifications based on requirements. Respond with a JSON object containing:
- apis: Array of API endpoint objects with {method, path, description, requestBody, responseBody}
- database: Database schema with tables and relationships
- architecture: Backend architecture description"""

FRONTEND_PROMPT = """You are a senior frontend engineer. Generate frontend specifications based on requirements. Respond with a JSON object containing:
- components: Array of component objects with {name, description, props, children}
- pages: Array of page objects with {name, route, description, components}
- routing: Array of route configurations
- styling: Recommended styling approach"""

DEVOPS_PROMPT = """You are a senior DevOps engineer. Generate deployment and infrastructure specifications. Respond with a JSON object containing:
- infrastructure: Infrastructure requirements and setup
- deployment: Deployment pipeline and strategy
- monitoring: Monitoring and logging setup
- security: Security configurations"""


class GenerationError(ServiceError):
    """The completion service failed or returned something unusable."""

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(ErrorKind.SERVICE_UNAVAILABLE, message, details)


class SpecGenerator(Protocol):
    ai_generated: bool

    def generate_requirements(self, request_prompt: str) -> Dict[str, Any]: ...

    def generate_backend(self, requirements: Mapping[str, Any]) -> Dict[str, Any]: ...

    def generate_frontend(self, requirements: Mapping[str, Any]) -> Dict[str, Any]: ...

    def generate_devops(self, backend: Mapping[str, Any], frontend: Mapping[str, Any]) -> Dict[str, Any]: ...


class OpenAISpecGenerator:
    """Generator backed by the completion service. It never falls back to canned output."""

    ai_generated = True

    def __init__(self, client: OpenAIClient) -> None:
        self._client = client

    def generate_requirements(self, request_prompt: str) -> Dict[str, Any]:
        return self._generate("requirements", REQUIREMENTS_PROMPT, request_prompt)

    def generate_backend(self, requirements: Mapping[str, Any]) -> Dict[str, Any]:
        return self._generate("backend", BACKEND_PROMPT, json.dumps(dict(requirements), default=str))

    def generate_frontend(self, requirements: Mapping[str, Any]) -> Dict[str, Any]:
        return self._generate("frontend", FRONTEND_PROMPT, json.dumps(dict(requirements), default=str))

    def generate_devops(self, backend: Mapping[str, Any], frontend: Mapping[str, Any]) -> Dict[str, Any]:
        payload = json.dumps({"backend": dict(backend), "frontend": dict(frontend)}, default=str)
        return self._generate("devops", DEVOPS_PROMPT, payload)

    def _generate(self, kind: str, system_prompt: str, user_content: str) -> Dict[str, Any]:
        try:
            text = self._client.complete(system_prompt, user_content)
        except ServiceError:
            raise
        except Exception as exc:
            raise GenerationError(f"{kind} generation failed: {exc}", stage=kind) from exc
        if not text:
            raise GenerationError(f"{kind} generation returned no content", stage=kind)
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise GenerationError(f"{kind} generation returned invalid JSON", stage=kind) from exc
        if not isinstance(data, dict):
            raise GenerationError(f"{kind} generation returned {type(data).__name__}, expected an object", stage=kind)
        LOGGER.debug("Generated %s specification with keys %s", kind, sorted(data))
        return data


_REQUIREMENTS_TEMPLATE: Dict[str, Any] = {
    "features": [
        "User Authentication",
        "Data Management",
        "Real-time Updates",
        "Search Functionality",
        "Export/Import",
    ],
    "userStories": [
        "As a user, I want to log in securely",
        "As a user, I want to manage my data",
        "As a user, I want real-time notifications",
        "As a user, I want to search content",
        "As a user, I want to export my data",
    ],
    "technicalRequirements": [
        "RESTful API design",
        "Responsive web interface",
        "Database integration",
        "Authentication & authorization",
        "Real-time communication",
    ],
    "architecture": "Serverless architecture with a React frontend and AWS Lambda backend",
}

_BACKEND_TEMPLATE: Dict[str, Any] = {
    "apis": [
        {
            "method": "GET",
            "path": "/api/data",
            "description": "Get data",
            "requestBody": None,
            "responseBody": "Array of data objects",
        },
        {
            "method": "POST",
            "path": "/api/data",
            "description": "Create data",
            "requestBody": "Data object",
            "responseBody": "Created data object",
        },
    ],
    "database": {"tables": ["users", "data", "sessions"], "relationships": "Users have many data items"},
    "architecture": "Serverless REST API with DynamoDB",
}

_FRONTEND_TEMPLATE: Dict[str, Any] = {
    "components": [
        {"name": "Header", "description": "App header with navigation", "props": ["title"], "children": []},
        {"name": "DataList", "description": "List of data items", "props": ["data"], "children": ["DataItem"]},
    ],
    "pages": [
        {"name": "Home", "route": "/", "description": "Homepage", "components": ["Header", "DataList"]},
        {"name": "Login", "route": "/login", "description": "Login page", "components": ["LoginForm"]},
    ],
    "routing": [{"path": "/", "component": "Home"}, {"path": "/login", "component": "Login"}],
    "styling": "Tailwind CSS with responsive design",
}

_DEVOPS_TEMPLATE: Dict[str, Any] = {
    "infrastructure": {"platform": "AWS", "services": ["Lambda", "DynamoDB", "CloudFront", "S3"]},
    "deployment": {"strategy": "Blue/Green deployment", "pipeline": "GitHub Actions CI/CD"},
    "monitoring": {"logging": "CloudWatch", "metrics": "CloudWatch Metrics", "alerts": "SNS notifications"},
    "security": {
        "authentication": "AWS Cognito",
        "authorization": "JWT tokens",
        "encryption": "TLS in transit, AES at rest",
    },
}


class TemplateSpecGenerator:
    """Deterministic offline generator for dry runs and disabled completion access."""

    ai_generated = False

    def generate_requirements(self, request_prompt: str) -> Dict[str, Any]:
        LOGGER.debug("Template requirements for prompt: %s", request_prompt)
        return copy.deepcopy(_REQUIREMENTS_TEMPLATE)

    def generate_backend(self, requirements: Mapping[str, Any]) -> Dict[str, Any]:
        return copy.deepcopy(_BACKEND_TEMPLATE)

    def generate_frontend(self, requirements: Mapping[str, Any]) -> Dict[str, Any]:
        specs = copy.deepcopy(_FRONTEND_TEMPLATE)
        for feature in requirements.get("features") or []:
            if isinstance(feature, str) and feature.strip():
                name = "".join(part.capitalize() for part in feature.replace("/", " ").split())
                specs["components"].append(
                    {"name": f"{name}Panel", "description": f"UI for {feature}", "props": [], "children": []}
                )
        return specs

    def generate_devops(self, backend: Mapping[str, Any], frontend: Mapping[str, Any]) -> Dict[str, Any]:
        return copy.deepcopy(_DEVOPS_TEMPLATE)


__all__ = [
    "GenerationError",
    "OpenAISpecGenerator",
    "SpecGenerator",
    "TemplateSpecGenerator",
]

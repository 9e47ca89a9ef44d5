"""FastAPI dependencies resolving the shared service container."""
from __future__ import annotations

from fastapi import Depends

from ..bootstrap import Container, get_container
from ..orchestrator import Orchestrator
from ..persistence import ProjectStore


def container_dependency() -> Container:
    return get_container()


def get_store(container: Container = Depends(container_dependency)) -> ProjectStore:
    return container.store


def get_orchestrator(container: Container = Depends(container_dependency)) -> Orchestrator:
    return container.orchestrator

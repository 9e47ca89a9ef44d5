"""
Agent Builder - a queue-driven pipeline of AI agent stages.

A project request flows through the Product Manager, Backend Engineer,
Frontend Engineer and DevOps Engineer stages. Each stage reads the artifacts
of its predecessors, persists its own and hands off to the next stage.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("agent-builder")
except PackageNotFoundError:  # pragma: no cover - fallback for editable installs
    __version__ = "0.0.0"

__all__ = ["__version__"]

"""Persistence layer for the agent pipeline."""

from .database import create_session_factory, session_scope
from .store import TASK_TRANSITIONS, ProjectStore, StateListener, can_transition

__all__ = [
    "ProjectStore",
    "StateListener",
    "TASK_TRANSITIONS",
    "can_transition",
    "create_session_factory",
    "session_scope",
]

"""Celery tasks for the agent pipeline."""
from __future__ import annotations

from typing import Any, Dict

from ..bootstrap import get_container
from ..schemas import HandoffMessage
from .celery_app import app
from .queues import RUN_STAGE_TASK


@app.task(name=RUN_STAGE_TASK)
def run_stage(message: Dict[str, Any]) -> Dict[str, Any]:
    result = get_container().processor.process(HandoffMessage.from_wire(message))
    return result.to_dict()

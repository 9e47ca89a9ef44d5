"""Task names used by the agent worker."""
from __future__ import annotations

RUN_STAGE_TASK = "agents.run_stage"

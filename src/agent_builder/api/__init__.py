"""HTTP API for projects, tasks, artifacts, users and orchestration."""

"""Application configuration using Pydantic settings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RestartPolicy(str, Enum):
    """What a start request does to a project that is already running."""

    REJECT = "reject"
    RESTART = "restart"


class OpenAIConfig(BaseModel):
    """Configuration for the completion service used by the agent stages."""

    enabled: bool = True
    api_key: str = Field(default_factory=lambda: "")
    base_url: Optional[str] = None
    model: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_output_tokens: int = 2000
    timeout_seconds: float = 60.0


class DatabaseConfig(BaseModel):
    """Configuration for the relational store holding projects, tasks and artifacts."""

    url: str = Field(default="sqlite:///agent_builder.db")
    echo: bool = False


class QueueConfig(BaseModel):
    """Hand-off queue settings. ``memory`` keeps everything in process."""

    backend: Literal["memory", "celery"] = "memory"
    broker_url: str = "memory://"
    result_backend: Optional[str] = None
    queue_name: str = "agent-tasks.fifo"
    dedup_window_seconds: int = 300
    region: Optional[str] = None


class NotificationConfig(BaseModel):
    """WebSocket fan-out settings."""

    websocket_endpoint: Optional[str] = None
    region: Optional[str] = None
    connection_ttl_hours: int = 24


class SecretsConfig(BaseModel):
    """Where externally managed secrets come from and how long they are cached."""

    source: Literal["env", "ssm"] = "env"
    environment: str = "dev"
    parameter_prefix: str = "/agent-builder"
    cache_ttl_seconds: float = 300.0
    region: Optional[str] = None


class OrchestrationConfig(BaseModel):
    restart_policy: RestartPolicy = RestartPolicy.REJECT
    # Stages whose output waits in PENDING_APPROVAL until the project is resumed.
    approval_stages: List[str] = Field(default_factory=list)


class ApiConfig(BaseModel):
    """HTTP surface settings."""

    api_key: str = "test-key"
    rate_limit_requests: int = 60
    rate_limit_window_seconds: float = 60.0


class Settings(BaseSettings):
    """Central application settings."""

    model_config = SettingsConfigDict(
        env_prefix="AGENT_BUILDER_",
        env_nested_delimiter="__",
        env_file=(Path(".env"),),
        extra="ignore",
    )

    dry_run: bool = False
    openai: OpenAIConfig = Field(default_factory=OpenAIConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    secrets: SecretsConfig = Field(default_factory=SecretsConfig)
    orchestration: OrchestrationConfig = Field(default_factory=OrchestrationConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Return settings as a dictionary with secrets masked."""

        data = self.model_dump(mode="json")
        if data["openai"].get("api_key"):
            data["openai"]["api_key"] = "***"
        data["api"]["api_key"] = "***"
        return data


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once per process."""

    return Settings()


__all__ = [
    "ApiConfig",
    "DatabaseConfig",
    "NotificationConfig",
    "OpenAIConfig",
    "OrchestrationConfig",
    "QueueConfig",
    "RestartPolicy",
    "SecretsConfig",
    "Settings",
    "get_settings",
]

"""Composition root wiring the store, queue, generator and services from settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Optional

from .agents import AgentUnit, build_agent_units
from .api.rate_limiter import SlidingWindowRateLimiter
from .config import Settings, get_settings
from .generation import OpenAIClient, OpenAISpecGenerator, SpecGenerator, TemplateSpecGenerator
from .handoff import CeleryHandoffQueue, HandoffQueue, InMemoryHandoffQueue
from .notifications import (
    ApiGatewayConnectionGateway,
    ConnectionGateway,
    ConnectionRegistry,
    LoggingConnectionGateway,
    Notifier,
    WebSocketHandlers,
)
from .orchestrator import Orchestrator
from .persistence import ProjectStore
from .secrets import SecretsLoader
from .worker import HandoffProcessor


LOGGER = logging.getLogger("agent_builder.bootstrap")


@dataclass
class Container:
    settings: Settings
    store: ProjectStore
    queue: HandoffQueue
    secrets: SecretsLoader
    generator: SpecGenerator
    units: Dict[str, AgentUnit]
    orchestrator: Orchestrator
    processor: HandoffProcessor
    registry: ConnectionRegistry
    notifier: Notifier
    websocket: WebSocketHandlers
    rate_limiter: SlidingWindowRateLimiter


def build_generator(settings: Settings, secrets: SecretsLoader) -> SpecGenerator:
    if settings.dry_run or not settings.openai.enabled:
        LOGGER.info("Completion service disabled; using template specifications")
        return TemplateSpecGenerator()

    def api_key() -> str:
        return settings.openai.api_key or secrets.openai_api_key()

    return OpenAISpecGenerator(OpenAIClient.from_config(settings.openai, api_key_provider=api_key))


def build_queue(settings: Settings) -> HandoffQueue:
    if settings.queue.backend == "celery":
        from .worker.tasks import run_stage

        return CeleryHandoffQueue(
            run_stage,
            queue_name=settings.queue.queue_name,
            dedup_window_seconds=settings.queue.dedup_window_seconds,
        )
    return InMemoryHandoffQueue(dedup_window_seconds=settings.queue.dedup_window_seconds)


def build_gateway(settings: Settings) -> ConnectionGateway:
    endpoint = settings.notifications.websocket_endpoint
    if endpoint:
        return ApiGatewayConnectionGateway(endpoint, region=settings.notifications.region)
    return LoggingConnectionGateway()


def build_container(
    settings: Optional[Settings] = None,
    *,
    queue: Optional[HandoffQueue] = None,
    generator: Optional[SpecGenerator] = None,
    gateway: Optional[ConnectionGateway] = None,
) -> Container:
    """Build every collaborator; explicit arguments replace the configured ones."""

    settings = settings or get_settings()
    store = ProjectStore.from_url(settings.database.url, echo=settings.database.echo)
    secrets = SecretsLoader.from_config(settings.secrets)
    queue = queue if queue is not None else build_queue(settings)
    generator = generator if generator is not None else build_generator(settings, secrets)
    units = build_agent_units(store, queue, generator)

    registry = ConnectionRegistry(store, ttl_hours=settings.notifications.connection_ttl_hours)
    notifier = Notifier(registry, gateway if gateway is not None else build_gateway(settings))
    notifier.attach(store)

    return Container(
        settings=settings,
        store=store,
        queue=queue,
        secrets=secrets,
        generator=generator,
        units=units,
        orchestrator=Orchestrator(store, queue, restart_policy=settings.orchestration.restart_policy),
        processor=HandoffProcessor(store, units, approval_stages=settings.orchestration.approval_stages),
        registry=registry,
        notifier=notifier,
        websocket=WebSocketHandlers(registry),
        rate_limiter=SlidingWindowRateLimiter(
            max_requests=settings.api.rate_limit_requests,
            window_seconds=settings.api.rate_limit_window_seconds,
        ),
    )


@lru_cache(maxsize=1)
def get_container() -> Container:
    return build_container(get_settings())


__all__ = ["Container", "build_container", "build_gateway", "build_generator", "build_queue", "get_container"]

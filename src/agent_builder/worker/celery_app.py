"""Celery application bootstrap for the agent worker."""
from __future__ import annotations

from celery import Celery

from ..config import QueueConfig, get_settings


def create_celery(app_name: str, config: QueueConfig) -> Celery:
    app = Celery(app_name, broker=config.broker_url, backend=config.result_backend)
    transport_options = {"region": config.region} if config.region else {}
    app.conf.update(
        task_default_queue=config.queue_name,
        # Ack only after the stage ran; a crash or raised error leaves the
        # message on the queue for redelivery.
        task_acks_late=True,
        task_acks_on_failure_or_timeout=False,
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,
        task_ignore_result=config.result_backend is None,
        broker_transport_options=transport_options,
    )
    return app


app = create_celery("agent-builder-worker", get_settings().queue)

"""Best-effort fan-out of project state changes to live connections."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import List

from ..persistence import ProjectStore
from ..schemas import NotificationEvent
from .gateway import ConnectionGateway, ConnectionGoneError
from .websocket import ConnectionRegistry


LOGGER = logging.getLogger("agent_builder.notifications")


@dataclass
class DeliveryReport:
    delivered: List[str] = field(default_factory=list)
    pruned: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class Notifier:
    """
    Push each event to every connection subscribed to its project.

    Deliveries are independent: a gone peer is pruned from the registry, any
    other failure is logged, and the remaining connections are still served.
    ``notify`` never raises.
    """

    def __init__(self, registry: ConnectionRegistry, gateway: ConnectionGateway) -> None:
        self._registry = registry
        self._gateway = gateway

    def attach(self, store: ProjectStore) -> None:
        store.subscribe(self.notify)

    def notify(self, event: NotificationEvent) -> DeliveryReport:
        report = DeliveryReport()
        try:
            connection_ids = self._registry.connections_for(event.project_id)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Could not load connections for project %s", event.project_id)
            return report

        payload = json.dumps(event.to_wire()).encode("utf-8")
        for connection_id in connection_ids:
            try:
                self._gateway.post(connection_id, payload)
            except ConnectionGoneError:
                self._prune(connection_id, report)
            except Exception as exc:  # noqa: BLE001
                LOGGER.warning("Delivery to %s failed: %s", connection_id, exc)
                report.failed.append(connection_id)
            else:
                report.delivered.append(connection_id)

        LOGGER.debug(
            "%s for project %s: %d delivered, %d pruned, %d failed",
            event.type.value,
            event.project_id,
            len(report.delivered),
            len(report.pruned),
            len(report.failed),
        )
        return report

    def _prune(self, connection_id: str, report: DeliveryReport) -> None:
        try:
            self._registry.remove(connection_id)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Could not remove stale connection %s", connection_id)
            report.failed.append(connection_id)
            return
        LOGGER.info("Removed stale connection %s", connection_id)
        report.pruned.append(connection_id)


__all__ = ["DeliveryReport", "Notifier"]

"""WebSocket route handlers and the connection registry they maintain."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..errors import ServiceError, as_service_error, error_body, log_error
from ..persistence import ProjectStore
from ..schemas import Connection, utcnow


LOGGER = logging.getLogger("agent_builder.notifications.websocket")


class ConnectionRegistry:
    """Maps projects to the live connection ids subscribed to them."""

    def __init__(
        self,
        store: ProjectStore,
        ttl_hours: int = 24,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._ttl = timedelta(hours=ttl_hours)
        self._clock = clock

    def register(self, connection_id: str, user_id: Optional[str] = None, project_id: Optional[str] = None) -> Connection:
        now = self._clock()
        connection = Connection(
            connection_id=connection_id,
            user_id=user_id,
            project_id=project_id,
            connected_at=now,
            expires_at=now + self._ttl,
        )
        return self._store.add_connection(connection)

    def subscribe(self, connection_id: str, project_id: str) -> Connection:
        return self._store.bind_connection(connection_id, project_id, self._clock() + self._ttl)

    def unsubscribe(self, connection_id: str) -> Connection:
        return self._store.bind_connection(connection_id, None, self._clock() + self._ttl)

    def remove(self, connection_id: str) -> bool:
        return self._store.remove_connection(connection_id)

    def connections_for(self, project_id: str) -> List[str]:
        return [connection.connection_id for connection in self._store.list_connections(project_id, now=self._clock())]


def _response(status_code: int, body: Mapping[str, Any]) -> Dict[str, Any]:
    return {"statusCode": status_code, "body": json.dumps(body)}


def _connection_id(event: Mapping[str, Any]) -> str:
    connection_id = (event.get("requestContext") or {}).get("connectionId")
    if not connection_id:
        raise ServiceError.validation("Missing connectionId")
    return connection_id


class WebSocketHandlers:
    """``$connect``, ``$disconnect`` and ``$default`` route handlers for API Gateway events."""

    def __init__(self, registry: ConnectionRegistry) -> None:
        self._registry = registry

    def on_connect(self, event: Mapping[str, Any]) -> Dict[str, Any]:
        return self._guard("connect", lambda: self._connect(event))

    def on_disconnect(self, event: Mapping[str, Any]) -> Dict[str, Any]:
        return self._guard("disconnect", lambda: self._disconnect(event))

    def on_message(self, event: Mapping[str, Any]) -> Dict[str, Any]:
        return self._guard("message", lambda: self._message(event))

    def _connect(self, event: Mapping[str, Any]) -> Dict[str, Any]:
        connection_id = _connection_id(event)
        params = event.get("queryStringParameters") or {}
        self._registry.register(connection_id, user_id=params.get("userId"), project_id=params.get("projectId"))
        LOGGER.info("Connection %s opened", connection_id)
        return _response(200, {"message": "Connected"})

    def _disconnect(self, event: Mapping[str, Any]) -> Dict[str, Any]:
        connection_id = _connection_id(event)
        self._registry.remove(connection_id)
        LOGGER.info("Connection %s closed", connection_id)
        return _response(200, {"message": "Disconnected"})

    def _message(self, event: Mapping[str, Any]) -> Dict[str, Any]:
        connection_id = _connection_id(event)
        try:
            body = json.loads(event.get("body") or "{}")
        except json.JSONDecodeError as exc:
            raise ServiceError.validation("Message body must be JSON") from exc
        if not isinstance(body, dict):
            raise ServiceError.validation("Message body must be a JSON object")

        action = body.get("action")
        match action:
            case "subscribe":
                project_id = body.get("projectId")
                if not isinstance(project_id, str) or not project_id:
                    raise ServiceError.validation("projectId is required to subscribe")
                self._registry.subscribe(connection_id, project_id)
                return _response(200, {"message": "Subscribed", "projectId": project_id})
            case "unsubscribe":
                self._registry.unsubscribe(connection_id)
                return _response(200, {"message": "Unsubscribed"})
            case _:
                raise ServiceError.validation("Unknown action", action=action)

    @staticmethod
    def _guard(route: str, handler: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
        try:
            return handler()
        except Exception as exc:  # noqa: BLE001
            error = as_service_error(exc)
            log_error(LOGGER, error, f"WebSocket {route} failed")
            return _response(error.status_code, error_body(error))


__all__ = ["ConnectionRegistry", "WebSocketHandlers"]

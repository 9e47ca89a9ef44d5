"""Delivery of payloads to individual WebSocket connections."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

import boto3
from botocore.exceptions import ClientError


LOGGER = logging.getLogger("agent_builder.notifications.gateway")


class ConnectionGoneError(Exception):
    """The peer behind a connection id has disconnected."""

    def __init__(self, connection_id: str) -> None:
        super().__init__(f"Connection {connection_id} is gone")
        self.connection_id = connection_id


class ConnectionGateway(Protocol):
    def post(self, connection_id: str, payload: bytes) -> None:
        """Deliver ``payload``; raise ``ConnectionGoneError`` when the peer is gone."""


class ApiGatewayConnectionGateway:
    """Posts to connections through the API Gateway Management API."""

    def __init__(self, endpoint_url: str, region: Optional[str] = None, client: Any = None) -> None:
        if client is None:
            kwargs: Dict[str, Any] = {"endpoint_url": endpoint_url}
            if region:
                kwargs["region_name"] = region
            client = boto3.client("apigatewaymanagementapi", **kwargs)
        self._client = client

    def post(self, connection_id: str, payload: bytes) -> None:
        try:
            self._client.post_to_connection(ConnectionId=connection_id, Data=payload)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            if code == "GoneException" or status == 410:
                raise ConnectionGoneError(connection_id) from exc
            raise


class LoggingConnectionGateway:
    """Gateway for local runs without a WebSocket endpoint; payloads are only logged."""

    def post(self, connection_id: str, payload: bytes) -> None:
        LOGGER.debug("Notification for %s: %s", connection_id, payload.decode("utf-8"))


__all__ = [
    "ApiGatewayConnectionGateway",
    "ConnectionGateway",
    "ConnectionGoneError",
    "LoggingConnectionGateway",
]

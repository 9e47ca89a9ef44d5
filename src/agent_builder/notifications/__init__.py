"""Connection registry, WebSocket handlers and notification fan-out."""

from .gateway import ApiGatewayConnectionGateway, ConnectionGateway, ConnectionGoneError, LoggingConnectionGateway
from .notifier import DeliveryReport, Notifier
from .websocket import ConnectionRegistry, WebSocketHandlers

__all__ = [
    "ApiGatewayConnectionGateway",
    "ConnectionGateway",
    "ConnectionGoneError",
    "ConnectionRegistry",
    "DeliveryReport",
    "LoggingConnectionGateway",
    "Notifier",
    "WebSocketHandlers",
]

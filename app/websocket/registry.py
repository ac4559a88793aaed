"""Process-local registry of live WebSocket connections.

Maps each authenticated user to the set of their open connections (one per
tab or device). Only the event loop thread mutates it.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from fastapi import WebSocket
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)


@dataclass
class ClientConnection:
    """One authenticated WebSocket connection."""

    websocket: WebSocket
    user_id: str
    connection_id: str = field(default_factory=lambda: str(uuid4()))
    connected_at: datetime = field(default_factory=datetime.utcnow)

    async def emit(self, event: str, data: dict[str, Any]) -> bool:
        """Send an ``{"event", "data"}`` frame if the socket is still open."""
        if self.websocket.client_state != WebSocketState.CONNECTED:
            return False

        try:
            await self.websocket.send_json({"event": event, "data": data})
            return True
        except Exception as e:
            logger.error(
                f"Error sending {event} to connection {self.connection_id}: {e}",
                extra={"connection_id": self.connection_id, "user_id": self.user_id},
            )
            return False


class ConnectionRegistry:
    """userId -> set of connection ids, plus the connections themselves."""

    def __init__(self) -> None:
        self._connections: dict[str, ClientConnection] = {}
        self._user_connections: dict[str, set[str]] = {}

    def add(self, connection: ClientConnection) -> None:
        self._connections[connection.connection_id] = connection
        self._user_connections.setdefault(connection.user_id, set()).add(
            connection.connection_id
        )

    def remove(self, connection_id: str) -> ClientConnection | None:
        """Deregister a connection; drops the user entry with its last connection."""
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return None

        user_connections = self._user_connections.get(connection.user_id)
        if user_connections is not None:
            user_connections.discard(connection_id)
            if not user_connections:
                del self._user_connections[connection.user_id]
        return connection

    def connections_for(self, user_id: str) -> list[ClientConnection]:
        return [
            self._connections[connection_id]
            for connection_id in self._user_connections.get(user_id, ())
        ]

    def connection_ids_for(self, user_id: str) -> set[str]:
        return set(self._user_connections.get(user_id, ()))

    def all_connections(self) -> list[ClientConnection]:
        return list(self._connections.values())

    def user_count(self) -> int:
        return len(self._user_connections)

    def connection_count(self) -> int:
        return len(self._connections)

    def has_user(self, user_id: str) -> bool:
        return user_id in self._user_connections

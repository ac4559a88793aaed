"""Notifications gateway: authenticated per-user WebSocket delivery.

Server frames are ``{"event": <name>, "data": {...}}``:

    connected     {message, userId}       after a successful handshake
    notification  {...payload w/o userId} one per live connection of the recipient
    task_changed  {taskId, type}          broadcast to every connection
    pong          {timestamp}             reply to a client ping
    error         {message}               sent before closing an unauthenticated socket
"""

import json
import logging
import time
from typing import Any

from fastapi import WebSocket
from jose import JWTError, jwt

from app.config import Settings, get_settings
from app.events.realtime import SYSTEM_USER_ID
from app.websocket.registry import ClientConnection, ConnectionRegistry

logger = logging.getLogger(__name__)

BEARER_SUBPROTOCOL = "bearer"
AUTH_FAILED_CLOSE_CODE = 4001


class AuthenticationError(Exception):
    """WebSocket handshake carried no valid bearer token."""


def extract_token(websocket: WebSocket) -> tuple[str | None, str | None]:
    """Find the bearer token on a WebSocket handshake.

    Checked in order: ``Sec-WebSocket-Protocol: bearer, <token>``, the
    ``Authorization`` header, then the ``token`` query parameter.

    Returns:
        (token, subprotocol to accept with)
    """
    protocols = websocket.scope.get("subprotocols") or []
    if len(protocols) >= 2 and protocols[0].lower() == BEARER_SUBPROTOCOL:
        return protocols[1], BEARER_SUBPROTOCOL

    authorization = websocket.headers.get("authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip(), None

    token = websocket.query_params.get("token")
    if token:
        return token, None

    return None, None


def decode_user_id(token: str, settings: Settings | None = None) -> str:
    """Verify a JWT and return its ``sub`` claim.

    Raises:
        AuthenticationError: If the token is invalid, expired, or has no subject
    """
    settings = settings or get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError as e:
        raise AuthenticationError(f"Invalid token: {e}") from e

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Token has no subject")
    return str(user_id)


class NotificationsGateway:
    """Routes realtime payloads to the live connections of their recipients."""

    def __init__(
        self,
        registry: ConnectionRegistry | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.registry = registry or ConnectionRegistry()
        self.settings = settings or get_settings()

    async def connect(self, websocket: WebSocket) -> ClientConnection | None:
        """Authenticate and register a client.

        Unauthenticated clients get an ``error`` frame and are closed with 4001.

        Returns:
            The registered connection, or None if authentication failed
        """
        token, subprotocol = extract_token(websocket)

        try:
            if not token:
                raise AuthenticationError("No token provided")
            user_id = decode_user_id(token, self.settings)
        except AuthenticationError as e:
            logger.warning(
                "WebSocket authentication failed",
                extra={"client": str(websocket.client), "error": str(e)},
            )
            await websocket.accept(subprotocol=subprotocol)
            await websocket.send_json(
                {"event": "error", "data": {"message": "Authentication failed"}}
            )
            await websocket.close(code=AUTH_FAILED_CLOSE_CODE)
            return None

        await websocket.accept(subprotocol=subprotocol)
        connection = ClientConnection(websocket=websocket, user_id=user_id)
        self.registry.add(connection)

        logger.info(
            f"Client {connection.connection_id} connected for user {user_id}",
            extra={
                "connection_id": connection.connection_id,
                "user_id": user_id,
                "user_connections": len(self.registry.connection_ids_for(user_id)),
            },
        )

        await connection.emit(
            "connected",
            {"message": "Successfully connected to notifications", "userId": user_id},
        )
        return connection

    async def disconnect(self, connection: ClientConnection) -> None:
        if self.registry.remove(connection.connection_id) is not None:
            logger.info(
                f"Client {connection.connection_id} disconnected",
                extra={
                    "connection_id": connection.connection_id,
                    "user_id": connection.user_id,
                },
            )

    async def handle_client_message(self, connection: ClientConnection, raw: str) -> None:
        """Handle one text frame from a client; only ``ping`` is understood."""
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug(
                "Ignoring non-JSON client frame",
                extra={"connection_id": connection.connection_id},
            )
            return

        if isinstance(message, dict) and message.get("event") == "ping":
            await connection.emit("pong", {"timestamp": int(time.time() * 1000)})

    async def handle_notification(self, payload: dict[str, Any]) -> int:
        """Deliver one realtime queue payload.

        Returns:
            Number of connections the frame was sent to
        """
        user_id = payload.get("userId")

        if user_id == SYSTEM_USER_ID:
            return await self.broadcast(
                "task_changed",
                {"taskId": payload.get("taskId"), "type": payload.get("type")},
            )

        if not user_id:
            logger.warning(
                "Realtime payload without recipient, dropping",
                extra={"notification_id": payload.get("id")},
            )
            return 0

        data = {key: value for key, value in payload.items() if key != "userId"}
        return await self.send_to_user(user_id, "notification", data)

    async def send_to_user(self, user_id: str, event: str, data: dict[str, Any]) -> int:
        """Push a frame to every live connection of a user.

        Users with no live connection are skipped; the store stays the
        source of truth for them.
        """
        connections = self.registry.connections_for(user_id)
        if not connections:
            logger.debug(
                f"User {user_id} has no live connections, skipping {event}",
                extra={"user_id": user_id},
            )
            return 0

        sent = 0
        for connection in connections:
            if await connection.emit(event, data):
                sent += 1

        logger.debug(
            f"Sent {event} to user {user_id}",
            extra={"user_id": user_id, "sent_count": sent},
        )
        return sent

    async def broadcast(self, event: str, data: dict[str, Any]) -> int:
        sent = 0
        for connection in self.registry.all_connections():
            if await connection.emit(event, data):
                sent += 1

        logger.info(
            f"Broadcast {event} to {sent} connections",
            extra={"event": event, "sent_count": sent},
        )
        return sent

    def connected_users_count(self) -> int:
        return self.registry.user_count()

    def is_user_connected(self, user_id: str) -> bool:
        return self.registry.has_user(user_id)


_gateway: NotificationsGateway | None = None


def get_notifications_gateway() -> NotificationsGateway:
    """Get or create the gateway singleton."""
    global _gateway
    if _gateway is None:
        _gateway = NotificationsGateway()
    return _gateway

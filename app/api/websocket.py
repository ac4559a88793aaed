"""WebSocket endpoint for live notifications."""

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.websocket.gateway import get_notifications_gateway

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws/notifications")
async def notifications_websocket(websocket: WebSocket) -> None:
    """Authenticated per-user notification channel.

    The bearer token is read from the ``bearer`` subprotocol, the
    Authorization header, or the ``token`` query parameter.
    """
    gateway = get_notifications_gateway()
    connection = await gateway.connect(websocket)
    if connection is None:
        return

    try:
        while True:
            raw = await websocket.receive_text()
            await gateway.handle_client_message(connection, raw)
    except WebSocketDisconnect:
        pass
    finally:
        await gateway.disconnect(connection)

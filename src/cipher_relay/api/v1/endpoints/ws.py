# src/cipher_relay/api/v1/endpoints/ws.py
"""WebSocket entry point for real-time message relay."""

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from cipher_relay.api.v1.dependencies import RelayHubDep
from cipher_relay.services.registry import Connection

logger = logging.getLogger(__name__)

router = APIRouter(tags=["relay"])


@router.websocket("/ws")
async def relay_socket(websocket: WebSocket, hub: RelayHubDep) -> None:
    """Serve one client connection until it disconnects or is rejected."""
    await websocket.accept()
    connection = Connection(websocket)
    try:
        while not connection.is_closed:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            # Text and binary frames carry the same JSON payloads.
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            await hub.handle_frame(connection, raw)
    except WebSocketDisconnect:
        logger.debug("Client disconnected (%s)", connection.identity or "anonymous")
    finally:
        await hub.disconnect(connection)

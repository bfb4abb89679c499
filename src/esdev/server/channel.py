"""Reload channel: registry of connected browsers and broadcast.

Browsers connect over a WebSocket opened by the injected reload client.
The server never expects payloads from them; the socket only exists so
notifications can be pushed.
"""

from __future__ import annotations

import asyncio
import logging
import uuid

from fastapi import WebSocket, WebSocketDisconnect

from esdev.errors import ChannelError
from esdev.server.events import Notification

logger = logging.getLogger(__name__)


class ReloadChannel:
    """Manage reload channel connections and broadcast notifications.

    One instance exists per server; it is created when the application
    starts and closed when it shuts down.
    """

    def __init__(self) -> None:
        self.clients: dict[str, WebSocket] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket) -> str:
        """Accept a WebSocket and register it.

        Args:
            websocket: The WebSocket to accept

        Returns:
            Opaque connection id used to unregister the client
        """
        await websocket.accept()
        client_id = uuid.uuid4().hex
        self.clients[client_id] = websocket
        logger.debug(f"Reload client connected, total: {len(self.clients)}")
        return client_id

    def disconnect(self, client_id: str) -> None:
        """Remove a client from the registry (no-op if already gone)."""
        if self.clients.pop(client_id, None) is not None:
            logger.debug(f"Reload client disconnected, total: {len(self.clients)}")

    async def serve(self, websocket: WebSocket) -> None:
        """Hold one browser connection open until it goes away."""
        client_id = await self.connect(websocket)
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            self.disconnect(client_id)

    async def broadcast(self, notification: Notification) -> int:
        """Send a notification to every connected client.

        Clients whose send fails are dropped from the registry. Broadcasts
        are serialized so each client sees notifications in broadcast order.

        Args:
            notification: The notification to send

        Returns:
            Number of clients the notification was delivered to
        """
        message = notification.to_dict()
        delivered = 0

        async with self._lock:
            # Copy to avoid modification during iteration
            for client_id, websocket in list(self.clients.items()):
                try:
                    await websocket.send_json(message)
                    delivered += 1
                except Exception as e:
                    error = ChannelError(f"Dropping reload client: {e}", client_id=client_id)
                    logger.debug(error.message)
                    self.disconnect(client_id)

        return delivered

    async def close(self) -> None:
        """Close every connection and empty the registry."""
        async with self._lock:
            clients = list(self.clients.values())
            self.clients.clear()

        for websocket in clients:
            try:
                await websocket.close(code=1001)  # Going away
            except Exception as e:
                logger.debug(f"Error closing reload client: {e}")

    @property
    def connection_count(self) -> int:
        """Get number of connected clients."""
        return len(self.clients)


__all__ = ["ReloadChannel"]

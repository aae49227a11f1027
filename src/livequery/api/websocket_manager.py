"""WebSocket connection manager: connections, rooms and delivery."""

import asyncio
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from fastapi import WebSocketDisconnect

logger = logging.getLogger(__name__)


def room_name(path: str) -> str:
    """Room that groups connections interested in a page path."""
    return f"path-{path}"


@dataclass
class ConnectionInfo:
    """Information about a WebSocket connection."""

    websocket: Any
    client_id: str = ""
    connected_at: datetime = field(default_factory=datetime.now)
    last_ping: datetime = field(default_factory=datetime.now)
    rooms: set[str] = field(default_factory=set)


class WebSocketManager:
    """Manages WebSocket connections and room membership."""

    def __init__(self, max_connections: int = 100):
        """Initialize WebSocket manager.

        Args:
            max_connections: Maximum number of concurrent connections
        """
        self.max_connections = max_connections
        self.active_connections: dict[str, ConnectionInfo] = {}
        self.rooms: dict[str, set[str]] = defaultdict(set)
        self._lock = asyncio.Lock()
        self._disconnect_callbacks: list[Callable[[str], Awaitable[None]]] = []

    def on_disconnect(self, callback: Callable[[str], Awaitable[None]]) -> None:
        """Register a coroutine called with the client id after a disconnect."""
        self._disconnect_callbacks.append(callback)

    async def connect(self, websocket: Any, client_id: str) -> bool:
        """Accept a new WebSocket connection.

        Args:
            websocket: WebSocket connection
            client_id: Unique client identifier

        Returns:
            True if connection accepted, False if rejected
        """
        async with self._lock:
            if len(self.active_connections) >= self.max_connections:
                logger.warning(
                    f"Connection rejected for {client_id}: max connections reached"
                )
                await websocket.close(code=1008, reason="Max connections reached")
                return False

            if client_id in self.active_connections:
                logger.warning(f"Connection rejected for {client_id}: id in use")
                await websocket.close(code=1008, reason="Client id already connected")
                return False

            await websocket.accept()
            self.active_connections[client_id] = ConnectionInfo(
                websocket=websocket, client_id=client_id
            )
            logger.info(f"WebSocket connected: {client_id}")
            return True

    async def disconnect(self, client_id: str, close: bool = True) -> None:
        """Disconnect a WebSocket connection.

        Args:
            client_id: Client identifier to disconnect
            close: Whether to close the socket (False once the peer is gone)
        """
        async with self._lock:
            conn_info = self.active_connections.pop(client_id, None)
            if conn_info is None:
                return

            for room in conn_info.rooms:
                self.rooms[room].discard(client_id)
                if not self.rooms[room]:
                    del self.rooms[room]

        if close:
            try:
                await conn_info.websocket.close()
            except Exception as e:
                logger.debug(f"Error closing WebSocket for {client_id}: {e}")

        logger.info(f"WebSocket disconnected: {client_id}")

        for callback in self._disconnect_callbacks:
            try:
                await callback(client_id)
            except Exception:
                logger.exception(f"Disconnect callback failed for {client_id}")

    def join_room(self, client_id: str, room: str) -> None:
        """Add a connected client to a room."""
        conn_info = self.active_connections.get(client_id)
        if conn_info is None:
            logger.warning(f"Client {client_id} not connected, cannot join {room}")
            return
        conn_info.rooms.add(room)
        self.rooms[room].add(client_id)

    def leave_room(self, client_id: str, room: str) -> int:
        """Remove a client from a room.

        Args:
            client_id: Client identifier
            room: Room name

        Returns:
            Number of members left in the room
        """
        conn_info = self.active_connections.get(client_id)
        if conn_info is not None:
            conn_info.rooms.discard(room)

        members = self.rooms.get(room)
        if members is None:
            return 0
        members.discard(client_id)
        if not members:
            del self.rooms[room]
            return 0
        return len(members)

    async def send_to_client(self, client_id: str, message: dict[str, Any]) -> None:
        """Send message to specific client.

        Args:
            client_id: Client identifier
            message: Message to send
        """
        if client_id not in self.active_connections:
            logger.warning(f"Client {client_id} not connected")
            return

        conn_info = self.active_connections[client_id]
        try:
            await conn_info.websocket.send_json(message)
        except WebSocketDisconnect:
            await self.disconnect(client_id, close=False)
        except Exception as e:
            logger.error(f"Error sending to {client_id}: {e}")
            await self.disconnect(client_id)

    async def broadcast_to_room(self, room: str, message: dict[str, Any]) -> None:
        """Broadcast message to all clients in a room.

        Args:
            room: Room name
            message: Message to broadcast
        """
        if room not in self.rooms:
            return

        clients = list(self.rooms[room])
        tasks = [self.send_to_client(client_id, message) for client_id in clients]
        await asyncio.gather(*tasks, return_exceptions=True)

    async def broadcast_to_all(self, message: dict[str, Any]) -> None:
        """Broadcast message to all connected clients.

        Args:
            message: Message to broadcast
        """
        clients = list(self.active_connections.keys())
        tasks = [self.send_to_client(client_id, message) for client_id in clients]
        await asyncio.gather(*tasks, return_exceptions=True)

    def is_connected(self, client_id: str) -> bool:
        return client_id in self.active_connections

    def get_connection_count(self) -> int:
        """Get number of active connections."""
        return len(self.active_connections)

    def get_room_count(self, room: str) -> int:
        """Get number of connections in a room."""
        return len(self.rooms.get(room, set()))

    async def close_all(self) -> None:
        """Close all connections."""
        clients = list(self.active_connections.keys())
        for client_id in clients:
            await self.disconnect(client_id)

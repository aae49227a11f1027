"""Per-connection protocol handling for development clients."""

import logging
from enum import Enum
from typing import Any

from livequery.api.websocket_manager import WebSocketManager
from livequery.manager import LiveQueryManager

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Lifecycle of one client connection."""

    CONNECTED = "connected"
    REGISTERED = "registered"
    TERMINATED = "terminated"


class ConnectionHandler:
    """Drives one client through connect, path registration and disconnect."""

    def __init__(self, manager: LiveQueryManager, client_id: str):
        """Initialize handler.

        Args:
            manager: Live query manager shared by all connections
            client_id: Identifier of the connection being handled
        """
        self.manager = manager
        self.client_id = client_id
        self.state = ConnectionState.CONNECTED

    @property
    def transport(self) -> WebSocketManager | None:
        """Transport of the shared manager, None before initialization."""
        return self.manager.current_transport()

    async def on_connect(self) -> int:
        """Replay every known result to this client only."""
        sent = await self.manager.replay(self.client_id)
        logger.debug(f"Replayed {sent} result(s) to {self.client_id}")
        return sent

    async def handle_message(self, message: Any) -> None:
        """Dispatch one client message.

        Args:
            message: Decoded JSON frame from the client
        """
        if self.state is ConnectionState.TERMINATED:
            return

        if not isinstance(message, dict):
            await self._reply_error("Message must be a JSON object")
            return

        msg_type = message.get("type")

        if msg_type == "ping":
            await self._send({"type": "pong"})

        elif msg_type == "registerPath":
            path = self._path_from(message)
            if path is None:
                await self._reply_error("registerPath requires a 'path' string")
                return
            await self.manager.register_path(self.client_id, path)
            self._refresh_state()

        elif msg_type == "unregisterPath":
            path = self._path_from(message)
            if path is None:
                await self._reply_error("unregisterPath requires a 'path' string")
                return
            await self.manager.unregister_path(self.client_id, path)
            self._refresh_state()

        else:
            logger.warning(f"Unknown message type from {self.client_id}: {msg_type}")
            await self._reply_error(f"Unknown message type: {msg_type}")

    async def on_disconnect(self) -> None:
        """Leave every room this client joined."""
        if self.state is ConnectionState.TERMINATED:
            return
        self.state = ConnectionState.TERMINATED
        paths = await self.manager.disconnect(self.client_id)
        if paths:
            logger.debug(f"{self.client_id} left {', '.join(paths)}")

    @staticmethod
    def _path_from(message: dict[str, Any]) -> str | None:
        path = message.get("path")
        if isinstance(path, str) and path:
            return path
        return None

    def _refresh_state(self) -> None:
        registry = self.manager.registry
        if registry is not None and registry.paths_for(self.client_id):
            self.state = ConnectionState.REGISTERED
        else:
            self.state = ConnectionState.CONNECTED

    async def _send(self, message: dict[str, Any]) -> None:
        transport = self.transport
        if transport is not None:
            await transport.send_to_client(self.client_id, message)

    async def _reply_error(self, detail: str) -> None:
        await self._send({"type": "error", "detail": detail})

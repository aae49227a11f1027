"""Path subscriptions layered on the transport's rooms."""

import logging
from collections import defaultdict

from livequery.api.websocket_manager import WebSocketManager, room_name

logger = logging.getLogger(__name__)


class SubscriptionRegistry:
    """Tracks which page paths have at least one interested connection.

    Every path a connection registers is remembered until it unregisters or
    disconnects, so registering a second path never leaks the first room.
    """

    def __init__(self, transport: WebSocketManager):
        """Initialize registry.

        Args:
            transport: Connection manager that owns room membership
        """
        self.transport = transport
        self.active_paths: set[str] = set()
        self.client_paths: dict[str, set[str]] = defaultdict(set)

    def join(self, client_id: str, path: str) -> None:
        """Join a client to a path's room and mark the path active."""
        self.transport.join_room(client_id, room_name(path))
        self.client_paths[client_id].add(path)
        self.active_paths.add(path)
        logger.debug(f"{client_id} registered on {path}")

    def leave(self, client_id: str, path: str) -> None:
        """Remove a client from a path's room; drop the path once the room is empty."""
        remaining = self.transport.leave_room(client_id, room_name(path))
        paths = self.client_paths.get(client_id)
        if paths is not None:
            paths.discard(path)
            if not paths:
                del self.client_paths[client_id]
        if remaining == 0:
            self.active_paths.discard(path)
        logger.debug(f"{client_id} left {path} ({remaining} remaining)")

    def disconnect_all(self, client_id: str) -> list[str]:
        """Leave every path a client joined.

        Returns:
            Paths the client was registered on
        """
        paths = sorted(self.client_paths.pop(client_id, set()))
        for path in paths:
            remaining = self.transport.leave_room(client_id, room_name(path))
            if remaining == 0:
                self.active_paths.discard(path)
        return paths

    def is_active(self, path: str) -> bool:
        return path in self.active_paths

    def paths_for(self, client_id: str) -> set[str]:
        return set(self.client_paths.get(client_id, set()))

"""Tests for path subscriptions."""

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from fastapi import WebSocket

from livequery.api.subscriptions import SubscriptionRegistry
from livequery.api.websocket_manager import WebSocketManager


def make_websocket():
    """Create mock WebSocket."""
    ws = MagicMock(spec=WebSocket)
    ws.accept = AsyncMock()
    ws.send_json = AsyncMock()
    ws.close = AsyncMock()
    return ws


@pytest_asyncio.fixture
async def transport():
    """Create a transport with two connected clients."""
    manager = WebSocketManager()
    await manager.connect(make_websocket(), "a")
    await manager.connect(make_websocket(), "b")
    return manager


@pytest.fixture
def registry(transport):
    """Create registry over the transport."""
    return SubscriptionRegistry(transport)


class TestSubscriptionRegistry:
    """Test active path bookkeeping."""

    @pytest.mark.asyncio
    async def test_join_marks_active(self, registry, transport):
        """Test joining adds the path and the room member."""
        registry.join("a", "/about")

        assert registry.is_active("/about")
        assert transport.get_room_count("path-/about") == 1

    @pytest.mark.asyncio
    async def test_join_is_idempotent(self, registry, transport):
        """Test registering the same path twice."""
        registry.join("a", "/about")
        registry.join("a", "/about")

        assert transport.get_room_count("path-/about") == 1
        registry.leave("a", "/about")
        assert not registry.is_active("/about")

    @pytest.mark.asyncio
    async def test_leave_last_subscriber(self, registry):
        """Test a path stops being active when its room empties."""
        registry.join("a", "/about")
        registry.leave("a", "/about")

        assert not registry.is_active("/about")
        assert registry.paths_for("a") == set()

    @pytest.mark.asyncio
    async def test_leave_with_other_subscriber(self, registry):
        """Test a path stays active while another client remains."""
        registry.join("a", "/about")
        registry.join("b", "/about")
        registry.leave("a", "/about")

        assert registry.is_active("/about")

    @pytest.mark.asyncio
    async def test_disconnect_all_leaves_every_path(self, registry, transport):
        """Test registering a second path does not leak the first room."""
        registry.join("a", "/one")
        registry.join("a", "/two")

        paths = registry.disconnect_all("a")

        assert paths == ["/one", "/two"]
        assert registry.active_paths == set()
        assert transport.rooms == {}

    @pytest.mark.asyncio
    async def test_disconnect_all_keeps_shared_paths(self, registry):
        """Test disconnect keeps paths other clients still watch."""
        registry.join("a", "/one")
        registry.join("b", "/one")
        registry.join("a", "/two")

        registry.disconnect_all("a")

        assert registry.active_paths == {"/one"}

    @pytest.mark.asyncio
    async def test_disconnect_unknown_client(self, registry):
        """Test disconnecting a client with no paths."""
        assert registry.disconnect_all("ghost") == []

    @pytest.mark.asyncio
    async def test_cleanup_after_transport_disconnect(self, registry, transport):
        """Test registry cleanup after the transport already dropped the client."""
        registry.join("a", "/one")
        registry.join("b", "/one")
        registry.join("a", "/two")
        await transport.disconnect("a", close=False)

        registry.disconnect_all("a")

        assert registry.active_paths == {"/one"}

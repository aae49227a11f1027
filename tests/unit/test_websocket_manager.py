"""Tests for WebSocket manager rooms and delivery."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import WebSocket, WebSocketDisconnect

from livequery.api.websocket_manager import ConnectionInfo, WebSocketManager, room_name


def make_websocket():
    """Create mock WebSocket."""
    ws = MagicMock(spec=WebSocket)
    ws.accept = AsyncMock()
    ws.send_json = AsyncMock()
    ws.close = AsyncMock()
    return ws


class TestWebSocketManager:
    """Test WebSocket manager functionality."""

    @pytest.fixture
    def manager(self):
        """Create WebSocket manager instance."""
        return WebSocketManager(max_connections=3)

    @pytest.fixture
    def mock_websocket(self):
        """Create mock WebSocket."""
        return make_websocket()

    def test_room_name(self):
        """Test room naming for page paths."""
        assert room_name("/about") == "path-/about"

    @pytest.mark.asyncio
    async def test_connect_success(self, manager, mock_websocket):
        """Test successful connection."""
        result = await manager.connect(mock_websocket, "client-1")

        assert result is True
        mock_websocket.accept.assert_called_once()
        assert manager.is_connected("client-1")

    @pytest.mark.asyncio
    async def test_connect_max_connections(self, manager, mock_websocket):
        """Test connection rejected when max reached."""
        for i in range(3):
            await manager.connect(make_websocket(), f"client-{i}")

        result = await manager.connect(mock_websocket, "client-overflow")

        assert result is False
        mock_websocket.close.assert_called_once_with(
            code=1008, reason="Max connections reached"
        )

    @pytest.mark.asyncio
    async def test_connect_duplicate_id(self, manager, mock_websocket):
        """Test a second connection with the same id is rejected."""
        await manager.connect(make_websocket(), "client-1")

        assert await manager.connect(mock_websocket, "client-1") is False
        mock_websocket.accept.assert_not_called()

    @pytest.mark.asyncio
    async def test_join_and_leave_room(self, manager):
        """Test room membership counts."""
        await manager.connect(make_websocket(), "a")
        await manager.connect(make_websocket(), "b")
        manager.join_room("a", "path-/")
        manager.join_room("b", "path-/")

        assert manager.get_room_count("path-/") == 2
        assert manager.leave_room("a", "path-/") == 1
        assert manager.leave_room("b", "path-/") == 0
        assert "path-/" not in manager.rooms

    @pytest.mark.asyncio
    async def test_leave_unknown_room(self, manager):
        """Test leaving a room that does not exist."""
        assert manager.leave_room("ghost", "path-/nowhere") == 0

    @pytest.mark.asyncio
    async def test_join_room_unknown_client(self, manager):
        """Test joining is ignored for clients that are not connected."""
        manager.join_room("ghost", "path-/")

        assert manager.get_room_count("path-/") == 0

    @pytest.mark.asyncio
    async def test_disconnect_clears_rooms(self, manager, mock_websocket):
        """Test disconnection."""
        await manager.connect(mock_websocket, "client-1")
        manager.join_room("client-1", "path-/a")
        manager.join_room("client-1", "path-/b")

        await manager.disconnect("client-1")

        assert not manager.is_connected("client-1")
        assert manager.rooms == {}
        mock_websocket.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_disconnect_runs_callbacks(self, manager, mock_websocket):
        """Test disconnect callbacks receive the client id."""
        callback = AsyncMock()
        manager.on_disconnect(callback)
        await manager.connect(mock_websocket, "client-1")

        await manager.disconnect("client-1", close=False)

        callback.assert_awaited_once_with("client-1")
        mock_websocket.close.assert_not_called()

    @pytest.mark.asyncio
    async def test_send_to_client(self, manager, mock_websocket):
        """Test sending message to specific client."""
        await manager.connect(mock_websocket, "client-1")

        message = {"type": "pageQueryResult", "payload": {"id": "/", "result": 1}}
        await manager.send_to_client("client-1", message)

        mock_websocket.send_json.assert_called_once_with(message)

    @pytest.mark.asyncio
    async def test_send_to_unknown_client(self, manager):
        """Test sending to a client that is gone is a no-op."""
        await manager.send_to_client("ghost", {"type": "pong"})

    @pytest.mark.asyncio
    async def test_send_failure_disconnects(self, manager, mock_websocket):
        """Test a failing send drops the client instead of raising."""
        mock_websocket.send_json.side_effect = RuntimeError("broken pipe")
        await manager.connect(mock_websocket, "client-1")

        await manager.send_to_client("client-1", {"type": "pong"})

        assert not manager.is_connected("client-1")

    @pytest.mark.asyncio
    async def test_send_after_peer_gone(self, manager, mock_websocket):
        """Test a disconnect during send is handled without closing again."""
        mock_websocket.send_json.side_effect = WebSocketDisconnect()
        await manager.connect(mock_websocket, "client-1")

        await manager.send_to_client("client-1", {"type": "pong"})

        assert not manager.is_connected("client-1")
        mock_websocket.close.assert_not_called()

    @pytest.mark.asyncio
    async def test_broadcast_to_room(self, manager):
        """Test broadcasting to room members only."""
        inside = make_websocket()
        outside = make_websocket()
        await manager.connect(inside, "inside")
        await manager.connect(outside, "outside")
        manager.join_room("inside", "path-/about")

        message = {"type": "pageQueryResult", "payload": {"id": "/about", "result": 1}}
        await manager.broadcast_to_room("path-/about", message)

        inside.send_json.assert_called_once_with(message)
        outside.send_json.assert_not_called()

    @pytest.mark.asyncio
    async def test_broadcast_to_all(self, manager):
        """Test broadcasting to every client."""
        clients = []
        for i in range(3):
            ws = make_websocket()
            await manager.connect(ws, f"client-{i}")
            clients.append(ws)

        message = {"type": "staticQueryResult", "payload": {"id": "h", "result": 1}}
        await manager.broadcast_to_all(message)

        for ws in clients:
            ws.send_json.assert_called_once_with(message)

    @pytest.mark.asyncio
    async def test_broadcast_survives_failing_client(self, manager):
        """Test one broken client does not stop delivery to the others."""
        broken = make_websocket()
        broken.send_json.side_effect = RuntimeError("boom")
        healthy = make_websocket()
        await manager.connect(broken, "broken")
        await manager.connect(healthy, "healthy")

        await manager.broadcast_to_all({"type": "pong"})

        healthy.send_json.assert_called_once_with({"type": "pong"})
        assert not manager.is_connected("broken")

    def test_get_connection_count(self, manager):
        """Test getting connection count."""
        assert manager.get_connection_count() == 0

        manager.active_connections["client-1"] = ConnectionInfo(MagicMock())
        manager.active_connections["client-2"] = ConnectionInfo(MagicMock())

        assert manager.get_connection_count() == 2

    @pytest.mark.asyncio
    async def test_close_all(self, manager):
        """Test closing all connections."""
        for i in range(3):
            await manager.connect(make_websocket(), f"client-{i}")
            manager.join_room(f"client-{i}", "path-/")

        await manager.close_all()

        assert manager.get_connection_count() == 0
        assert len(manager.rooms) == 0

import pytest

from chatcore.websockets.connection_manager import (
    ConnectionManager,
    ConnectionState,
    InvalidStateTransition,
    chat_room,
    user_room,
)

from conftest import FakeWebSocket


class TestConnectionManager:
    """WebSocket 연결 매니저 테스트"""

    def test_room_names(self):
        assert user_room("u1") == "user:u1"
        assert chat_room("c1") == "chat:c1"

    @pytest.mark.asyncio
    async def test_connect_accepts_socket(self):
        manager = ConnectionManager()
        websocket = FakeWebSocket()

        connection = await manager.connect(websocket)

        assert websocket.accepted is True
        assert connection.state == ConnectionState.CONNECTING
        assert manager.get_connection_count() == 1

    @pytest.mark.asyncio
    async def test_state_transitions(self):
        """CONNECTING -> AUTHENTICATED -> ROOM_JOINED -> AUTHENTICATED -> DISCONNECTED"""
        manager = ConnectionManager()
        connection = await manager.connect(FakeWebSocket())

        manager.authenticate(connection, "u1")
        assert connection.state == ConnectionState.AUTHENTICATED

        manager.join(connection, chat_room("c1"))
        assert connection.state == ConnectionState.ROOM_JOINED
        assert manager.get_room_connections(chat_room("c1")) == [connection.id]

        manager.leave(connection, chat_room("c1"))
        assert connection.state == ConnectionState.AUTHENTICATED
        assert manager.get_room_connections(chat_room("c1")) == []

        manager.disconnect(connection)
        assert connection.state == ConnectionState.DISCONNECTED
        assert manager.get_connection_count() == 0

    @pytest.mark.asyncio
    async def test_join_requires_authentication(self):
        manager = ConnectionManager()
        connection = await manager.connect(FakeWebSocket())

        with pytest.raises(InvalidStateTransition):
            manager.join(connection, chat_room("c1"))

    @pytest.mark.asyncio
    async def test_cannot_authenticate_twice(self):
        manager = ConnectionManager()
        connection = await manager.connect(FakeWebSocket())
        manager.authenticate(connection, "u1")

        with pytest.raises(InvalidStateTransition):
            manager.authenticate(connection, "u2")

    @pytest.mark.asyncio
    async def test_disconnect_is_idempotent(self):
        manager = ConnectionManager()
        connection = await manager.connect(FakeWebSocket())
        manager.authenticate(connection, "u1")
        manager.join(connection, user_room("u1"))

        manager.disconnect(connection)
        manager.disconnect(connection)

        assert manager.rooms == {}
        assert await manager.send(connection, "pong", {}) is False

    @pytest.mark.asyncio
    async def test_failed_send_disconnects(self):
        manager = ConnectionManager()
        connection = await manager.connect(FakeWebSocket(fail_send=True))
        manager.authenticate(connection, "u1")

        assert await manager.send(connection, "pong", {}) is False
        assert connection.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_emit_to_room_excludes_sender(self):
        manager = ConnectionManager()
        first_ws, second_ws = FakeWebSocket(), FakeWebSocket()
        first = await manager.connect(first_ws)
        second = await manager.connect(second_ws)
        for index, connection in enumerate((first, second)):
            manager.authenticate(connection, f"u{index}")
            manager.join(connection, chat_room("c1"))

        delivered = await manager.emit_to_room(chat_room("c1"), "ping", {"n": 1}, exclude=first)

        assert delivered == 1
        assert first_ws.sent == []
        assert second_ws.sent == [{"type": "ping", "n": 1}]

    @pytest.mark.asyncio
    async def test_broadcast_skips_unauthenticated(self):
        manager = ConnectionManager()
        anonymous_ws, member_ws = FakeWebSocket(), FakeWebSocket()
        await manager.connect(anonymous_ws)
        member = await manager.connect(member_ws)
        manager.authenticate(member, "u1")

        assert await manager.broadcast("userStatusChanged", {"userId": "u2"}) == 1
        assert anonymous_ws.sent == []

    @pytest.mark.asyncio
    async def test_close_all(self):
        manager = ConnectionManager()
        websocket = FakeWebSocket()
        await manager.connect(websocket)

        await manager.close_all()

        assert websocket.closed_code == 1000
        assert manager.get_connection_count() == 0

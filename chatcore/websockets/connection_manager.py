import uuid
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket

from chatcore.core.logging import get_logger

logger = get_logger(__name__)


def user_room(user_id: str) -> str:
    """사용자 주소 채널 이름"""
    return f"user:{user_id}"


def chat_room(chat_id: str) -> str:
    """채팅방 브로드캐스트 채널 이름"""
    return f"chat:{chat_id}"


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    ROOM_JOINED = "room_joined"
    DISCONNECTED = "disconnected"


class InvalidStateTransition(Exception):
    pass


class Connection:
    """
    WebSocket 연결 하나의 상태

    CONNECTING -> AUTHENTICATED -> ROOM_JOINED -> DISCONNECTED
    재연결/세션 복구는 없으며, 끊긴 뒤에는 새 연결로 다시 인증해야 합니다.
    """

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.id = uuid.uuid4().hex
        self.user_id: Optional[str] = None
        self.state = ConnectionState.CONNECTING
        self.rooms: Set[str] = set()

    @property
    def is_authenticated(self) -> bool:
        return self.state in (ConnectionState.AUTHENTICATED, ConnectionState.ROOM_JOINED)

    def authenticate(self, user_id: str):
        if self.state != ConnectionState.CONNECTING:
            raise InvalidStateTransition(f"Cannot authenticate connection in state {self.state.value}")
        self.user_id = user_id
        self.state = ConnectionState.AUTHENTICATED

    async def send(self, event: str, payload: Dict[str, Any]):
        await self.websocket.send_json({"type": event, **payload})

    def __repr__(self):
        return f"<Connection(id={self.id}, user_id={self.user_id}, state={self.state.value})>"


class ConnectionManager:
    def __init__(self):
        # 연결 ID별 연결: {connection_id: Connection}
        self.connections: Dict[str, Connection] = {}
        # 채널별 구독 연결: {room: {connection_id}}
        self.rooms: Dict[str, Set[str]] = {}

    async def connect(self, websocket: WebSocket) -> Connection:
        """새로운 WebSocket 연결을 수락하고 등록합니다."""
        await websocket.accept()
        connection = Connection(websocket)
        self.connections[connection.id] = connection
        logger.info(f"Connection {connection.id} accepted")
        return connection

    def authenticate(self, connection: Connection, user_id: str):
        connection.authenticate(user_id)
        logger.info(f"Connection {connection.id} authenticated as user {user_id}")

    def join(self, connection: Connection, room: str):
        """연결을 채널에 구독시킵니다."""
        if not connection.is_authenticated:
            raise InvalidStateTransition(f"Cannot join {room} in state {connection.state.value}")
        self.rooms.setdefault(room, set()).add(connection.id)
        connection.rooms.add(room)
        connection.state = ConnectionState.ROOM_JOINED

    def leave(self, connection: Connection, room: str):
        """채널 구독을 해제합니다."""
        members = self.rooms.get(room)
        if members is not None:
            members.discard(connection.id)
            # 구독자가 없으면 채널 자체를 제거
            if not members:
                del self.rooms[room]
        connection.rooms.discard(room)
        if connection.state == ConnectionState.ROOM_JOINED and not connection.rooms:
            connection.state = ConnectionState.AUTHENTICATED

    def disconnect(self, connection: Connection):
        """연결 정보를 제거합니다. 여러 번 호출해도 안전합니다."""
        for room in list(connection.rooms):
            self.leave(connection, room)
        connection.state = ConnectionState.DISCONNECTED
        if self.connections.pop(connection.id, None) is not None:
            logger.info(f"Connection {connection.id} (user {connection.user_id}) disconnected")

    async def send(self, connection: Connection, event: str, payload: Dict[str, Any]) -> bool:
        """특정 연결에 이벤트를 전송합니다."""
        if connection.state == ConnectionState.DISCONNECTED:
            return False
        try:
            await connection.send(event, payload)
            return True
        except Exception as e:
            logger.error(f"Failed to send {event} to connection {connection.id}: {e}")
            self.disconnect(connection)
            return False

    async def emit_to_room(
        self,
        room: str,
        event: str,
        payload: Dict[str, Any],
        exclude: Optional[Connection] = None
    ) -> int:
        """채널 구독자 전원에게 이벤트를 전송하고 전달된 연결 수를 반환합니다."""
        delivered = 0
        for connection_id in list(self.rooms.get(room, ())):
            connection = self.connections.get(connection_id)
            if connection is None or connection is exclude:
                continue
            if await self.send(connection, event, payload):
                delivered += 1
        return delivered

    async def broadcast(
        self,
        event: str,
        payload: Dict[str, Any],
        exclude: Optional[Connection] = None
    ) -> int:
        """인증된 모든 연결에 이벤트를 브로드캐스트합니다."""
        delivered = 0
        for connection in list(self.connections.values()):
            if connection is exclude or not connection.is_authenticated:
                continue
            if await self.send(connection, event, payload):
                delivered += 1
        return delivered

    def get_room_connections(self, room: str) -> List[str]:
        return list(self.rooms.get(room, ()))

    def get_connection_count(self) -> int:
        return len(self.connections)

    async def close_all(self):
        """종료 시 모든 연결을 닫습니다."""
        for connection in list(self.connections.values()):
            try:
                await connection.websocket.close()
            except Exception as e:
                logger.warning(f"Error closing connection {connection.id}: {e}")
            self.disconnect(connection)

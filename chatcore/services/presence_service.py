"""
온라인 상태 관리 서비스

사용자 ID -> 활성 WebSocket 연결 매핑을 프로세스 메모리에 유지합니다.
단일 활성 세션 모델: 마지막으로 온라인을 알린 연결이 이깁니다.
영속 저장소의 isOnline 플래그는 백그라운드로 기록되며, 실패해도 호출자에게 전파되지 않습니다.
"""

import asyncio
from typing import Any, Dict, List, Optional, Set

from chatcore.core.logging import get_logger
from chatcore.database.store import ChatStore, guarded
from chatcore.schemas.events import USER_STATUS_CHANGED, UserStatusChanged
from chatcore.utils.locks import KeyedLock
from chatcore.websockets.connection_manager import Connection, ConnectionManager, user_room

logger = get_logger(__name__)


class PresenceTracker:
    """온라인 상태 추적기"""

    def __init__(self, store: ChatStore, manager: ConnectionManager, store_timeout: float):
        self.store = store
        self.manager = manager
        self.store_timeout = store_timeout
        self._connections: Dict[str, Connection] = {}
        self._pending_writes: Set[asyncio.Task] = set()
        self._write_locks = KeyedLock()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self):
        """프로세스 시작 시 빈 상태로 초기화"""
        self._connections.clear()
        self._running = True
        logger.info("Presence tracker started")

    async def stop(self):
        """매핑을 비우고 남은 백그라운드 기록을 마무리합니다."""
        self._running = False
        self._connections.clear()
        if self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)
        logger.info("Presence tracker stopped")

    async def mark_online(self, user_id: str, connection: Connection):
        """
        사용자를 온라인으로 표시

        Args:
            user_id: 사용자 ID
            connection: 활성 연결 (기존 연결을 덮어씀)
        """
        previous = self._connections.get(user_id)
        self._connections[user_id] = connection
        if previous is not None and previous is not connection:
            logger.info(f"User {user_id} session moved from {previous.id} to {connection.id}")

        self._persist_online_flag(user_id, True)
        await self._broadcast_status(user_id, True, exclude=connection)
        logger.info(f"User {user_id} is online with connection {connection.id}")

    async def mark_offline(self, user_id: str, connection: Optional[Connection] = None) -> bool:
        """
        사용자를 오프라인으로 표시

        connection이 주어졌는데 현재 매핑된 연결이 아니면(이미 대체된 세션) 아무것도 하지 않습니다.

        Returns:
            상태가 실제로 변경되었는지 여부
        """
        current = self._connections.get(user_id)
        if connection is not None and current is not connection:
            return False
        if current is None:
            return False

        del self._connections[user_id]
        self._persist_online_flag(user_id, False)
        await self._broadcast_status(user_id, False, exclude=connection)
        logger.info(f"User {user_id} is offline")
        return True

    def resolve(self, user_id: str) -> Optional[Connection]:
        return self._connections.get(user_id)

    def is_online(self, user_id: str) -> bool:
        return user_id in self._connections

    def online_user_ids(self) -> List[str]:
        return list(self._connections.keys())

    async def push(self, user_id: str, event: str, payload: Dict[str, Any]) -> bool:
        """
        사용자에게 이벤트를 직접 전송

        온라인이면 현재 활성 연결에만 보내고, 온라인 표시가 없으면 사용자 채널 구독자에게 보냅니다.
        """
        connection = self.resolve(user_id)
        if connection is not None:
            return await self.manager.send(connection, event, payload)
        return await self.manager.emit_to_room(user_room(user_id), event, payload) > 0

    async def _broadcast_status(self, user_id: str, is_online: bool, exclude: Optional[Connection]):
        payload = UserStatusChanged(user_id=user_id, is_online=is_online).to_payload()
        await self.manager.broadcast(USER_STATUS_CHANGED, payload, exclude=exclude)

    def _persist_online_flag(self, user_id: str, is_online: bool):
        task = asyncio.create_task(self._write_online_flag(user_id, is_online))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _write_online_flag(self, user_id: str, is_online: bool):
        # 같은 사용자의 기록은 요청 순서대로
        async with self._write_locks.hold(user_id):
            try:
                await guarded(
                    "set_user_online",
                    self.store.set_user_online(user_id, is_online),
                    self.store_timeout,
                )
                logger.debug(f"User {user_id} online flag stored as {is_online}")
            except Exception as e:
                logger.warning(f"Failed to store online flag for user {user_id}: {e}")

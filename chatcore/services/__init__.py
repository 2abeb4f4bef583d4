"""
Services layer.

- presence_service: 온라인 상태 추적
- chat_service: 채팅방 조회/생성 및 멤버십
- message_service: 메시지 저장 및 전달
- read_state_service: 읽음 처리
"""

from chatcore.core.config import Settings
from chatcore.database.store import ChatStore
from chatcore.websockets.connection_manager import ConnectionManager

from .chat_service import ChatDirectory
from .message_service import MessagePipeline
from .presence_service import PresenceTracker
from .read_state_service import ReadStateTracker


class ServiceContainer:
    """프로세스 단위로 공유되는 서비스 묶음 (app.state.container)"""

    def __init__(self, store: ChatStore, settings: Settings):
        timeout = settings.store_timeout_seconds
        self.store = store
        self.settings = settings
        self.manager = ConnectionManager()
        self.presence = PresenceTracker(store, self.manager, timeout)
        self.chats = ChatDirectory(
            store,
            self.presence,
            timeout,
            direct_chat_name=settings.direct_chat_name,
            enforce_group_admin=settings.enforce_group_admin,
        )
        self.messages = MessagePipeline(
            store,
            self.presence,
            self.chats,
            timeout,
            history_page_limit=settings.history_page_limit,
        )
        self.read_state = ReadStateTracker(store, self.chats, timeout)

    async def start(self):
        await self.presence.start()

    async def stop(self):
        await self.manager.close_all()
        await self.presence.stop()


__all__ = [
    "ChatDirectory",
    "MessagePipeline",
    "PresenceTracker",
    "ReadStateTracker",
    "ServiceContainer",
]

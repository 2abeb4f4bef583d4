from chatcore.core.logging import get_logger
from chatcore.core.validators import Validator
from chatcore.database.store import ChatStore, guarded
from chatcore.services.chat_service import ChatDirectory

logger = get_logger(__name__)


class ReadStateTracker:
    """메시지 읽음 상태 관리"""

    def __init__(self, store: ChatStore, directory: ChatDirectory, store_timeout: float):
        self.store = store
        self.directory = directory
        self.store_timeout = store_timeout

    async def mark_read(self, chat_id: str, user_id: str) -> int:
        """
        채팅방에서 user_id에게 온 읽지 않은 메시지를 모두 읽음 처리

        여러 번 호출해도 결과는 같습니다. 두 번째 호출은 0을 반환합니다.

        Returns:
            새로 읽음 처리된 메시지 수
        """
        user_id = Validator.validate_object_id(user_id, "userId")
        chat = await self.directory.require_member(chat_id, user_id)
        count = await guarded(
            "mark_messages_read",
            self.store.mark_messages_read(chat.id, user_id),
            self.store_timeout,
        )
        if count:
            logger.info(f"Marked {count} messages as read in chat {chat.id} for user {user_id}")
        return count

"""
Message pipeline.

Validates and persists messages, advances the chat's latest-message pointer
and fans the stored message out to the other participants.
"""

from datetime import datetime
from typing import Awaitable, List, Optional, TypeVar

from chatcore.core.errors import ValidationException
from chatcore.core.logging import get_logger
from chatcore.core.validators import Validator
from chatcore.database.store import ChatStore, guarded
from chatcore.models import Message
from chatcore.schemas import MessageList, MessageResponse, SenderSummary
from chatcore.schemas.events import RECEIVE_MESSAGE
from chatcore.services.chat_service import ChatDirectory
from chatcore.services.presence_service import PresenceTracker
from chatcore.utils.locks import KeyedLock

logger = get_logger(__name__)

T = TypeVar("T")


class MessagePipeline:
    """메시지 저장 및 전달"""

    def __init__(
        self,
        store: ChatStore,
        presence: PresenceTracker,
        directory: ChatDirectory,
        store_timeout: float,
        history_page_limit: int = 50,
    ):
        self.store = store
        self.presence = presence
        self.directory = directory
        self.store_timeout = store_timeout
        self.history_page_limit = history_page_limit
        # 채팅방별 append 순서 보장
        self._chat_locks = KeyedLock()

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        return await guarded(operation, awaitable, self.store_timeout)

    async def send_message(
        self,
        chat_id: str,
        sender_id: str,
        content: Optional[str],
        recipient_id: Optional[str] = None,
    ) -> MessageResponse:
        """
        메시지 전송

        1. 입력 검증 및 멤버 확인
        2. 메시지 저장 후 마지막 메시지 포인터 갱신 (채팅방 단위 직렬화)
        3. 수신자(지정 시) 또는 발신자를 제외한 모든 멤버에게 receiveMessage 전송

        Raises:
            ValidationException: 내용이 비었거나 ID 형식이 잘못된 경우
            ResourceNotFoundException: 채팅방이 없는 경우
            ForbiddenException: 발신자가 멤버가 아닌 경우
        """
        sender_id = Validator.validate_object_id(sender_id, "senderId")
        content = Validator.validate_message_content(content)
        chat = await self.directory.require_member(chat_id, sender_id)

        if recipient_id:
            recipient_id = Validator.validate_object_id(recipient_id, "recipientId")
            if recipient_id == sender_id or not chat.is_member(recipient_id):
                raise ValidationException(
                    "recipientId must be another member of the chat",
                    details={"chat_id": chat.id, "recipient_id": recipient_id},
                )
            recipients: List[str] = [recipient_id]
        else:
            recipients = chat.other_members(sender_id)
            # 1:1 채팅방은 상대방이 곧 수신자
            recipient_id = recipients[0] if not chat.is_group_chat and recipients else None

        message = Message(
            sender_id=sender_id,
            recipient_id=recipient_id,
            chat=chat.id,
            content=content,
        )
        async with self._chat_locks.hold(chat.id):
            message.created_at = datetime.utcnow()
            await self._call("insert_message", self.store.insert_message(message))
            # 저장이 끝난 메시지만 가리키도록 저장 이후에 갱신
            advanced = await self._call(
                "advance_latest_message", self.store.advance_latest_message(chat.id, message)
            )
        if not advanced:
            logger.debug(f"Latest message of chat {chat.id} already newer than {message.id}")

        sender = await self._call("find_user", self.store.find_user(sender_id))
        response = MessageResponse.from_message(message, SenderSummary.from_user(sender) if sender else None)

        payload = {"message": response.to_payload()}
        delivered = 0
        for member_id in recipients:
            if await self.presence.push(member_id, RECEIVE_MESSAGE, payload):
                delivered += 1

        logger.info(
            f"Message {message.id} stored in chat {chat.id} from {sender_id}, "
            f"delivered to {delivered}/{len(recipients)} recipients"
        )
        return response

    async def get_chat_messages(
        self,
        chat_id: str,
        actor_id: str,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> MessageList:
        """채팅방 메시지 이력 조회 (오래된 순)"""
        limit, skip = Validator.validate_pagination(
            limit if limit is not None else self.history_page_limit, skip
        )
        chat = await self.directory.require_member(chat_id, actor_id)

        # 다음 페이지 여부 확인을 위해 하나 더 조회
        messages = await self._call("list_messages", self.store.list_messages(chat.id, skip, limit + 1))
        has_next = len(messages) > limit
        messages = messages[:limit]

        sender_ids = list(dict.fromkeys(message.sender_id for message in messages))
        senders = {
            user.id: SenderSummary.from_user(user)
            for user in await self._call("find_users", self.store.find_users(sender_ids))
        }
        return MessageList(
            messages=[MessageResponse.from_message(message, senders.get(message.sender_id)) for message in messages],
            skip=skip,
            limit=limit,
            has_next=has_next,
        )

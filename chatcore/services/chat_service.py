"""
Chat directory service.

Resolves or creates direct chats, manages group chats and their membership,
and builds the populated chat views returned to clients.
"""

from datetime import datetime
from typing import Awaitable, Dict, Iterable, List, Optional, Tuple, TypeVar, Union

from chatcore.core.errors import (
    ForbiddenException,
    ValidationException,
    chat_not_found_error,
    not_a_member_error,
    user_not_found_error,
)
from chatcore.core.logging import get_logger
from chatcore.core.validators import Validator
from chatcore.database.store import ChatStore, guarded
from chatcore.models import Chat, User, direct_key_for
from chatcore.schemas import ChatResponse, MessageResponse, SenderSummary, UserSummary
from chatcore.schemas.events import NEW_CHAT
from chatcore.services.presence_service import PresenceTracker
from chatcore.utils.locks import KeyedLock

logger = get_logger(__name__)

T = TypeVar("T")


class ChatDirectory:
    """채팅방 조회/생성 및 멤버십 관리"""

    def __init__(
        self,
        store: ChatStore,
        presence: PresenceTracker,
        store_timeout: float,
        direct_chat_name: str = "sender",
        enforce_group_admin: bool = True,
    ):
        self.store = store
        self.presence = presence
        self.store_timeout = store_timeout
        self.direct_chat_name = direct_chat_name
        self.enforce_group_admin = enforce_group_admin
        # 정렬된 사용자 쌍별 생성 직렬화
        self._direct_locks = KeyedLock()

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        return await guarded(operation, awaitable, self.store_timeout)

    # =========================================================================
    # Lookups
    # =========================================================================

    async def require_chat(self, chat_id: str) -> Chat:
        """채팅방 ID로 조회 (없으면 NotFound)"""
        chat_id = Validator.validate_object_id(chat_id, "chatId")
        chat = await self._call("find_chat", self.store.find_chat(chat_id))
        if chat is None:
            raise chat_not_found_error(chat_id)
        return chat

    async def require_member(self, chat_id: str, user_id: str) -> Chat:
        """채팅방 조회 후 멤버 여부 확인"""
        chat = await self.require_chat(chat_id)
        if not chat.is_member(user_id):
            raise not_a_member_error(chat.id)
        return chat

    async def get_chat(self, chat_id: str, actor_id: str) -> ChatResponse:
        chat = await self.require_member(chat_id, actor_id)
        return await self.populate(chat)

    async def list_chats_for_user(self, user_id: str) -> List[ChatResponse]:
        """사용자가 속한 채팅방 목록 (최근 활동순)"""
        user_id = Validator.validate_object_id(user_id, "userId")
        chats = await self._call("list_chats_for_user", self.store.list_chats_for_user(user_id))
        users = await self._load_users(member_id for chat in chats for member_id in self._user_ids_of(chat))
        return [await self.populate(chat, users) for chat in chats]

    # =========================================================================
    # Direct chats
    # =========================================================================

    async def get_or_create_direct_chat(self, actor_id: str, other_user_id: str) -> Tuple[ChatResponse, bool]:
        """
        두 사용자 간 1:1 채팅방을 조회하거나 생성합니다.

        같은 쌍에 대한 동시 호출은 같은 채팅방을 반환합니다.
        새로 생성된 경우에만 두 참여자에게 newChat 이벤트를 보냅니다.

        Returns:
            (채팅방, 생성 여부)
        """
        actor_id = Validator.validate_object_id(actor_id, "actorId")
        other_user_id = Validator.validate_object_id(other_user_id, "userId")
        if actor_id == other_user_id:
            raise ValidationException("Cannot create chat room with yourself")

        other_user = await self._call("find_user", self.store.find_user(other_user_id))
        if other_user is None:
            raise user_not_found_error(other_user_id)

        key = direct_key_for(actor_id, other_user_id)
        created = False
        async with self._direct_locks.hold(key):
            chat = await self._call("find_direct_chat", self.store.find_direct_chat(actor_id, other_user_id))
            if chat is None:
                chat, created = await self._call(
                    "insert_direct_chat",
                    self.store.insert_direct_chat(Chat(
                        chat_name=self.direct_chat_name,
                        is_group_chat=False,
                        users=[actor_id, other_user_id],
                        direct_key=key,
                    )),
                )

        populated = await self.populate(chat)
        if created:
            logger.info(f"Direct chat {chat.id} created between {actor_id} and {other_user_id}")
            payload = {"chat": populated.to_payload()}
            for member_id in chat.users:
                await self.presence.push(member_id, NEW_CHAT, payload)
        return populated, created

    # =========================================================================
    # Group chats
    # =========================================================================

    async def create_group_chat(
        self,
        name: Optional[str],
        member_ids: Union[List[str], str, None],
        creator_id: str,
    ) -> ChatResponse:
        """그룹 채팅방 생성 (생성자 외 최소 2명, 생성자가 관리자)"""
        creator_id = Validator.validate_object_id(creator_id, "creatorId")
        name = Validator.validate_chat_name(name, "name")
        invitees = Validator.validate_group_invitees(Validator.parse_member_ids(member_ids), creator_id)

        found = await self._call("find_users", self.store.find_users(invitees))
        missing = set(invitees) - {user.id for user in found}
        if missing:
            raise user_not_found_error(sorted(missing)[0])

        chat = Chat(
            chat_name=name,
            is_group_chat=True,
            users=invitees + [creator_id],
            group_admin=creator_id,
        )
        await self._call("insert_chat", self.store.insert_chat(chat))
        logger.info(f"Group chat {chat.id} '{name}' created by {creator_id} with {len(chat.users)} members")
        return await self.populate(chat)

    async def rename_chat(self, chat_id: str, new_name: Optional[str], actor_id: Optional[str] = None) -> ChatResponse:
        new_name = Validator.validate_chat_name(new_name, "chatName")
        chat = await self.require_chat(chat_id)
        self._check_chat_permission(chat, actor_id)

        logger.info(f"Renaming chat: {chat.id} to {new_name}")
        updated = await self._call("rename_chat", self.store.rename_chat(chat.id, new_name, datetime.utcnow()))
        if updated is None:
            raise chat_not_found_error(chat.id)
        return await self.populate(updated)

    async def add_member(self, chat_id: str, user_id: str, actor_id: Optional[str] = None) -> ChatResponse:
        user_id = Validator.validate_object_id(user_id, "userId")
        chat = await self._require_group(chat_id)
        self._check_chat_permission(chat, actor_id)

        user = await self._call("find_user", self.store.find_user(user_id))
        if user is None:
            raise user_not_found_error(user_id)

        updated = await self._call("add_chat_member", self.store.add_chat_member(chat.id, user_id, datetime.utcnow()))
        if updated is None:
            raise chat_not_found_error(chat.id)
        logger.info(f"User {user_id} added to chat {chat.id}")
        return await self.populate(updated)

    async def remove_member(self, chat_id: str, user_id: str, actor_id: Optional[str] = None) -> ChatResponse:
        """멤버 제거 (본인이 나가는 경우는 관리자가 아니어도 허용)"""
        user_id = Validator.validate_object_id(user_id, "userId")
        chat = await self._require_group(chat_id)
        if actor_id != user_id:
            self._check_chat_permission(chat, actor_id)

        updated = await self._call(
            "remove_chat_member", self.store.remove_chat_member(chat.id, user_id, datetime.utcnow())
        )
        if updated is None:
            raise chat_not_found_error(chat.id)
        logger.info(f"User {user_id} removed from chat {chat.id}")
        return await self.populate(updated)

    async def _require_group(self, chat_id: str) -> Chat:
        chat = await self.require_chat(chat_id)
        if not chat.is_group_chat:
            raise ValidationException("Members can only be changed on group chats")
        return chat

    def _check_chat_permission(self, chat: Chat, actor_id: Optional[str]):
        """멤버(또는 그룹 관리자)만 변경 가능. 그룹은 설정에 따라 관리자만 허용"""
        if actor_id is None:
            return
        if not chat.is_member(actor_id) and chat.group_admin != actor_id:
            raise not_a_member_error(chat.id)
        if not self.enforce_group_admin or not chat.is_group_chat:
            return
        if chat.group_admin != actor_id:
            raise ForbiddenException("Only the group admin can do this", details={"chat_id": chat.id})

    # =========================================================================
    # Population
    # =========================================================================

    @staticmethod
    def _user_ids_of(chat: Chat) -> List[str]:
        ids = list(chat.users)
        if chat.group_admin and chat.group_admin not in ids:
            ids.append(chat.group_admin)
        return ids

    async def _load_users(self, user_ids: Iterable[str]) -> Dict[str, User]:
        unique_ids = list(dict.fromkeys(user_ids))
        users = await self._call("find_users", self.store.find_users(unique_ids))
        return {user.id: user for user in users}

    async def populate(self, chat: Chat, users: Optional[Dict[str, User]] = None) -> ChatResponse:
        """멤버, 관리자, 마지막 메시지(발신자 정보 포함)를 채운 응답 생성"""
        if users is None:
            users = await self._load_users(self._user_ids_of(chat))

        latest_message = None
        if chat.latest_message:
            message = await self._call("find_message", self.store.find_message(chat.latest_message))
            if message is not None:
                sender = users.get(message.sender_id)
                if sender is None:
                    sender = await self._call("find_user", self.store.find_user(message.sender_id))
                latest_message = MessageResponse.from_message(
                    message, SenderSummary.from_user(sender) if sender else None
                )

        admin = users.get(chat.group_admin) if chat.group_admin else None
        return ChatResponse(
            id=chat.id,
            chat_name=chat.chat_name,
            is_group_chat=chat.is_group_chat,
            users=[UserSummary.from_user(users[member_id]) for member_id in chat.users if member_id in users],
            group_admin=UserSummary.from_user(admin) if admin else None,
            latest_message=latest_message,
            created_at=chat.created_at,
            updated_at=chat.updated_at,
        )

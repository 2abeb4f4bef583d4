"""
Durable store for users, chats and messages (MongoDB).

Services never call the store directly: every call goes through `guarded()`,
which bounds it with a timeout and maps driver failures onto the error taxonomy.
"""

import asyncio
import time
from datetime import datetime
from typing import Awaitable, List, Optional, Protocol, Tuple, TypeVar

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from chatcore.core.errors import OperationTimeoutException, PersistenceException
from chatcore.core.logging import get_logger, log_database_operation
from chatcore.database.mongodb import CHATS_COLLECTION, MESSAGES_COLLECTION, USERS_COLLECTION
from chatcore.models import Chat, Message, User, direct_key_for

logger = get_logger(__name__)

T = TypeVar("T")


async def guarded(operation: str, awaitable: Awaitable[T], timeout: float) -> T:
    """저장소 호출을 시간 제한과 에러 분류로 감쌉니다. 재시도하지 않습니다."""
    start_time = time.time()
    try:
        result = await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError:
        duration_ms = (time.time() - start_time) * 1000
        log_database_operation(logger, operation, duration_ms=duration_ms, success=False, reason="timeout")
        logger.error(f"Store operation {operation} timed out after {timeout}s")
        raise OperationTimeoutException(operation, timeout)
    except PyMongoError as e:
        duration_ms = (time.time() - start_time) * 1000
        log_database_operation(logger, operation, duration_ms=duration_ms, success=False, reason=type(e).__name__)
        logger.error(f"Store operation {operation} failed: {e}")
        raise PersistenceException(operation, details={"operation": operation, "reason": type(e).__name__})

    log_database_operation(logger, operation, duration_ms=(time.time() - start_time) * 1000)
    return result


class ChatStore(Protocol):
    """코어가 사용하는 영속 저장소 계약"""

    async def ping(self) -> bool: ...

    async def find_user(self, user_id: str) -> Optional[User]: ...

    async def find_users(self, user_ids: List[str]) -> List[User]: ...

    async def set_user_online(self, user_id: str, is_online: bool) -> None: ...

    async def find_chat(self, chat_id: str) -> Optional[Chat]: ...

    async def find_direct_chat(self, user_a: str, user_b: str) -> Optional[Chat]: ...

    async def insert_direct_chat(self, chat: Chat) -> Tuple[Chat, bool]: ...

    async def insert_chat(self, chat: Chat) -> Chat: ...

    async def rename_chat(self, chat_id: str, chat_name: str, updated_at: datetime) -> Optional[Chat]: ...

    async def add_chat_member(self, chat_id: str, user_id: str, updated_at: datetime) -> Optional[Chat]: ...

    async def remove_chat_member(self, chat_id: str, user_id: str, updated_at: datetime) -> Optional[Chat]: ...

    async def list_chats_for_user(self, user_id: str) -> List[Chat]: ...

    async def insert_message(self, message: Message) -> Message: ...

    async def find_message(self, message_id: str) -> Optional[Message]: ...

    async def advance_latest_message(self, chat_id: str, message: Message) -> bool: ...

    async def list_messages(self, chat_id: str, skip: int, limit: int) -> List[Message]: ...

    async def mark_messages_read(self, chat_id: str, recipient_id: str) -> int: ...


class MongoChatStore:
    """motor 기반 ChatStore 구현"""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.users = db[USERS_COLLECTION]
        self.chats = db[CHATS_COLLECTION]
        self.messages = db[MESSAGES_COLLECTION]

    async def ping(self) -> bool:
        await self.db.command("ping")
        return True

    # =========================================================================
    # Users
    # =========================================================================

    async def find_user(self, user_id: str) -> Optional[User]:
        document = await self.users.find_one({"_id": ObjectId(user_id)}, {"password": 0})
        return User.from_document(document) if document else None

    async def find_users(self, user_ids: List[str]) -> List[User]:
        if not user_ids:
            return []
        cursor = self.users.find({"_id": {"$in": [ObjectId(user_id) for user_id in user_ids]}}, {"password": 0})
        found = {str(document["_id"]): User.from_document(document) async for document in cursor}
        # 요청한 순서 유지
        return [found[user_id] for user_id in user_ids if user_id in found]

    async def set_user_online(self, user_id: str, is_online: bool) -> None:
        await self.users.update_one({"_id": ObjectId(user_id)}, {"$set": {"isOnline": is_online}})

    # =========================================================================
    # Chats
    # =========================================================================

    async def find_chat(self, chat_id: str) -> Optional[Chat]:
        document = await self.chats.find_one({"_id": ObjectId(chat_id)})
        return Chat.from_document(document) if document else None

    async def find_direct_chat(self, user_a: str, user_b: str) -> Optional[Chat]:
        key = direct_key_for(user_a, user_b)
        document = await self.chats.find_one({"directKey": key, "isGroupChat": False})
        if document:
            return Chat.from_document(document)

        # directKey 도입 이전에 만들어진 채팅방
        document = await self.chats.find_one({
            "isGroupChat": False,
            "directKey": {"$in": [None, ""]},
            "users": {"$all": [ObjectId(user_a), ObjectId(user_b)], "$size": 2},
        })
        if not document:
            return None
        try:
            await self.chats.update_one({"_id": document["_id"]}, {"$set": {"directKey": key}})
        except DuplicateKeyError:
            # 같은 쌍의 다른 기존 문서가 먼저 키를 가져감
            document = await self.chats.find_one({"directKey": key, "isGroupChat": False})
            return Chat.from_document(document) if document else None
        document["directKey"] = key
        return Chat.from_document(document)

    async def insert_direct_chat(self, chat: Chat) -> Tuple[Chat, bool]:
        """directKey 기준 원자적 find-or-insert. (채팅방, 생성 여부)를 반환합니다."""
        document = chat.to_document()
        query = {"directKey": chat.direct_key, "isGroupChat": False}
        try:
            stored = await self.chats.find_one_and_update(
                query,
                {"$setOnInsert": document},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            # 동시 upsert 경합에서 진 쪽
            stored = await self.chats.find_one(query)
        return Chat.from_document(stored), stored["_id"] == document["_id"]

    async def insert_chat(self, chat: Chat) -> Chat:
        await self.chats.insert_one(chat.to_document())
        return chat

    async def _update_chat(self, chat_id: str, update: dict) -> Optional[Chat]:
        document = await self.chats.find_one_and_update(
            {"_id": ObjectId(chat_id)},
            update,
            return_document=ReturnDocument.AFTER,
        )
        return Chat.from_document(document) if document else None

    async def rename_chat(self, chat_id: str, chat_name: str, updated_at: datetime) -> Optional[Chat]:
        return await self._update_chat(chat_id, {"$set": {"chatName": chat_name, "updatedAt": updated_at}})

    async def add_chat_member(self, chat_id: str, user_id: str, updated_at: datetime) -> Optional[Chat]:
        return await self._update_chat(chat_id, {
            "$addToSet": {"users": ObjectId(user_id)},
            "$set": {"updatedAt": updated_at},
        })

    async def remove_chat_member(self, chat_id: str, user_id: str, updated_at: datetime) -> Optional[Chat]:
        return await self._update_chat(chat_id, {
            "$pull": {"users": ObjectId(user_id)},
            "$set": {"updatedAt": updated_at},
        })

    async def list_chats_for_user(self, user_id: str) -> List[Chat]:
        cursor = self.chats.find({"users": ObjectId(user_id)}).sort("updatedAt", DESCENDING)
        return [Chat.from_document(document) async for document in cursor]

    # =========================================================================
    # Messages
    # =========================================================================

    async def insert_message(self, message: Message) -> Message:
        await self.messages.insert_one(message.to_document())
        return message

    async def find_message(self, message_id: str) -> Optional[Message]:
        document = await self.messages.find_one({"_id": ObjectId(message_id)})
        return Message.from_document(document) if document else None

    async def advance_latest_message(self, chat_id: str, message: Message) -> bool:
        """마지막 메시지 포인터를 시간상 앞으로만 이동합니다."""
        result = await self.chats.update_one(
            {
                "_id": ObjectId(chat_id),
                "$or": [
                    {"latestMessageAt": None},
                    {"latestMessageAt": {"$lte": message.created_at}},
                ],
            },
            {"$set": {
                "latestMessage": ObjectId(message.id),
                "latestMessageAt": message.created_at,
                "updatedAt": message.created_at,
            }},
        )
        return result.matched_count > 0

    async def list_messages(self, chat_id: str, skip: int, limit: int) -> List[Message]:
        cursor = (
            self.messages.find({"chat": ObjectId(chat_id)})
            .sort([("createdAt", ASCENDING), ("_id", ASCENDING)])
            .skip(skip)
            .limit(limit)
        )
        return [Message.from_document(document) async for document in cursor]

    async def mark_messages_read(self, chat_id: str, recipient_id: str) -> int:
        result = await self.messages.update_many(
            {"chat": ObjectId(chat_id), "recipientId": ObjectId(recipient_id), "isRead": False},
            {"$set": {"isRead": True}},
        )
        return result.modified_count

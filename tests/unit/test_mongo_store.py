from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

import chatcore.database
from chatcore.database import check_database_health
from chatcore.database.mongodb import CHAT_INDEXES, CHATS_COLLECTION, MESSAGES_COLLECTION, USERS_COLLECTION
from chatcore.database.store import MongoChatStore
from chatcore.models import Chat, Message, direct_key_for
from chatcore.models.base import new_object_id


class FakeCursor:
    """motor 커서처럼 체이닝과 async for를 지원하는 테스트용 커서"""

    def __init__(self, documents):
        self.documents = documents
        self.sort_args = None
        self.skip_count = None
        self.limit_count = None

    def sort(self, *args):
        self.sort_args = args
        return self

    def skip(self, count):
        self.skip_count = count
        return self

    def limit(self, count):
        self.limit_count = count
        return self

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for document in self.documents:
            yield document


def mock_collection() -> MagicMock:
    collection = MagicMock()
    collection.find_one = AsyncMock(return_value=None)
    collection.find_one_and_update = AsyncMock(return_value=None)
    collection.update_one = AsyncMock()
    collection.update_many = AsyncMock()
    collection.insert_one = AsyncMock()
    return collection


@pytest.fixture
def collections():
    return {
        USERS_COLLECTION: mock_collection(),
        CHATS_COLLECTION: mock_collection(),
        MESSAGES_COLLECTION: mock_collection(),
    }


@pytest.fixture
def mongo_store(collections) -> MongoChatStore:
    db = MagicMock()
    db.__getitem__.side_effect = collections.__getitem__
    return MongoChatStore(db)


@pytest.fixture
def pair():
    return new_object_id(), new_object_id()


def direct_chat(user_a: str, user_b: str, with_key: bool = True) -> Chat:
    return Chat(
        chat_name="sender",
        users=[user_a, user_b],
        direct_key=direct_key_for(user_a, user_b) if with_key else None,
    )


def legacy_document(user_a: str, user_b: str) -> dict:
    """directKey 필드가 없는 기존 1:1 채팅방 문서"""
    document = direct_chat(user_a, user_b, with_key=False).to_document()
    document.pop("directKey")
    return document


class TestChatIndexes:
    """채팅 컬렉션 인덱스 정의 테스트"""

    def test_direct_chat_index_only_covers_keyed_documents(self):
        """directKey가 문자열인 1:1 문서만 고유 인덱스 대상"""
        index = next(index.document for index in CHAT_INDEXES if index.document["name"] == "unique_direct_chat")

        assert index["unique"] is True
        assert index["key"] == {"directKey": 1}
        assert index["partialFilterExpression"] == {"isGroupChat": False, "directKey": {"$type": "string"}}


class TestDirectChatStore:
    """1:1 채팅방 저장 테스트"""

    @pytest.mark.asyncio
    async def test_insert_direct_chat_creates(self, mongo_store, collections, pair):
        chats = collections[CHATS_COLLECTION]
        chat = direct_chat(*pair)
        chats.find_one_and_update.return_value = chat.to_document()

        stored, created = await mongo_store.insert_direct_chat(chat)

        assert created is True
        assert stored.id == chat.id
        assert stored.users == list(pair)
        query, update = chats.find_one_and_update.call_args.args
        assert query == {"directKey": chat.direct_key, "isGroupChat": False}
        assert update == {"$setOnInsert": chat.to_document()}
        assert chats.find_one_and_update.call_args.kwargs["upsert"] is True

    @pytest.mark.asyncio
    async def test_insert_direct_chat_returns_existing(self, mongo_store, collections, pair):
        """같은 키의 채팅방이 이미 있으면 기존 문서를 반환하고 created=False"""
        chats = collections[CHATS_COLLECTION]
        existing = direct_chat(*pair)
        chats.find_one_and_update.return_value = existing.to_document()

        stored, created = await mongo_store.insert_direct_chat(direct_chat(*pair))

        assert created is False
        assert stored.id == existing.id

    @pytest.mark.asyncio
    async def test_insert_direct_chat_duplicate_key_falls_back_to_find(self, mongo_store, collections, pair):
        """동시 upsert 경합에서 진 쪽은 승자의 문서를 읽음"""
        chats = collections[CHATS_COLLECTION]
        winner = direct_chat(*pair)
        chats.find_one_and_update.side_effect = DuplicateKeyError("E11000 duplicate key error")
        chats.find_one.return_value = winner.to_document()

        stored, created = await mongo_store.insert_direct_chat(direct_chat(*pair))

        assert created is False
        assert stored.id == winner.id
        chats.find_one.assert_awaited_once_with({"directKey": winner.direct_key, "isGroupChat": False})

    @pytest.mark.asyncio
    async def test_find_direct_chat_by_key(self, mongo_store, collections, pair):
        chats = collections[CHATS_COLLECTION]
        chat = direct_chat(*pair)
        chats.find_one.return_value = chat.to_document()

        found = await mongo_store.find_direct_chat(pair[1], pair[0])

        assert found.id == chat.id
        chats.find_one.assert_awaited_once_with({"directKey": chat.direct_key, "isGroupChat": False})
        chats.update_one.assert_not_called()

    @pytest.mark.asyncio
    async def test_find_direct_chat_backfills_legacy_key(self, mongo_store, collections, pair):
        """directKey가 없는 기존 채팅방을 찾으면 키를 채워 넣음"""
        chats = collections[CHATS_COLLECTION]
        legacy = legacy_document(*pair)
        chats.find_one.side_effect = [None, legacy]

        found = await mongo_store.find_direct_chat(*pair)

        key = direct_key_for(*pair)
        assert found.id == str(legacy["_id"])
        assert found.direct_key == key
        legacy_query = chats.find_one.await_args_list[1].args[0]
        assert legacy_query["directKey"] == {"$in": [None, ""]}
        assert legacy_query["users"] == {"$all": [ObjectId(pair[0]), ObjectId(pair[1])], "$size": 2}
        chats.update_one.assert_awaited_once_with({"_id": legacy["_id"]}, {"$set": {"directKey": key}})

    @pytest.mark.asyncio
    async def test_find_direct_chat_backfill_conflict(self, mongo_store, collections, pair):
        """다른 기존 문서가 먼저 키를 받았으면 그 문서를 반환"""
        chats = collections[CHATS_COLLECTION]
        keyed = direct_chat(*pair)
        chats.find_one.side_effect = [None, legacy_document(*pair), keyed.to_document()]
        chats.update_one.side_effect = DuplicateKeyError("E11000 duplicate key error")

        found = await mongo_store.find_direct_chat(*pair)

        assert found.id == keyed.id
        assert chats.find_one.await_count == 3

    @pytest.mark.asyncio
    async def test_find_direct_chat_missing(self, mongo_store, collections, pair):
        found = await mongo_store.find_direct_chat(*pair)

        assert found is None
        collections[CHATS_COLLECTION].update_one.assert_not_called()


class TestMessageStore:
    """메시지 저장 테스트"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("matched_count, expected", [(1, True), (0, False)])
    async def test_advance_latest_message_only_moves_forward(
        self, mongo_store, collections, pair, matched_count, expected
    ):
        """포인터는 latestMessageAt 이후의 메시지로만 이동"""
        chats = collections[CHATS_COLLECTION]
        chats.update_one.return_value = MagicMock(matched_count=matched_count)
        chat_id = new_object_id()
        message = Message(sender_id=pair[0], chat=chat_id, content="hi")

        advanced = await mongo_store.advance_latest_message(chat_id, message)

        assert advanced is expected
        query, update = chats.update_one.call_args.args
        assert query["_id"] == ObjectId(chat_id)
        assert {"latestMessageAt": {"$lte": message.created_at}} in query["$or"]
        assert {"latestMessageAt": None} in query["$or"]
        assert update["$set"]["latestMessage"] == ObjectId(message.id)
        assert update["$set"]["latestMessageAt"] == message.created_at

    @pytest.mark.asyncio
    async def test_mark_messages_read_filter(self, mongo_store, collections, pair):
        """해당 채팅방에서 수신자의 읽지 않은 메시지만 갱신"""
        messages = collections[MESSAGES_COLLECTION]
        messages.update_many.return_value = MagicMock(modified_count=3)
        chat_id = new_object_id()

        count = await mongo_store.mark_messages_read(chat_id, pair[1])

        assert count == 3
        messages.update_many.assert_awaited_once_with(
            {"chat": ObjectId(chat_id), "recipientId": ObjectId(pair[1]), "isRead": False},
            {"$set": {"isRead": True}},
        )

    @pytest.mark.asyncio
    async def test_list_messages_oldest_first(self, mongo_store, collections, pair):
        messages = collections[MESSAGES_COLLECTION]
        chat_id = new_object_id()
        now = datetime.utcnow()
        documents = [
            Message(sender_id=pair[0], chat=chat_id, content=str(index), created_at=now + timedelta(seconds=index))
            .to_document()
            for index in range(2)
        ]
        cursor = FakeCursor(documents)
        messages.find.return_value = cursor

        listed = await mongo_store.list_messages(chat_id, 10, 5)

        assert [message.content for message in listed] == ["0", "1"]
        assert listed[0].chat == chat_id
        messages.find.assert_called_once_with({"chat": ObjectId(chat_id)})
        assert cursor.sort_args == ([("createdAt", 1), ("_id", 1)],)
        assert (cursor.skip_count, cursor.limit_count) == (10, 5)


class TestUserStore:
    """사용자 조회 테스트"""

    @pytest.mark.asyncio
    async def test_find_users_keeps_requested_order(self, mongo_store, collections):
        users = collections[USERS_COLLECTION]
        first, second, missing = new_object_id(), new_object_id(), new_object_id()
        users.find.return_value = FakeCursor([
            {"_id": ObjectId(second), "firstName": "Bob", "lastName": "Tester", "email": "bob@example.com"},
            {"_id": ObjectId(first), "firstName": "Alice", "lastName": "Tester", "email": "alice@example.com"},
        ])

        found = await mongo_store.find_users([first, missing, second])

        assert [user.id for user in found] == [first, second]
        query, projection = users.find.call_args.args
        assert projection == {"password": 0}

    @pytest.mark.asyncio
    async def test_find_users_empty(self, mongo_store, collections):
        assert await mongo_store.find_users([]) == []
        collections[USERS_COLLECTION].find.assert_not_called()


class TestDatabaseHealth:
    """저장소 헬스 체크 테스트"""

    @pytest.mark.asyncio
    async def test_health_pings_through_store(self):
        db = MagicMock()
        db.command = AsyncMock(return_value={"ok": 1})

        health = await check_database_health(MongoChatStore(db), timeout=1.0)

        assert health == {"mongodb": True, "overall": True}
        db.command.assert_awaited_once_with("ping")

    @pytest.mark.asyncio
    async def test_health_when_mongo_is_down(self):
        db = MagicMock()
        db.command = AsyncMock(side_effect=ServerSelectionTimeoutError("no primary"))

        health = await check_database_health(MongoChatStore(db), timeout=1.0)

        assert health == {"mongodb": False, "overall": False}

    def test_health_is_the_only_connection_check(self):
        """모듈 전역 연결 헬퍼 대신 저장소를 통해서만 연결 확인"""
        assert not hasattr(chatcore.database, "check_mongo_connection")
        assert not hasattr(chatcore.database, "get_database")

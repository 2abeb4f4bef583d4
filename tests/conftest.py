import asyncio
import json
import os
from datetime import datetime
from typing import AsyncGenerator, Dict, List, Optional, Tuple

# 설정 모듈이 로드되기 전에 테스트 환경 변수 지정
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("MONGO_DB_NAME", "chat_test_db")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from chatcore.core.config import settings
from chatcore.main import app
from chatcore.models import Chat, Message, User, direct_key_for
from chatcore.services import ServiceContainer
from chatcore.utils.auth import create_access_token


class InMemoryChatStore:
    """
    테스트용 인메모리 ChatStore

    `failures`에 작업 이름과 예외를 넣으면 해당 작업이 실패하고,
    `delays`에 작업 이름과 초를 넣으면 해당 작업이 지연됩니다.
    """

    def __init__(self):
        self.users: Dict[str, User] = {}
        self.chats: Dict[str, Chat] = {}
        self.messages: Dict[str, Message] = {}
        self.failures: Dict[str, Exception] = {}
        self.delays: Dict[str, float] = {}
        self.calls: List[str] = []

    async def _enter(self, operation: str):
        self.calls.append(operation)
        if operation in self.delays:
            await asyncio.sleep(self.delays[operation])
        if operation in self.failures:
            raise self.failures[operation]
        # 다른 코루틴이 끼어들 수 있는 지점
        await asyncio.sleep(0)

    def add_user(self, first_name: str, last_name: str = "Tester") -> User:
        user = User(first_name=first_name, last_name=last_name, email=f"{first_name.lower()}@example.com")
        self.users[user.id] = user
        return user

    async def ping(self) -> bool:
        await self._enter("ping")
        return True

    async def find_user(self, user_id: str) -> Optional[User]:
        await self._enter("find_user")
        user = self.users.get(user_id)
        return user.model_copy(deep=True) if user else None

    async def find_users(self, user_ids: List[str]) -> List[User]:
        await self._enter("find_users")
        return [self.users[user_id].model_copy(deep=True) for user_id in user_ids if user_id in self.users]

    async def set_user_online(self, user_id: str, is_online: bool) -> None:
        await self._enter("set_user_online")
        if user_id in self.users:
            self.users[user_id].is_online = is_online

    async def find_chat(self, chat_id: str) -> Optional[Chat]:
        await self._enter("find_chat")
        chat = self.chats.get(chat_id)
        return chat.model_copy(deep=True) if chat else None

    async def find_direct_chat(self, user_a: str, user_b: str) -> Optional[Chat]:
        await self._enter("find_direct_chat")
        key = direct_key_for(user_a, user_b)
        for chat in self.chats.values():
            if chat.is_group_chat:
                continue
            if chat.direct_key == key or (not chat.direct_key and sorted(chat.users) == sorted([user_a, user_b])):
                chat.direct_key = key
                return chat.model_copy(deep=True)
        return None

    async def insert_direct_chat(self, chat: Chat) -> Tuple[Chat, bool]:
        await self._enter("insert_direct_chat")
        for existing in self.chats.values():
            if not existing.is_group_chat and existing.direct_key == chat.direct_key:
                return existing.model_copy(deep=True), False
        self.chats[chat.id] = chat.model_copy(deep=True)
        return chat, True

    async def insert_chat(self, chat: Chat) -> Chat:
        await self._enter("insert_chat")
        self.chats[chat.id] = chat.model_copy(deep=True)
        return chat

    def _updated(self, chat_id: str, updated_at: datetime) -> Optional[Chat]:
        chat = self.chats.get(chat_id)
        if chat is None:
            return None
        chat.updated_at = updated_at
        return chat.model_copy(deep=True)

    async def rename_chat(self, chat_id: str, chat_name: str, updated_at: datetime) -> Optional[Chat]:
        await self._enter("rename_chat")
        if chat_id in self.chats:
            self.chats[chat_id].chat_name = chat_name
        return self._updated(chat_id, updated_at)

    async def add_chat_member(self, chat_id: str, user_id: str, updated_at: datetime) -> Optional[Chat]:
        await self._enter("add_chat_member")
        chat = self.chats.get(chat_id)
        if chat is not None and user_id not in chat.users:
            chat.users.append(user_id)
        return self._updated(chat_id, updated_at)

    async def remove_chat_member(self, chat_id: str, user_id: str, updated_at: datetime) -> Optional[Chat]:
        await self._enter("remove_chat_member")
        chat = self.chats.get(chat_id)
        if chat is not None and user_id in chat.users:
            chat.users.remove(user_id)
        return self._updated(chat_id, updated_at)

    async def list_chats_for_user(self, user_id: str) -> List[Chat]:
        await self._enter("list_chats_for_user")
        chats = [chat for chat in self.chats.values() if user_id in chat.users]
        chats.sort(key=lambda chat: chat.updated_at, reverse=True)
        return [chat.model_copy(deep=True) for chat in chats]

    async def insert_message(self, message: Message) -> Message:
        await self._enter("insert_message")
        self.messages[message.id] = message.model_copy(deep=True)
        return message

    async def find_message(self, message_id: str) -> Optional[Message]:
        await self._enter("find_message")
        message = self.messages.get(message_id)
        return message.model_copy(deep=True) if message else None

    async def advance_latest_message(self, chat_id: str, message: Message) -> bool:
        await self._enter("advance_latest_message")
        chat = self.chats.get(chat_id)
        if chat is None:
            return False
        if chat.latest_message_at is not None and chat.latest_message_at > message.created_at:
            return False
        chat.latest_message = message.id
        chat.latest_message_at = message.created_at
        chat.updated_at = message.created_at
        return True

    async def list_messages(self, chat_id: str, skip: int, limit: int) -> List[Message]:
        await self._enter("list_messages")
        messages = sorted(
            (message for message in self.messages.values() if message.chat == chat_id),
            key=lambda message: (message.created_at, message.id),
        )
        return [message.model_copy(deep=True) for message in messages[skip:skip + limit]]

    async def mark_messages_read(self, chat_id: str, recipient_id: str) -> int:
        await self._enter("mark_messages_read")
        count = 0
        for message in self.messages.values():
            if message.chat == chat_id and message.recipient_id == recipient_id and not message.is_read:
                message.is_read = True
                count += 1
        return count


class FakeWebSocket:
    """송신 프레임을 기록하고 수신 프레임을 큐로 공급하는 테스트용 WebSocket"""

    def __init__(self, token: Optional[str] = None, query_token: Optional[str] = None, fail_send: bool = False):
        self.headers: Dict[str, str] = {"authorization": f"Bearer {token}"} if token else {}
        self.query_params: Dict[str, str] = {"token": query_token} if query_token else {}
        self.client = None
        self.accepted = False
        self.closed_code: Optional[int] = None
        self.sent: List[dict] = []
        self.fail_send = fail_send
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def accept(self):
        self.accepted = True

    async def close(self, code: int = 1000):
        self.closed_code = code

    async def send_json(self, data: dict):
        if self.fail_send:
            raise RuntimeError("socket closed")
        self.sent.append(data)

    async def receive(self) -> dict:
        return await self._incoming.get()

    def feed(self, data: Optional[dict]):
        """다음 수신 JSON 프레임 (None이면 연결 종료)"""
        if data is None:
            self._incoming.put_nowait({"type": "websocket.disconnect", "code": 1000})
        else:
            self.feed_raw(text=json.dumps(data))

    def feed_raw(self, text: Optional[str] = None, data: Optional[bytes] = None):
        """가공하지 않은 텍스트 또는 바이너리 프레임"""
        message = {"type": "websocket.receive"}
        if text is not None:
            message["text"] = text
        if data is not None:
            message["bytes"] = data
        self._incoming.put_nowait(message)

    def frames(self, event: str) -> List[dict]:
        return [frame for frame in self.sent if frame.get("type") == event]


@pytest.fixture
def store() -> InMemoryChatStore:
    return InMemoryChatStore()


@pytest_asyncio.fixture
async def container(store) -> AsyncGenerator[ServiceContainer, None]:
    """인메모리 저장소를 사용하는 서비스 컨테이너"""
    container = ServiceContainer(store, settings)
    await container.start()
    yield container
    await container.stop()


@pytest_asyncio.fixture
async def client(container) -> AsyncGenerator[AsyncClient, None]:
    """테스트용 비동기 HTTP 클라이언트 (lifespan 대신 컨테이너 직접 주입)"""
    app.state.container = container
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    del app.state.container


@pytest.fixture
def alice(store) -> User:
    return store.add_user("Alice")


@pytest.fixture
def bob(store) -> User:
    return store.add_user("Bob")


@pytest.fixture
def carol(store) -> User:
    return store.add_user("Carol")


@pytest.fixture
def dave(store) -> User:
    return store.add_user("Dave")


def token_for(user: User) -> str:
    return create_access_token({"sub": user.id})


def auth_headers(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token_for(user)}"}


async def connect(container: ServiceContainer, user: User, **kwargs):
    """인증까지 마친 연결과 그 FakeWebSocket"""
    websocket = FakeWebSocket(token=token_for(user), **kwargs)
    connection = await container.manager.connect(websocket)
    container.manager.authenticate(connection, user.id)
    return connection, websocket

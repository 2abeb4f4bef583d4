"""
WebSocket 이벤트 페이로드 스키마

클라이언트가 보내는 ID 필드는 신뢰하지 않으며, 게이트웨이가 인증된 연결의 사용자와 대조합니다.
"""

from typing import Optional
from pydantic import Field

from .base import CamelModel

# client -> server
USER_ONLINE = "userOnline"
USER_OFFLINE = "userOffline"
JOIN_CHAT_ROOMS = "joinChatRooms"
JOIN_CHAT = "joinChat"
LEAVE_CHAT = "leaveChat"
SEND_MESSAGE = "sendMessage"
MARK_MESSAGES_AS_READ = "markMessagesAsRead"
PING = "ping"

# server -> client
NEW_CHAT = "newChat"
USER_STATUS_CHANGED = "userStatusChanged"
RECEIVE_MESSAGE = "receiveMessage"
MESSAGES_MARKED_AS_READ = "messagesMarkedAsRead"
JOINED_CHAT = "joinedChat"
LEFT_CHAT = "leftChat"
PONG = "pong"
ERROR = "error"


class UserEventPayload(CamelModel):
    user_id: Optional[str] = Field(None, description="사용자 ID (연결 사용자와 일치해야 함)")


class ChatEventPayload(CamelModel):
    chat_id: Optional[str] = Field(None, description="채팅방 ID")


class SendMessagePayload(CamelModel):
    chat_id: Optional[str] = None
    sender_id: Optional[str] = None
    content: Optional[str] = None
    recipient_id: Optional[str] = None


class MarkReadPayload(CamelModel):
    chat_id: Optional[str] = None
    user_id: Optional[str] = None


class UserStatusChanged(CamelModel):
    user_id: str
    is_online: bool

from .base import CamelModel
from .user import UserSummary, SenderSummary
from .message import MessageResponse, MessageList
from .chat import (
    AccessChatRequest,
    GroupChatCreate,
    ChatRenameRequest,
    GroupMemberRequest,
    ChatResponse,
)

__all__ = [
    "CamelModel",
    "UserSummary",
    "SenderSummary",
    "MessageResponse",
    "MessageList",
    "AccessChatRequest",
    "GroupChatCreate",
    "ChatRenameRequest",
    "GroupMemberRequest",
    "ChatResponse",
]

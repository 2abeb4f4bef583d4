from .users import User
from .chats import Chat, direct_key_for
from .messages import Message

__all__ = [
    "User",
    "Chat",
    "Message",
    "direct_key_for",
]

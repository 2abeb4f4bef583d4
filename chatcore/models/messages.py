from datetime import datetime
from typing import ClassVar, Optional, Tuple
from pydantic import Field

from .base import MongoModel


class Message(MongoModel):
    sender_id: str = Field(..., description="User ID who sent the message")
    recipient_id: Optional[str] = Field(None, description="Recipient user ID (None for group fan-out)")
    chat: str = Field(..., description="Chat ID the message belongs to")
    content: str = Field(..., description="Message content")
    # false -> true 단방향 전이만 허용
    is_read: bool = Field(default=False, description="Whether the recipient has read the message")
    created_at: datetime = Field(default_factory=datetime.utcnow)

    reference_fields: ClassVar[Tuple[str, ...]] = ("sender_id", "recipient_id", "chat")

    def __repr__(self):
        return f"<Message(id={self.id}, chat={self.chat}, sender_id={self.sender_id})>"

from datetime import datetime
from typing import List, Optional
from pydantic import Field

from chatcore.models import Message
from .base import CamelModel
from .user import SenderSummary


class MessageResponse(CamelModel):
    """발신자 정보가 포함된 메시지 응답 스키마"""
    id: str = Field(..., description="메시지 ID")
    sender_id: str = Field(..., description="발신자 ID")
    recipient_id: Optional[str] = Field(None, description="수신자 ID")
    chat: str = Field(..., description="채팅방 ID")
    content: str = Field(..., description="메시지 내용")
    is_read: bool = Field(..., description="읽음 여부")
    created_at: datetime = Field(..., description="생성일시")
    sender: Optional[SenderSummary] = Field(None, description="발신자 정보")

    @classmethod
    def from_message(cls, message: Message, sender: Optional[SenderSummary] = None) -> "MessageResponse":
        return cls(
            id=message.id,
            sender_id=message.sender_id,
            recipient_id=message.recipient_id,
            chat=message.chat,
            content=message.content,
            is_read=message.is_read,
            created_at=message.created_at,
            sender=sender,
        )


class MessageList(CamelModel):
    """메시지 목록 스키마"""
    messages: List[MessageResponse] = Field(..., description="메시지 목록 (오래된 순)")
    skip: int = Field(..., description="건너뛴 항목 수")
    limit: int = Field(..., description="페이지당 항목 수")
    has_next: bool = Field(..., description="다음 페이지 존재 여부")

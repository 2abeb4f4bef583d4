from datetime import datetime
from typing import ClassVar, List, Optional, Tuple
from pydantic import Field

from .base import MongoModel


def direct_key_for(user_a: str, user_b: str) -> str:
    """1:1 채팅방의 고유 키 (정렬된 사용자 ID 쌍)"""
    first, second = sorted((user_a, user_b))
    return f"{first}:{second}"


class Chat(MongoModel):
    chat_name: str = Field(..., description="채팅방 이름")
    is_group_chat: bool = Field(default=False, description="그룹 채팅 여부")
    users: List[str] = Field(default_factory=list, description="멤버 사용자 ID (순서 유지, 중복 없음)")
    group_admin: Optional[str] = Field(None, description="그룹 관리자 ID")
    latest_message: Optional[str] = Field(None, description="마지막 메시지 ID")
    latest_message_at: Optional[datetime] = Field(None, description="마지막 메시지 생성 시각")
    # 1:1 채팅방에서만 설정 (고유 인덱스)
    direct_key: Optional[str] = Field(None, description="정렬된 멤버 쌍 키")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    reference_fields: ClassVar[Tuple[str, ...]] = ("users", "group_admin", "latest_message")

    def is_member(self, user_id: str) -> bool:
        return user_id in self.users

    def other_members(self, user_id: str) -> List[str]:
        return [member_id for member_id in self.users if member_id != user_id]

    def __repr__(self):
        return f"<Chat(id={self.id}, is_group_chat={self.is_group_chat}, users={self.users})>"

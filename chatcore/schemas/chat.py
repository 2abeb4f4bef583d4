from datetime import datetime
from typing import List, Optional, Union
from pydantic import Field

from .base import CamelModel
from .message import MessageResponse
from .user import UserSummary


class AccessChatRequest(CamelModel):
    """1:1 채팅방 접근/생성 요청"""
    user_id: Optional[str] = Field(None, description="상대방 사용자 ID")


class GroupChatCreate(CamelModel):
    """그룹 채팅방 생성 요청 (users는 목록 또는 JSON 문자열)"""
    name: Optional[str] = Field(None, description="그룹 이름")
    users: Optional[Union[List[str], str]] = Field(None, description="초대할 사용자 ID 목록")


class ChatRenameRequest(CamelModel):
    chat_id: Optional[str] = Field(None, description="채팅방 ID")
    chat_name: Optional[str] = Field(None, description="새 이름")


class GroupMemberRequest(CamelModel):
    chat_id: Optional[str] = Field(None, description="채팅방 ID")
    user_id: Optional[str] = Field(None, description="추가/제거할 사용자 ID")


class ChatResponse(CamelModel):
    """멤버/관리자/마지막 메시지 정보가 채워진 채팅방 응답"""
    id: str = Field(..., description="채팅방 ID")
    chat_name: str = Field(..., description="채팅방 이름")
    is_group_chat: bool = Field(..., description="그룹 채팅 여부")
    users: List[UserSummary] = Field(default_factory=list, description="멤버 목록")
    group_admin: Optional[UserSummary] = Field(None, description="그룹 관리자")
    latest_message: Optional[MessageResponse] = Field(None, description="마지막 메시지")
    created_at: datetime = Field(..., description="생성일시")
    updated_at: datetime = Field(..., description="수정일시")

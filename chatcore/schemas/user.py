from typing import Optional
from pydantic import Field

from chatcore.models import User
from .base import CamelModel


class UserSummary(CamelModel):
    """사용자 공개 정보 (민감한 정보 제외)"""
    id: str = Field(..., description="사용자 ID")
    first_name: str = Field(default="", description="이름")
    last_name: str = Field(default="", description="성")
    email: Optional[str] = Field(None, description="이메일")
    picture_path: Optional[str] = Field(None, description="프로필 사진 경로")
    is_online: bool = Field(default=False, description="온라인 상태")

    @classmethod
    def from_user(cls, user: User) -> "UserSummary":
        return cls(
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            picture_path=user.picture_path,
            is_online=user.is_online,
        )


class SenderSummary(CamelModel):
    """메시지 발신자 표시 정보"""
    id: str
    first_name: str = ""
    last_name: str = ""
    picture_path: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "SenderSummary":
        return cls(
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            picture_path=user.picture_path,
        )

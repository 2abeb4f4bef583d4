from typing import Optional
from pydantic import Field

from .base import MongoModel


class User(MongoModel):
    """
    사용자 문서

    프로필 필드는 외부 프로필 서비스가 관리하며, 이 서비스는 온라인 상태만 기록합니다.
    """
    first_name: str = Field(default="", description="이름")
    last_name: str = Field(default="", description="성")
    email: Optional[str] = Field(None, description="이메일")
    picture_path: Optional[str] = Field(None, description="프로필 사진 경로")
    is_online: bool = Field(default=False, description="온라인 상태")

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, is_online={self.is_online})>"

import json
import re
from typing import Optional, List, Any, Union
from bson import ObjectId

from .errors import ValidationException, ValidationError

MAX_MESSAGE_LENGTH = 5000
MAX_CHAT_NAME_LENGTH = 100
MIN_GROUP_INVITEES = 2


class Validator:
    """입력 검증을 위한 유틸리티 클래스"""

    @staticmethod
    def validate_required(value: Any, field_name: str) -> Any:
        """필수 필드 검증"""
        if value is None or (isinstance(value, str) and value.strip() == ""):
            raise ValidationException(
                f"{field_name} is required",
                validation_errors=[
                    ValidationError(field=field_name, message="This field is required", value=value)
                ]
            )
        return value

    @staticmethod
    def validate_string_length(
        value: str,
        field_name: str,
        min_length: Optional[int] = None,
        max_length: Optional[int] = None
    ) -> str:
        """문자열 길이 검증"""
        errors = []

        if min_length and len(value) < min_length:
            errors.append(
                ValidationError(
                    field=field_name,
                    message=f"Must be at least {min_length} characters long",
                    value=len(value)
                )
            )

        if max_length and len(value) > max_length:
            errors.append(
                ValidationError(
                    field=field_name,
                    message=f"Must be no more than {max_length} characters long",
                    value=len(value)
                )
            )

        if errors:
            raise ValidationException(
                f"{field_name} length validation failed",
                validation_errors=errors
            )

        return value

    @staticmethod
    def validate_object_id(value: Any, field_name: str) -> str:
        """MongoDB ObjectId 문자열 검증"""
        Validator.validate_required(value, field_name)
        value = str(value).strip()
        if not ObjectId.is_valid(value):
            raise ValidationException(
                f"{field_name} is not a valid id",
                validation_errors=[
                    ValidationError(field=field_name, message="Invalid id format", value=value)
                ]
            )
        return value

    @staticmethod
    def validate_chat_name(name: Optional[str], field_name: str = "name") -> str:
        """채팅방 이름 검증"""
        Validator.validate_required(name, field_name)
        name = name.strip()
        return Validator.validate_string_length(name, field_name, max_length=MAX_CHAT_NAME_LENGTH)

    @staticmethod
    def validate_message_content(content: Optional[str], field_name: str = "content") -> str:
        """메시지 내용 검증"""
        if content is None or content.strip() == "":
            raise ValidationException(
                "Message content cannot be empty",
                validation_errors=[
                    ValidationError(field=field_name, message="Message content cannot be empty")
                ]
            )

        errors = []
        if len(content) > MAX_MESSAGE_LENGTH:
            errors.append(
                ValidationError(
                    field=field_name,
                    message=f"Message content must be no more than {MAX_MESSAGE_LENGTH} characters",
                    value=len(content)
                )
            )

        # 제어 문자 검증
        if re.search(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', content):
            errors.append(
                ValidationError(
                    field=field_name,
                    message="Message content contains invalid control characters"
                )
            )

        if errors:
            raise ValidationException(
                "Message content validation failed",
                validation_errors=errors
            )

        return content.strip()

    @staticmethod
    def parse_member_ids(users: Union[str, List[str], None], field_name: str = "users") -> List[str]:
        """
        그룹 초대 사용자 목록 파싱

        클라이언트는 목록 또는 JSON 문자열로 보낼 수 있습니다.
        """
        Validator.validate_required(users, field_name)

        if isinstance(users, str):
            try:
                users = json.loads(users)
            except ValueError:
                raise ValidationException(
                    "Users field is not a valid JSON.",
                    validation_errors=[
                        ValidationError(field=field_name, message="Invalid JSON", value=users)
                    ]
                )

        if not isinstance(users, list):
            raise ValidationException(
                "Users field must be a list",
                validation_errors=[ValidationError(field=field_name, message="Must be a list")]
            )

        member_ids: List[str] = []
        for index, user_id in enumerate(users):
            member_id = Validator.validate_object_id(user_id, f"{field_name}[{index}]")
            if member_id not in member_ids:
                member_ids.append(member_id)
        return member_ids

    @staticmethod
    def validate_group_invitees(member_ids: List[str], creator_id: str, field_name: str = "users") -> List[str]:
        """그룹 채팅 초대 인원 검증 (생성자 제외 최소 2명)"""
        invitees = [member_id for member_id in member_ids if member_id != creator_id]
        if len(invitees) < MIN_GROUP_INVITEES:
            raise ValidationException(
                "More than 2 users are required to form a group chat",
                validation_errors=[
                    ValidationError(
                        field=field_name,
                        message=f"At least {MIN_GROUP_INVITEES} users besides the creator are required",
                        value=len(invitees)
                    )
                ]
            )
        return invitees

    @staticmethod
    def validate_pagination(limit: int, skip: int, max_limit: int = 100) -> tuple[int, int]:
        """페이지네이션 파라미터 검증"""
        errors = []

        if limit <= 0:
            errors.append(
                ValidationError(field="limit", message="Limit must be greater than 0", value=limit)
            )
        elif limit > max_limit:
            errors.append(
                ValidationError(field="limit", message=f"Limit must be no more than {max_limit}", value=limit)
            )

        if skip < 0:
            errors.append(
                ValidationError(field="skip", message="Skip must be 0 or greater", value=skip)
            )

        if errors:
            raise ValidationException(
                "Pagination validation failed",
                validation_errors=errors
            )

        return limit, skip

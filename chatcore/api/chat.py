from typing import List

from fastapi import APIRouter, Depends, status

from chatcore.api.deps import get_container, get_current_user_id
from chatcore.core.logging import get_logger
from chatcore.schemas import (
    AccessChatRequest,
    ChatRenameRequest,
    ChatResponse,
    GroupChatCreate,
    GroupMemberRequest,
)
from chatcore.services import ServiceContainer

logger = get_logger(__name__)
router = APIRouter(prefix="/chats", tags=["Chats"])


@router.post("", response_model=ChatResponse, response_model_by_alias=True)
async def access_chat(
    request: AccessChatRequest,
    current_user_id: str = Depends(get_current_user_id),
    container: ServiceContainer = Depends(get_container),
) -> ChatResponse:
    """
    1:1 채팅방 조회 또는 생성

    - **userId**: 상대방 사용자 ID

    이미 존재하면 기존 채팅방을 반환합니다. 두 경우 모두 200입니다.
    """
    chat, _ = await container.chats.get_or_create_direct_chat(current_user_id, request.user_id)
    return chat


@router.get("", response_model=List[ChatResponse], response_model_by_alias=True)
async def fetch_chats(
    current_user_id: str = Depends(get_current_user_id),
    container: ServiceContainer = Depends(get_container),
) -> List[ChatResponse]:
    """현재 사용자가 속한 채팅방 목록 (최근 활동순)"""
    return await container.chats.list_chats_for_user(current_user_id)


@router.post(
    "/group",
    response_model=ChatResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
async def create_group_chat(
    request: GroupChatCreate,
    current_user_id: str = Depends(get_current_user_id),
    container: ServiceContainer = Depends(get_container),
) -> ChatResponse:
    """
    그룹 채팅방 생성

    - **name**: 채팅방 이름
    - **users**: 초대할 사용자 ID 목록 (목록 또는 JSON 문자열, 본인 제외 2명 이상)
    """
    return await container.chats.create_group_chat(request.name, request.users, current_user_id)


@router.patch("/rename", response_model=ChatResponse, response_model_by_alias=True)
async def rename_chat(
    request: ChatRenameRequest,
    current_user_id: str = Depends(get_current_user_id),
    container: ServiceContainer = Depends(get_container),
) -> ChatResponse:
    return await container.chats.rename_chat(request.chat_id, request.chat_name, current_user_id)


@router.put("/groupadd", response_model=ChatResponse, response_model_by_alias=True)
async def add_to_group(
    request: GroupMemberRequest,
    current_user_id: str = Depends(get_current_user_id),
    container: ServiceContainer = Depends(get_container),
) -> ChatResponse:
    return await container.chats.add_member(request.chat_id, request.user_id, current_user_id)


@router.put("/groupremove", response_model=ChatResponse, response_model_by_alias=True)
async def remove_from_group(
    request: GroupMemberRequest,
    current_user_id: str = Depends(get_current_user_id),
    container: ServiceContainer = Depends(get_container),
) -> ChatResponse:
    """그룹에서 멤버 제거 (본인을 제거하면 나가기)"""
    return await container.chats.remove_member(request.chat_id, request.user_id, current_user_id)


@router.get("/{chat_id}", response_model=ChatResponse, response_model_by_alias=True)
async def get_chat(
    chat_id: str,
    current_user_id: str = Depends(get_current_user_id),
    container: ServiceContainer = Depends(get_container),
) -> ChatResponse:
    """채팅방 상세 조회 (멤버만)"""
    return await container.chats.get_chat(chat_id, current_user_id)

from typing import Optional

from fastapi import APIRouter, Depends, Query

from chatcore.api.deps import get_container, get_current_user_id
from chatcore.schemas import MessageList
from chatcore.services import ServiceContainer

router = APIRouter(prefix="/messages", tags=["Messages"])


@router.get("/{chat_id}", response_model=MessageList, response_model_by_alias=True)
async def all_messages(
    chat_id: str,
    skip: int = Query(0, description="건너뛸 메시지 수"),
    limit: Optional[int] = Query(None, description="조회할 메시지 수"),
    current_user_id: str = Depends(get_current_user_id),
    container: ServiceContainer = Depends(get_container),
) -> MessageList:
    """
    채팅방 메시지 이력 조회

    메시지는 오래된 순으로 정렬되며 발신자 정보가 포함됩니다.
    """
    return await container.messages.get_chat_messages(chat_id, current_user_id, skip=skip, limit=limit)

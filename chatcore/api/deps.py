from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from chatcore.core.errors import AuthenticationException, invalid_token_error
from chatcore.core.logging import set_request_context
from chatcore.services import ServiceContainer
from chatcore.utils.auth import user_id_from_token

bearer_scheme = HTTPBearer(auto_error=False)


def get_container(request: Request) -> ServiceContainer:
    """lifespan에서 생성한 서비스 컨테이너"""
    return request.app.state.container


async def get_current_user_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """
    현재 인증된 사용자 ID

    사용자 문서는 조회하지 않고 토큰의 sub 값만 사용합니다.
    """
    if credentials is None:
        raise AuthenticationException("Not authenticated")

    user_id = user_id_from_token(credentials.credentials)
    if not user_id:
        raise invalid_token_error()

    set_request_context(getattr(request.state, "request_id", ""), user_id)
    return user_id

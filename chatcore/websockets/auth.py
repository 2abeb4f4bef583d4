from typing import Optional

from fastapi import WebSocket, status

from chatcore.core.logging import get_logger, log_security_event
from chatcore.utils.auth import extract_bearer_token, user_id_from_token

logger = get_logger(__name__)


def token_from_websocket(websocket: WebSocket) -> Optional[str]:
    """Authorization 헤더를 우선하고, 없으면 token 쿼리 파라미터를 사용합니다."""
    header = websocket.headers.get("authorization")
    if header:
        return extract_bearer_token(header)
    return websocket.query_params.get("token") or None


async def authenticate_websocket(websocket: WebSocket) -> Optional[str]:
    """
    WebSocket 연결에서 JWT 토큰을 검증하고 사용자 ID를 반환합니다.

    Args:
        websocket: WebSocket 연결 객체

    Returns:
        str: 인증된 사용자 ID, 인증 실패 시 None (연결은 1008로 닫힘)
    """
    token = token_from_websocket(websocket)
    if not token:
        logger.warning("No access token provided for WebSocket connection")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return None

    user_id = user_id_from_token(token)
    if not user_id:
        log_security_event(
            logger,
            "websocket_invalid_token",
            client=websocket.client.host if websocket.client else None,
        )
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return None

    logger.info(f"WebSocket authentication successful for user: {user_id}")
    return user_id

"""
WebSocket 실시간 채팅 모듈

주요 구성 요소:
- connection_manager: 연결 및 채널 구독 관리
- auth: WebSocket 인증 처리
- handlers: 이벤트 처리 게이트웨이
"""

from .connection_manager import Connection, ConnectionManager, ConnectionState, chat_room, user_room
from .auth import authenticate_websocket

__all__ = [
    "Connection",
    "ConnectionManager",
    "ConnectionState",
    "chat_room",
    "user_room",
    "authenticate_websocket",
]

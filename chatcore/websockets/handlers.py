"""
실시간 게이트웨이

인증된 WebSocket 연결에서 들어오는 이벤트를 서비스 계층으로 전달합니다.
페이로드의 사용자 ID는 신뢰하지 않고, 항상 연결에 인증된 사용자를 사용합니다.
"""

import json
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError as PydanticValidationError

from chatcore.core.errors import BaseCustomException, ValidationException, identity_mismatch_error
from chatcore.core.logging import get_logger, log_security_event, log_websocket_event
from chatcore.schemas.events import (
    ERROR,
    JOIN_CHAT,
    JOIN_CHAT_ROOMS,
    JOINED_CHAT,
    LEAVE_CHAT,
    LEFT_CHAT,
    MARK_MESSAGES_AS_READ,
    MESSAGES_MARKED_AS_READ,
    PING,
    PONG,
    SEND_MESSAGE,
    USER_OFFLINE,
    USER_ONLINE,
    ChatEventPayload,
    MarkReadPayload,
    SendMessagePayload,
    UserEventPayload,
)
from chatcore.services.chat_service import ChatDirectory
from chatcore.services.message_service import MessagePipeline
from chatcore.services.presence_service import PresenceTracker
from chatcore.services.read_state_service import ReadStateTracker
from chatcore.websockets.auth import authenticate_websocket
from chatcore.websockets.connection_manager import Connection, ConnectionManager, chat_room, user_room

logger = get_logger(__name__)

Handler = Callable[[Connection, Dict[str, Any]], Awaitable[None]]


class RealtimeGateway:
    """WebSocket 이벤트 처리 핸들러"""

    def __init__(
        self,
        manager: ConnectionManager,
        presence: PresenceTracker,
        directory: ChatDirectory,
        messages: MessagePipeline,
        read_state: ReadStateTracker,
    ):
        self.manager = manager
        self.presence = presence
        self.directory = directory
        self.messages = messages
        self.read_state = read_state
        self._handlers: Dict[str, Handler] = {
            USER_ONLINE: self._handle_user_online,
            USER_OFFLINE: self._handle_user_offline,
            JOIN_CHAT_ROOMS: self._handle_join_chat_rooms,
            JOIN_CHAT: self._handle_join_chat,
            LEAVE_CHAT: self._handle_leave_chat,
            SEND_MESSAGE: self._handle_send_message,
            MARK_MESSAGES_AS_READ: self._handle_mark_read,
            PING: self._handle_ping,
        }

    async def serve(self, websocket: WebSocket):
        """연결 하나의 전체 수명 주기: 인증, 수신 루프, 정리"""
        user_id = await authenticate_websocket(websocket)
        if not user_id:
            return

        connection = await self.manager.connect(websocket)
        self.manager.authenticate(connection, user_id)
        log_websocket_event(logger, "connected", user_id, connection.id)

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", status.WS_1000_NORMAL_CLOSURE))
                try:
                    data = self._decode_frame(message)
                except ValidationException as e:
                    # 잘못된 프레임은 세션을 유지한 채 오류만 응답
                    logger.warning(f"Invalid frame from user {user_id}: {e}")
                    await self.send_error(connection, e)
                    continue
                await self.handle_event(connection, data)
        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected for user {user_id}")
        finally:
            await self.close_connection(connection)

    @staticmethod
    def _decode_frame(message: Dict[str, Any]) -> Any:
        """텍스트 JSON 프레임만 허용"""
        text = message.get("text")
        if text is None:
            raise ValidationException("Invalid frame", details={"reason": "binary frames are not supported"})
        try:
            return json.loads(text)
        except ValueError:
            raise ValidationException("Invalid frame", details={"reason": "frame is not valid JSON"})

    async def close_connection(self, connection: Connection):
        """채널 구독 해제 후, 현재 세션인 경우에만 오프라인 처리"""
        self.manager.disconnect(connection)
        if connection.user_id:
            await self.presence.mark_offline(connection.user_id, connection)
        log_websocket_event(logger, "disconnected", connection.user_id, connection.id)

    async def handle_event(self, connection: Connection, data: Any):
        """수신한 프레임을 이벤트 타입에 따라 처리합니다."""
        if not isinstance(data, dict):
            await self.send_error(connection, ValidationException("Event frame must be a JSON object"))
            return

        event = data.get("type")
        handler = self._handlers.get(event)
        if handler is None:
            logger.warning(f"Unknown event type: {event} from user {connection.user_id}")
            await self.send_error(connection, ValidationException(f"Unknown event type: {event}"))
            return

        try:
            await handler(connection, data)
        except BaseCustomException as e:
            await self.send_error(connection, e)
        except PydanticValidationError as e:
            await self.send_error(
                connection,
                ValidationException("Invalid event payload", details={"errors": e.errors(include_url=False)}),
            )

    async def send_error(self, connection: Connection, error: BaseCustomException):
        await self.manager.send(connection, ERROR, {"message": error.message, "error": error.error})

    def _check_identity(self, connection: Connection, claimed: Optional[str], field: str):
        """페이로드의 사용자 ID가 연결의 사용자와 같은지 확인"""
        if claimed is not None and claimed != connection.user_id:
            log_security_event(
                logger,
                "websocket_identity_mismatch",
                severity="high",
                connection_id=connection.id,
                authenticated_user=connection.user_id,
                claimed_user=claimed,
                field=field,
            )
            raise identity_mismatch_error(field)

    # =========================================================================
    # Event handlers
    # =========================================================================

    async def _handle_user_online(self, connection: Connection, data: Dict[str, Any]):
        payload = UserEventPayload.model_validate(data)
        self._check_identity(connection, payload.user_id, "userId")
        await self.presence.mark_online(connection.user_id, connection)
        log_websocket_event(logger, USER_ONLINE, connection.user_id, connection.id)

    async def _handle_user_offline(self, connection: Connection, data: Dict[str, Any]):
        payload = UserEventPayload.model_validate(data)
        self._check_identity(connection, payload.user_id, "userId")
        await self.presence.mark_offline(connection.user_id, connection)
        log_websocket_event(logger, USER_OFFLINE, connection.user_id, connection.id)

    async def _handle_join_chat_rooms(self, connection: Connection, data: Dict[str, Any]):
        payload = UserEventPayload.model_validate(data)
        self._check_identity(connection, payload.user_id, "userId")
        self.manager.join(connection, user_room(connection.user_id))
        log_websocket_event(logger, JOIN_CHAT_ROOMS, connection.user_id, connection.id)

    async def _handle_join_chat(self, connection: Connection, data: Dict[str, Any]):
        payload = ChatEventPayload.model_validate(data)
        chat = await self.directory.require_member(payload.chat_id, connection.user_id)
        self.manager.join(connection, chat_room(chat.id))
        await self.manager.send(connection, JOINED_CHAT, {"chatId": chat.id})

    async def _handle_leave_chat(self, connection: Connection, data: Dict[str, Any]):
        payload = ChatEventPayload.model_validate(data)
        if not payload.chat_id:
            raise ValidationException("chatId is required")
        self.manager.leave(connection, chat_room(payload.chat_id))
        await self.manager.send(connection, LEFT_CHAT, {"chatId": payload.chat_id})

    async def _handle_send_message(self, connection: Connection, data: Dict[str, Any]):
        payload = SendMessagePayload.model_validate(data)
        self._check_identity(connection, payload.sender_id, "senderId")
        await self.messages.send_message(
            payload.chat_id,
            connection.user_id,
            payload.content,
            recipient_id=payload.recipient_id,
        )

    async def _handle_mark_read(self, connection: Connection, data: Dict[str, Any]):
        payload = MarkReadPayload.model_validate(data)
        self._check_identity(connection, payload.user_id, "userId")
        count = await self.read_state.mark_read(payload.chat_id, connection.user_id)
        await self.manager.send(connection, MESSAGES_MARKED_AS_READ, {
            "chatId": payload.chat_id,
            "message": "Messages marked as read",
            "count": count,
        })

    async def _handle_ping(self, connection: Connection, data: Dict[str, Any]):
        await self.manager.send(connection, PONG, {})

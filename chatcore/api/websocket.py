from fastapi import APIRouter, WebSocket

from chatcore.websockets.handlers import RealtimeGateway

router = APIRouter(tags=["WebSocket"])


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    실시간 이벤트 WebSocket 엔드포인트

    인증: `Authorization: Bearer <token>` 헤더 또는 `?token=` 쿼리 파라미터
    """
    container = websocket.app.state.container
    gateway = RealtimeGateway(
        container.manager,
        container.presence,
        container.chats,
        container.messages,
        container.read_state,
    )
    await gateway.serve(websocket)

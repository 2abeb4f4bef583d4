from . import chat, health, message, websocket

ROUTERS = [
    health.router,
    chat.router,
    message.router,
    websocket.router,
]


def include_routers(app):
    for router in ROUTERS:
        app.include_router(router)

from . import health, notifications, admin_chat
from .chat import chat_routers, websocket_router

__all__ = [
    "health",
    "notifications",
    "admin_chat",
    "chat_routers",
    "websocket_router",
]

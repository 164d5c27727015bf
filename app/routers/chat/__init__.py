# app/routers/chat/__init__.py
from .chat_router import build_chat_router, chat_routers
from .websocket_router import router as websocket_router

__all__ = ["build_chat_router", "chat_routers", "websocket_router"]

# app/models/chat/__init__.py
from .chat_room import ChatRoom, RoomKind, RoomStatus
from .chat_message import ChatMessage

__all__ = ["ChatRoom", "RoomKind", "RoomStatus", "ChatMessage"]

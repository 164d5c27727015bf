# app/services/chat/__init__.py
from .connection_registry import ConnectionRegistry
from .room_membership import RoomMembership
from .dispatcher import BroadcastDispatcher
from .notifier import NotificationFanout
from .room_variants import ROOM_VARIANTS, RoomVariant
from .authorization import ChatIdentity, ProfileDirectory, RoomAuthorizer
from .store_gateway import MessageStoreGateway
from .runtime import ChatRuntime
from .session import ChatSession, SessionState

__all__ = [
    "ConnectionRegistry",
    "RoomMembership",
    "BroadcastDispatcher",
    "NotificationFanout",
    "ROOM_VARIANTS",
    "RoomVariant",
    "ChatIdentity",
    "ProfileDirectory",
    "RoomAuthorizer",
    "MessageStoreGateway",
    "ChatRuntime",
    "ChatSession",
    "SessionState",
]

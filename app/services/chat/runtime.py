# app/services/chat/runtime.py
import logging

from starlette.requests import HTTPConnection

from .connection_registry import ConnectionRegistry
from .dispatcher import BroadcastDispatcher
from .notifier import NotificationFanout
from .room_membership import RoomMembership

logger = logging.getLogger(__name__)


class ChatRuntime:
    """Process-scoped realtime state.

    Created in the application lifespan and handed to sessions and routes;
    nothing here is persisted or shared across processes.
    """

    def __init__(self, close_replaced_connections: bool = True):
        self.registry = ConnectionRegistry()
        self.membership = RoomMembership()
        self.dispatcher = BroadcastDispatcher(self.registry, self.membership)
        self.notifier = NotificationFanout(self.registry)
        self.close_replaced_connections = close_replaced_connections

    async def shutdown(self):
        online = len(self.registry)
        await self.registry.close_all()
        self.membership.room_subscriptions.clear()
        logger.info(f"Chat runtime stopped, closed {online} connections")


def get_chat_runtime(connection: HTTPConnection) -> ChatRuntime:
    """Dependency usable from both HTTP and websocket routes."""
    return connection.app.state.chat_runtime

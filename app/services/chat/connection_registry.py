# app/services/chat/connection_registry.py
from typing import Any, Callable, Dict, Optional, Protocol
from uuid import UUID
import json
import logging

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """What the registry needs from a transport; Starlette's WebSocket fits."""

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None: ...


class ConnectionRegistry:
    """user id -> the one live connection for that user."""

    def __init__(self):
        self.active_connections: Dict[str, Connection] = {}

    def register(self, user_id: UUID, connection: Connection) -> Optional[Connection]:
        """Insert or replace the entry for user_id.

        Returns the connection that was replaced, if any. The replaced socket
        is left open; closing it is the caller's decision.
        """
        user_key = str(user_id)
        previous = self.active_connections.get(user_key)
        self.active_connections[user_key] = connection

        if previous is not None and previous is not connection:
            logger.info(f"User {user_key} reconnected, replacing previous connection")
            return previous

        logger.info(f"User {user_key} registered")
        return None

    def resolve(self, user_id: UUID) -> Optional[Connection]:
        return self.active_connections.get(str(user_id))

    def unregister(self, user_id: UUID, connection: Connection) -> bool:
        """Remove the entry only while it still points at `connection`.

        A late disconnect from a replaced socket must not drop the newer one.
        """
        user_key = str(user_id)
        if self.active_connections.get(user_key) is connection:
            del self.active_connections[user_key]
            logger.info(f"User {user_key} unregistered")
            return True
        return False

    def is_user_online(self, user_id: UUID) -> bool:
        return str(user_id) in self.active_connections

    def __len__(self) -> int:
        return len(self.active_connections)

    async def send_to_user(self, user_id: UUID, event: dict) -> bool:
        """Send to one user. A failed send drops that user's entry."""
        connection = self.resolve(user_id)
        if connection is None:
            return False
        return await self.deliver(str(user_id), connection, json.dumps(event, default=str))

    async def broadcast_all(self, predicate: Callable[[str], bool], event: dict) -> int:
        """Send to every registered user whose id satisfies predicate."""
        payload = json.dumps(event, default=str)
        sent_count = 0
        # Snapshot: failed sends mutate the map
        for user_key, connection in list(self.active_connections.items()):
            if not predicate(user_key):
                continue
            if await self.deliver(user_key, connection, payload):
                sent_count += 1

        logger.debug(f"Broadcast to all complete: sent to {sent_count} users")
        return sent_count

    async def deliver(self, user_key: str, connection: Any, payload: str) -> bool:
        try:
            await connection.send_text(payload)
            return True
        except Exception as e:
            logger.error(f"Error sending message to {user_key}: {e}")
            if self.active_connections.get(user_key) is connection:
                del self.active_connections[user_key]
                logger.info(f"User {user_key} dropped after failed send")
            return False

    async def close_all(self, code: int = 1001, reason: str = "Server shutting down"):
        for user_key, connection in list(self.active_connections.items()):
            try:
                await connection.close(code=code, reason=reason)
            except Exception as e:
                logger.warning(f"Error closing connection for {user_key}: {e}")
        self.active_connections.clear()

# app/services/chat/dispatcher.py
from typing import Optional
from uuid import UUID
import json
import logging

from .connection_registry import ConnectionRegistry
from .room_membership import RoomMembership

logger = logging.getLogger(__name__)


class BroadcastDispatcher:
    """Best-effort fan-out of an event to the online members of a room.

    Members that are offline or whose socket fails are skipped; nothing is
    queued for them. They catch up through the message history.
    """

    def __init__(self, registry: ConnectionRegistry, membership: RoomMembership):
        self.registry = registry
        self.membership = membership

    async def broadcast_to_room(self, room_id: UUID, event: dict, exclude_user_id: Optional[UUID] = None) -> int:
        """Send event to every joined, connected member; returns how many got it"""
        room_key = str(room_id)
        exclude_key = str(exclude_user_id) if exclude_user_id else None
        members = self.membership.members(room_id)

        if not members:
            logger.debug(f"Room {room_key} has no joined members")
            return 0

        payload = json.dumps(event, default=str)
        sent_count = 0
        for user_key in members:
            if user_key == exclude_key:
                continue

            connection = self.registry.resolve(user_key)
            if connection is None:
                logger.debug(f"User {user_key} in room {room_key} but not connected")
                continue

            if await self.registry.deliver(user_key, connection, payload):
                sent_count += 1
            elif self.registry.resolve(user_key) is None:
                # Re-checked after the send: a reconnect during it owns the rooms now
                self.membership.leave_all(user_key)

        logger.info(f"Broadcast {event.get('type')} to room {room_key}: sent to {sent_count} users")
        return sent_count

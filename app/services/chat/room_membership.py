# app/services/chat/room_membership.py
from typing import Dict, Set
from uuid import UUID
import logging

logger = logging.getLogger(__name__)


class RoomMembership:
    """In-memory room id -> joined user ids.

    Rebuilt from join-room events only; a restart empties it and clients
    have to join again before they receive live broadcasts.
    """

    def __init__(self):
        # Store chat room subscriptions: {room_id: {user_ids}}
        self.room_subscriptions: Dict[str, Set[str]] = {}

    def join(self, room_id: UUID, user_id: UUID):
        room_key = str(room_id)
        user_key = str(user_id)

        self.room_subscriptions.setdefault(room_key, set()).add(user_key)
        logger.info(f"User {user_key} joined room {room_key} ({len(self.room_subscriptions[room_key])} members online)")

    def leave(self, room_id: UUID, user_id: UUID) -> bool:
        room_key = str(room_id)
        subscribers = self.room_subscriptions.get(room_key)
        if not subscribers or str(user_id) not in subscribers:
            return False

        subscribers.discard(str(user_id))
        if not subscribers:
            del self.room_subscriptions[room_key]
        return True

    def leave_all(self, user_id: UUID) -> int:
        """Remove user from every room and clean up empty rooms"""
        user_key = str(user_id)
        left = 0
        for room_key in list(self.room_subscriptions):
            subscribers = self.room_subscriptions[room_key]
            if user_key in subscribers:
                subscribers.discard(user_key)
                left += 1
                if not subscribers:
                    del self.room_subscriptions[room_key]
        return left

    def members(self, room_id: UUID) -> Set[str]:
        return set(self.room_subscriptions.get(str(room_id), set()))

    def is_member(self, room_id: UUID, user_id: UUID) -> bool:
        return str(user_id) in self.room_subscriptions.get(str(room_id), set())

    def rooms_for(self, user_id: UUID) -> Set[str]:
        user_key = str(user_id)
        return {
            room_key for room_key, subscribers in self.room_subscriptions.items()
            if user_key in subscribers
        }

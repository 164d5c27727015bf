# app/services/chat/notifier.py
from uuid import UUID
import logging

from .connection_registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class NotificationFanout:
    """Push one event to one user's live connection.

    Called as a side effect of domain actions. Never raises: a failed or
    impossible delivery is logged and the triggering action carries on.
    """

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    async def notify(self, user_id: UUID, event: dict) -> bool:
        try:
            delivered = await self.registry.send_to_user(user_id, event)
        except Exception as e:
            logger.error(f"Notification delivery to {user_id} failed: {e}")
            return False

        if not delivered:
            logger.debug(f"User {user_id} offline, {event.get('type')} not pushed")
        return delivered

# app/services/notification_service.py
from typing import Any, Dict, Optional
from uuid import UUID
import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, and_

from .base_service import BaseService
from .chat.notifier import NotificationFanout
from ..core.exceptions import NotAuthorized, NotificationNotFound
from ..models.base import utc_now
from ..models.notification import Notification
from ..models.user import UserRole

logger = logging.getLogger(__name__)


def serialize_notification(notification: Notification) -> dict:
    return {
        "id": str(notification.id),
        "userId": str(notification.user_id),
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "metadata": notification.extra_data or {},
        "read": notification.is_read,
        "readAt": notification.read_at.isoformat() if notification.read_at else None,
        "createdAt": notification.created_at.isoformat() if notification.created_at else None,
    }


class NotificationService(BaseService[Notification]):
    """Persisted notification inbox with best-effort live delivery."""

    def __init__(self, db: AsyncSession, fanout: Optional[NotificationFanout] = None):
        super().__init__(Notification, db)
        self.fanout = fanout

    async def create_notification(
        self,
        user_id: UUID,
        type: str,
        title: str,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        metadata = dict(metadata or {})
        metadata.setdefault("timestamp", utc_now().isoformat())

        notification = await self.create({
            "user_id": user_id,
            "type": type,
            "title": title,
            "message": message,
            "extra_data": metadata,
            "is_read": False,
        })
        await self.push(user_id, {"type": "notification", "notification": serialize_notification(notification)})
        return notification

    async def notify(self, user_id: UUID, type: str, title: str, message: str,
                     metadata: Optional[Dict[str, Any]] = None) -> Optional[Notification]:
        """Side-effect entry point for domain actions. Never raises."""
        try:
            return await self.create_notification(user_id, type, title, message, metadata)
        except Exception as e:
            logger.error(f"Failed to create {type} notification for {user_id}: {e}")
            await self.db.rollback()
            return None

    async def push(self, user_id: UUID, event: dict) -> bool:
        if self.fanout is None:
            return False
        return await self.fanout.notify(user_id, event)

    def _scope(self, user_id: UUID, role: UserRole):
        # Admins see every notification
        if role == UserRole.ADMIN:
            return {}
        return {"user_id": user_id}

    async def get_notifications(self, user_id: UUID, role: UserRole, page: int = 1, size: int = 50):
        return await self.get_paginated(
            page=page, size=size, order_by="created_at", sort="desc", **self._scope(user_id, role)
        )

    async def get_unread(self, user_id: UUID, role: UserRole, page: int = 1, size: int = 100):
        return await self.get_paginated(
            page=page, size=size, order_by="created_at", sort="desc",
            is_read=False, **self._scope(user_id, role)
        )

    async def _owned(self, notification_id: UUID, user_id: UUID, role: UserRole, action: str) -> Notification:
        notification = await self.get(notification_id)
        if not notification:
            raise NotificationNotFound(notification_id)
        if role != UserRole.ADMIN and notification.user_id != user_id:
            raise NotAuthorized(f"Unauthorized to {action} this notification")
        return notification

    async def mark_as_read(self, notification_id: UUID, user_id: UUID, role: UserRole) -> Notification:
        notification = await self._owned(notification_id, user_id, role, "mark")
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utc_now()
            await self.db.commit()
            await self.db.refresh(notification)

        await self.push(notification.user_id, {
            "type": "notification-read",
            "notificationId": str(notification.id),
            "userId": str(notification.user_id),
        })
        return notification

    async def mark_all_as_read(self, user_id: UUID) -> int:
        stmt = update(Notification).where(
            and_(Notification.user_id == user_id, Notification.is_read == False)
        ).values(is_read=True, read_at=utc_now()).execution_options(synchronize_session=False)
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount or 0

    async def delete_notification(self, notification_id: UUID, user_id: UUID, role: UserRole) -> bool:
        await self._owned(notification_id, user_id, role, "delete")
        return await self.hard_delete(notification_id)

    async def get_stats(self, user_id: UUID, role: UserRole) -> dict:
        scope = self._scope(user_id, role)
        conditions = [Notification.user_id == user_id] if scope else []

        total = await self.db.scalar(select(func.count(Notification.id)).where(*conditions))
        unread = await self.db.scalar(
            select(func.count(Notification.id)).where(*conditions, Notification.is_read == False)
        )
        rows = await self.db.execute(
            select(Notification.type, func.count(Notification.id)).where(*conditions).group_by(Notification.type)
        )
        return {
            "total": total or 0,
            "unread": unread or 0,
            "byType": {notification_type: count for notification_type, count in rows.all()},
        }

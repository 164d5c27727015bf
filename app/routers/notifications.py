# app/routers/notifications.py
from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.database import get_db
from ..core.exceptions import NotificationNotFound
from ..models.user import UserRole
from ..schemas.notification_schemas import NotificationCreate
from ..schemas.pagination import PaginatedResponse, paginated
from ..services.chat.authorization import ChatIdentity
from ..services.chat.runtime import ChatRuntime, get_chat_runtime
from ..services.notification_service import NotificationService, serialize_notification
from .deps import get_current_identity, require_roles

router = APIRouter(prefix=f"{settings.api_prefix}/notifications", tags=["Notifications"])


def _service(db: AsyncSession, runtime: ChatRuntime) -> NotificationService:
    return NotificationService(db, runtime.notifier)


@router.get("/", response_model=PaginatedResponse[dict])
async def get_notifications(
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=100),
    identity: ChatIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Caller's notifications, newest first. Admins see everyone's."""
    result = await NotificationService(db).get_notifications(identity.user_id, identity.role, page, size)
    return paginated(result, serialize_notification)


@router.get("/unread", response_model=PaginatedResponse[dict])
async def get_unread_notifications(
    page: int = Query(1, ge=1),
    size: int = Query(100, ge=1, le=100),
    identity: ChatIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    result = await NotificationService(db).get_unread(identity.user_id, identity.role, page, size)
    return paginated(result, serialize_notification)


@router.get("/stats", response_model=dict)
async def get_notification_stats(
    identity: ChatIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await NotificationService(db).get_stats(identity.user_id, identity.role)


@router.put("/read-all", response_model=dict)
async def mark_all_notifications_read(
    identity: ChatIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    updated = await NotificationService(db).mark_all_as_read(identity.user_id)
    return {"success": True, "updated": updated}


@router.put("/{notification_id}/read", response_model=dict)
async def mark_notification_read(
    notification_id: UUID,
    identity: ChatIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    runtime: ChatRuntime = Depends(get_chat_runtime),
):
    notification = await _service(db, runtime).mark_as_read(notification_id, identity.user_id, identity.role)
    return serialize_notification(notification)


@router.post("/", response_model=dict, status_code=201)
async def create_notification(
    request: NotificationCreate,
    identity: ChatIdentity = Depends(require_roles(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
    runtime: ChatRuntime = Depends(get_chat_runtime),
):
    """Create a notification for any user and push it live"""
    notification = await _service(db, runtime).create_notification(
        request.recipient_id, request.type, request.title, request.message, request.metadata
    )
    return serialize_notification(notification)


@router.delete("/{notification_id}", response_model=dict)
async def delete_notification(
    notification_id: UUID,
    identity: ChatIdentity = Depends(require_roles(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    if not await NotificationService(db).delete_notification(notification_id, identity.user_id, identity.role):
        raise NotificationNotFound(notification_id)
    return {"success": True, "id": str(notification_id)}

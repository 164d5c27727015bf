# app/routers/admin_chat.py
"""Chat moderation for administrators."""
from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.database import get_db
from ..models.chat.chat_room import RoomKind, RoomStatus
from ..models.user import UserRole
from ..schemas.chat_schemas import RoomStatusUpdate
from ..schemas.pagination import PaginatedResponse, paginated
from ..services.chat.store_gateway import MessageStoreGateway, serialize_message, serialize_room
from .deps import require_roles

router = APIRouter(
    prefix=f"{settings.api_prefix}/admin/chat",
    tags=["Admin - Chat"],
    dependencies=[Depends(require_roles(UserRole.ADMIN))],
)


@router.get("/rooms", response_model=PaginatedResponse[dict])
async def list_rooms(
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    kind: Optional[RoomKind] = Query(None),
    status: Optional[RoomStatus] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """All rooms, most recently active first"""
    result = await MessageStoreGateway(db).get_paginated(
        page=page, size=size, order_by="last_activity_at", sort="desc", kind=kind, status=status
    )
    return paginated(result, serialize_room)


@router.put("/rooms/{room_id}/status", response_model=dict)
async def update_room_status(
    room_id: UUID,
    request: RoomStatusUpdate,
    db: AsyncSession = Depends(get_db),
):
    room = await MessageStoreGateway(db).set_room_status(room_id, request.status)
    return serialize_room(room)


@router.get("/rooms/{room_id}/messages", response_model=dict)
async def list_room_messages(
    room_id: UUID,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    messages = await MessageStoreGateway(db).list_room_messages(room_id, limit=limit, offset=offset)
    return {
        "roomId": str(room_id),
        "messages": [serialize_message(m) for m in messages],
        "count": len(messages),
    }

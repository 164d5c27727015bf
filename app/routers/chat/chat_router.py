# app/routers/chat/chat_router.py
"""HTTP mirror of the websocket chat operations, one router per room variant."""
import logging
from uuid import UUID
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.config import settings
from ...core.database import get_db
from ...core.exceptions import NotAuthorized
from ...models.user import UserRole
from ...schemas.chat_schemas import CreateRoomRequest, SendMessageRequest
from ...services.chat.authorization import ChatIdentity
from ...services.chat.room_variants import RoomVariant, ROOM_VARIANTS
from ...services.chat.runtime import ChatRuntime, get_chat_runtime
from ...services.chat.store_gateway import MessageStoreGateway, serialize_message, serialize_room
from ...services.notification_service import NotificationService
from ..deps import require_roles

logger = logging.getLogger(__name__)


async def _announce_new_room(
    db: AsyncSession, runtime: ChatRuntime, gateway: MessageStoreGateway, room, creator: ChatIdentity
):
    """Tell the invited participants a conversation was opened"""
    service = NotificationService(db, runtime.notifier)
    participant_users = await gateway.participant_user_ids(room)
    for role, user_id in participant_users.items():
        if user_id == creator.user_id:
            continue
        await service.notify(
            user_id,
            type="CHAT_ROOM_CREATED",
            title="New conversation",
            message="A patient started a conversation with you",
            metadata={"roomId": str(room.id), "kind": room.kind.value, "createdBy": str(creator.user_id)},
        )


def build_chat_router(variant: RoomVariant) -> APIRouter:
    router = APIRouter(prefix=f"{settings.api_prefix}{variant.url_prefix}", tags=[f"Chat - {variant.label}"])
    participant = require_roles(*variant.allowed_roles)

    @router.post("/room", response_model=dict)
    async def create_or_get_room(
        request: CreateRoomRequest,
        identity: ChatIdentity = Depends(require_roles(variant.initiator)),
        db: AsyncSession = Depends(get_db),
        runtime: ChatRuntime = Depends(get_chat_runtime),
    ):
        """Get or create the room between the calling patient and the named participants"""
        if identity.profile_id is None:
            raise NotAuthorized("Patient profile not found")

        participants = {variant.initiator: identity.profile_id}
        if request.nurse_id:
            participants[UserRole.NURSE] = request.nurse_id
        if request.doctor_id:
            participants[UserRole.DOCTOR] = request.doctor_id

        gateway = MessageStoreGateway(db)
        room, created = await gateway.get_or_create_room(variant, participants)
        if created:
            await _announce_new_room(db, runtime, gateway, room, identity)

        room = await gateway.get_room_with_participants(room.id)
        return {**serialize_room(room), "created": created}

    @router.get("/rooms", response_model=list)
    async def get_user_rooms(
        identity: ChatIdentity = Depends(participant),
        db: AsyncSession = Depends(get_db),
    ):
        """Caller's rooms, most recent activity first"""
        return await MessageStoreGateway(db).get_user_rooms(variant, identity)

    @router.get("/room/{room_id}/messages", response_model=dict)
    async def get_room_messages(
        room_id: UUID,
        identity: ChatIdentity = Depends(participant),
        db: AsyncSession = Depends(get_db),
    ):
        """Full room history, oldest first"""
        messages = await MessageStoreGateway(db).list_messages(room_id, identity.user_id, identity.role)
        return {
            "roomId": str(room_id),
            "messages": [serialize_message(m) for m in messages],
            "totalMessages": len(messages),
        }

    @router.post("/room/{room_id}/message", response_model=dict)
    async def send_message(
        room_id: UUID,
        request: SendMessageRequest,
        identity: ChatIdentity = Depends(participant),
        db: AsyncSession = Depends(get_db),
        runtime: ChatRuntime = Depends(get_chat_runtime),
    ):
        message = await MessageStoreGateway(db).post_message(
            room_id, identity.user_id, identity.role, request.content
        )
        payload = serialize_message(message)
        await runtime.dispatcher.broadcast_to_room(room_id, {
            "type": "new-message",
            "roomId": str(room_id),
            "message": payload,
        })
        return payload

    @router.post("/room/{room_id}/messages/read", response_model=dict)
    async def mark_messages_as_read(
        room_id: UUID,
        identity: ChatIdentity = Depends(participant),
        db: AsyncSession = Depends(get_db),
        runtime: ChatRuntime = Depends(get_chat_runtime),
    ):
        updated = await MessageStoreGateway(db).mark_read(room_id, identity.user_id, identity.role)
        await runtime.dispatcher.broadcast_to_room(room_id, {
            "type": "messages-read",
            "userId": str(identity.user_id),
            "roomId": str(room_id),
        })
        return {"success": True, "updated": updated}

    return router


chat_routers = [build_chat_router(variant) for variant in ROOM_VARIANTS.values()]

# app/services/chat/store_gateway.py
from contextlib import asynccontextmanager
from typing import Dict, List, Optional, Tuple
from uuid import UUID
import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, and_, desc, asc, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import selectinload

from ..base_service import BaseService
from ...core.exceptions import (
    ChatException, InvalidMessageFormat, NotAuthorized, ParticipantNotFound,
    PersistenceFailure, RoomNotFound,
)
from ...models.base import utc_now
from ...models.chat.chat_room import ChatRoom, RoomStatus
from ...models.chat.chat_message import ChatMessage
from ...models.user import UserRole
from .authorization import PROFILE_MODELS, ChatIdentity, ProfileDirectory, is_participant
from .room_variants import RoomVariant, SLOT_COLUMNS, variant_for

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 5000


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_message(message: ChatMessage) -> dict:
    return {
        "id": str(message.id),
        "roomId": str(message.chat_room_id),
        "senderId": str(message.sender_id),
        "senderRole": UserRole(message.sender_role).value,
        "content": message.content,
        "isRead": message.is_read,
        "readAt": _iso(message.read_at),
        "createdAt": _iso(message.created_at),
    }


def _serialize_profile(profile) -> Optional[dict]:
    if profile is None:
        return None
    data = {
        "id": str(profile.id),
        "userId": str(profile.user_id),
        "firstName": profile.first_name,
        "lastName": profile.last_name,
    }
    if hasattr(profile, "specialization"):
        data["specialization"] = profile.specialization
    return data


def serialize_room(room: ChatRoom) -> dict:
    """Room with whichever participant profiles are loaded."""
    variant = variant_for(room)
    data = {
        "id": str(room.id),
        "kind": variant.kind.value,
        "status": RoomStatus(room.status).value,
        "lastActivityAt": _iso(room.last_activity_at),
        "createdAt": _iso(room.created_at),
    }
    for role in variant.slots:
        column = SLOT_COLUMNS[role]
        prefix = column[:-3]  # patient_id -> patient
        data[f"{prefix}Id"] = str(getattr(room, column))
        loaded = room.__dict__.get(prefix)
        if loaded is not None:
            data[prefix] = _serialize_profile(loaded)
    return data


class MessageStoreGateway(BaseService[ChatRoom]):
    """Persistence operations behind the chat layer.

    Every write commits its own transaction. Storage errors are logged
    here and surface as PersistenceFailure with a generic message.
    """

    def __init__(self, db: AsyncSession):
        super().__init__(ChatRoom, db)
        self.profiles = ProfileDirectory(db)

    @asynccontextmanager
    async def _guard(self, action: str):
        try:
            yield
        except ChatException:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Persistence error during {action}: {e}")
            await self.db.rollback()
            raise PersistenceFailure(f"Failed to {action}")

    async def _find_room_by_key(self, participant_key: str) -> Optional[ChatRoom]:
        stmt = select(ChatRoom).where(ChatRoom.participant_key == participant_key)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _ensure_profiles_exist(self, participants: Dict[UserRole, UUID]):
        for role, profile_id in participants.items():
            model = PROFILE_MODELS[role]
            result = await self.db.execute(select(model.id).where(model.id == profile_id))
            if result.scalar_one_or_none() is None:
                raise ParticipantNotFound(role.value, profile_id)

    async def get_or_create_room(
        self, variant: RoomVariant, participants: Dict[UserRole, UUID]
    ) -> Tuple[ChatRoom, bool]:
        """Get existing room for the participant set or create it.

        Returns (room, created). The unique participant_key index settles
        concurrent creators: the loser's insert fails and it re-reads the
        winner's row.
        """
        try:
            participants = variant.validate_participants(participants)
        except ValueError as e:
            raise InvalidMessageFormat(str(e))
        participant_key = variant.participant_key(participants)

        async with self._guard("create chat room"):
            chat_room = await self._find_room_by_key(participant_key)
            if chat_room:
                return chat_room, False

            await self._ensure_profiles_exist(participants)

            chat_room = ChatRoom(
                kind=variant.kind,
                participant_key=participant_key,
                status=RoomStatus.ACTIVE,
                last_activity_at=utc_now(),
                **{SLOT_COLUMNS[role]: profile_id for role, profile_id in participants.items()}
            )
            self.db.add(chat_room)
            try:
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                logger.info(f"Concurrent creation of room {participant_key}, reusing existing row")
                chat_room = await self._find_room_by_key(participant_key)
                if chat_room is None:
                    raise
                return chat_room, False

            await self.db.refresh(chat_room)
            logger.info(f"Created {variant.label} room {chat_room.id}")
            return chat_room, True

    async def _authorized_room(self, room_id: UUID, user_id: UUID, role: UserRole) -> ChatRoom:
        """Load the room and check the caller's role profile sits in it."""
        chat_room = await self.get(room_id)
        if chat_room is None:
            raise RoomNotFound(room_id)

        profile_id = await self.profiles.resolve_profile_id(user_id, role)
        identity = ChatIdentity(user_id=user_id, role=role, profile_id=profile_id)
        if not is_participant(chat_room, identity):
            raise NotAuthorized("Chat room not found or user not authorized")
        return chat_room

    async def post_message(self, room_id: UUID, sender_id: UUID, sender_role: UserRole, content: str) -> ChatMessage:
        """Persist a message from a room participant and bump room activity"""
        if not isinstance(content, str) or not content.strip():
            raise InvalidMessageFormat("Message content is required")
        if len(content) > MAX_MESSAGE_LENGTH:
            raise InvalidMessageFormat(f"Message content exceeds {MAX_MESSAGE_LENGTH} characters")

        async with self._guard("send message"):
            chat_room = await self._authorized_room(room_id, sender_id, sender_role)
            if RoomStatus(chat_room.status) != RoomStatus.ACTIVE:
                raise NotAuthorized("Chat room is not active")

            now = utc_now()
            chat_message = ChatMessage(
                chat_room_id=chat_room.id,
                sender_id=sender_id,
                sender_role=sender_role,
                content=content,
                is_read=False,
                created_at=now,
            )
            self.db.add(chat_message)
            chat_room.last_activity_at = now
            await self.db.commit()
            await self.db.refresh(chat_message)
            return chat_message

    async def list_messages(
        self,
        room_id: UUID,
        requesting_user_id: UUID,
        requesting_role: UserRole,
        newest_first: bool = False,
        limit: Optional[int] = None,
    ) -> List[ChatMessage]:
        """Room messages for a participant.

        Oldest first for full history; newest_first with a limit gives the
        most recent window.
        """
        async with self._guard("load messages"):
            await self._authorized_room(room_id, requesting_user_id, requesting_role)

            order = desc if newest_first else asc
            stmt = (
                select(ChatMessage)
                .where(ChatMessage.chat_room_id == room_id)
                .order_by(order(ChatMessage.created_at), order(ChatMessage.id))
            )
            if limit:
                stmt = stmt.limit(limit)

            result = await self.db.execute(stmt)
            return list(result.scalars().all())

    async def mark_read(self, room_id: UUID, requesting_user_id: UUID, requesting_role: UserRole) -> int:
        """Mark every unread message not sent by the caller as read.

        One timestamp for the whole batch. Returns rows changed; 0 when there
        was nothing unread.
        """
        async with self._guard("mark messages as read"):
            await self._authorized_room(room_id, requesting_user_id, requesting_role)

            stmt = update(ChatMessage).where(
                and_(
                    ChatMessage.chat_room_id == room_id,
                    ChatMessage.sender_id != requesting_user_id,
                    ChatMessage.is_read == False
                )
            ).values(is_read=True, read_at=utc_now()).execution_options(synchronize_session=False)

            result = await self.db.execute(stmt)
            await self.db.commit()
            return result.rowcount or 0

    async def get_user_rooms(self, variant: RoomVariant, identity: ChatIdentity) -> List[dict]:
        """Rooms of one variant where the caller holds their role's slot"""
        if identity.profile_id is None or not variant.allows(identity.role):
            return []

        slot = getattr(ChatRoom, SLOT_COLUMNS[identity.role])
        async with self._guard("load chat rooms"):
            stmt = (
                select(ChatRoom)
                .where(and_(ChatRoom.kind == variant.kind, slot == identity.profile_id))
                .options(
                    selectinload(ChatRoom.patient),
                    selectinload(ChatRoom.nurse),
                    selectinload(ChatRoom.doctor),
                )
                .order_by(desc(ChatRoom.last_activity_at))
            )
            result = await self.db.execute(stmt)
            rooms = result.scalars().all()

            summaries = []
            for chat_room in rooms:
                last_stmt = (
                    select(ChatMessage)
                    .where(ChatMessage.chat_room_id == chat_room.id)
                    .order_by(desc(ChatMessage.created_at), desc(ChatMessage.id))
                    .limit(1)
                )
                last_message = (await self.db.execute(last_stmt)).scalar_one_or_none()

                unread_stmt = select(func.count()).select_from(ChatMessage).where(
                    and_(
                        ChatMessage.chat_room_id == chat_room.id,
                        ChatMessage.sender_id != identity.user_id,
                        ChatMessage.is_read == False
                    )
                )
                unread_count = (await self.db.execute(unread_stmt)).scalar() or 0

                summary = serialize_room(chat_room)
                summary["lastMessage"] = serialize_message(last_message) if last_message else None
                summary["unreadCount"] = unread_count
                summaries.append(summary)
            return summaries

    async def get_room_with_participants(self, room_id: UUID) -> Optional[ChatRoom]:
        stmt = (
            select(ChatRoom)
            .where(ChatRoom.id == room_id)
            .options(
                selectinload(ChatRoom.patient),
                selectinload(ChatRoom.nurse),
                selectinload(ChatRoom.doctor),
            )
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def participant_user_ids(self, chat_room: ChatRoom) -> Dict[UserRole, UUID]:
        """users.id of each participant, keyed by slot role"""
        user_ids = {}
        for role in variant_for(chat_room).slots:
            profile_id = getattr(chat_room, SLOT_COLUMNS[role])
            user_id = await self.profiles.user_id_for_profile(role, profile_id)
            if user_id:
                user_ids[role] = user_id
        return user_ids

    # Moderation

    async def set_room_status(self, room_id: UUID, status: RoomStatus) -> ChatRoom:
        async with self._guard("update chat room"):
            chat_room = await self.get(room_id)
            if chat_room is None:
                raise RoomNotFound(room_id)
            chat_room.status = status
            await self.db.commit()
            await self.db.refresh(chat_room)
            logger.info(f"Room {room_id} status set to {status.value}")
            return chat_room

    async def list_room_messages(self, room_id: UUID, limit: int = 50, offset: int = 0) -> List[ChatMessage]:
        """Unscoped history for moderators, oldest first within the window"""
        async with self._guard("load messages"):
            if await self.get(room_id) is None:
                raise RoomNotFound(room_id)
            stmt = (
                select(ChatMessage)
                .where(ChatMessage.chat_room_id == room_id)
                .order_by(desc(ChatMessage.created_at), desc(ChatMessage.id))
                .offset(offset)
                .limit(limit)
            )
            result = await self.db.execute(stmt)
            return list(reversed(result.scalars().all()))

    async def clear_all(self) -> Tuple[int, int]:
        """Delete every message and room. Maintenance only."""
        async with self._guard("clear chat data"):
            messages = await self.db.execute(delete(ChatMessage).execution_options(synchronize_session=False))
            rooms = await self.db.execute(delete(ChatRoom).execution_options(synchronize_session=False))
            await self.db.commit()
            return messages.rowcount or 0, rooms.rowcount or 0

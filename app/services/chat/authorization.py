# app/services/chat/authorization.py
"""Room authorization.

Rooms store role-specific profile ids (patients.id, nurses.id, doctors.id),
never users.id. A caller is resolved to the profile id of the role their
token claims and only that value is compared with the room slot for the
same role. Comparing a raw user id against any slot is never done.
"""
from dataclasses import dataclass
from typing import Dict, Optional, Union
from uuid import UUID
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.cache import CacheManager, cache as default_cache
from ...core.config import settings
from ...models.chat.chat_room import ChatRoom, RoomKind
from ...models.profiles import Patient, Nurse, Doctor
from ...models.user import UserRole
from .room_variants import ROOM_VARIANTS, SLOT_COLUMNS

logger = logging.getLogger(__name__)

PROFILE_MODELS = {
    UserRole.PATIENT: Patient,
    UserRole.NURSE: Nurse,
    UserRole.DOCTOR: Doctor,
}


@dataclass(frozen=True)
class ChatIdentity:
    """Caller identity trusted for the whole session or request."""
    user_id: UUID
    role: UserRole
    profile_id: Optional[UUID] = None


class ProfileDirectory:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve_profile_id(self, user_id: UUID, role: UserRole) -> Optional[UUID]:
        """Profile id of `user_id` in the table selected by `role`.

        None when the role has no chat profile (PHARMACY, ADMIN) or the user
        has no row in that role's table, whatever their token says.
        """
        model = PROFILE_MODELS.get(role)
        if model is None:
            return None
        result = await self.db.execute(select(model.id).where(model.user_id == user_id))
        return result.scalar_one_or_none()

    async def user_id_for_profile(self, role: UserRole, profile_id: UUID) -> Optional[UUID]:
        model = PROFILE_MODELS.get(role)
        if model is None:
            return None
        result = await self.db.execute(select(model.user_id).where(model.id == profile_id))
        return result.scalar_one_or_none()

    async def build_identity(self, user_id: UUID, role: UserRole) -> ChatIdentity:
        profile_id = await self.resolve_profile_id(user_id, role)
        if profile_id is None and role in PROFILE_MODELS:
            logger.warning(f"User {user_id} claims role {role.value} but has no {role.value.lower()} profile")
        return ChatIdentity(user_id=user_id, role=role, profile_id=profile_id)


def room_participants(room: ChatRoom) -> Dict[str, Optional[str]]:
    """Cacheable snapshot of the immutable part of a room."""
    return {
        "kind": RoomKind(room.kind).value,
        "patient_id": str(room.patient_id) if room.patient_id else None,
        "nurse_id": str(room.nurse_id) if room.nurse_id else None,
        "doctor_id": str(room.doctor_id) if room.doctor_id else None,
    }


def is_participant(participants: Union[ChatRoom, Dict[str, Optional[str]]], identity: ChatIdentity) -> bool:
    """True when identity's profile id sits in the slot for identity's role."""
    if isinstance(participants, ChatRoom):
        participants = room_participants(participants)

    if identity.profile_id is None:
        return False

    variant = ROOM_VARIANTS.get(RoomKind(participants["kind"]))
    if variant is None or not variant.allows(identity.role):
        return False

    slot_value = participants.get(SLOT_COLUMNS[identity.role])
    return slot_value is not None and slot_value == str(identity.profile_id)


def _coerce_room_id(room_id) -> Optional[UUID]:
    if isinstance(room_id, UUID):
        return room_id
    try:
        return UUID(str(room_id))
    except (TypeError, ValueError):
        return None


class RoomAuthorizer:
    def __init__(self, db: AsyncSession, cache: Optional[CacheManager] = None):
        self.db = db
        self.cache = cache or default_cache

    @staticmethod
    def _cache_key(room_id: UUID) -> str:
        return f"chat:room:{room_id}:participants"

    async def forget_all_rooms(self) -> int:
        """Drop cached participants of every room"""
        return await self.cache.delete_pattern("chat:room:*:participants")

    async def get_room_participants(self, room_id) -> Optional[Dict[str, Optional[str]]]:
        room_uuid = _coerce_room_id(room_id)
        if room_uuid is None:
            return None

        cached = await self.cache.get(self._cache_key(room_uuid))
        if cached:
            return cached

        room = await self.db.get(ChatRoom, room_uuid)
        if room is None:
            return None

        participants = room_participants(room)
        await self.cache.set(self._cache_key(room_uuid), participants, expire=settings.room_cache_ttl)
        return participants

    async def can_access_room(self, identity: ChatIdentity, room_id) -> bool:
        """Membership check. Unknown or malformed room ids are a plain False."""
        participants = await self.get_room_participants(room_id)
        if participants is None:
            logger.info(f"User {identity.user_id} denied access to unknown room {room_id}")
            return False

        allowed = is_participant(participants, identity)
        if not allowed:
            logger.warning(f"User {identity.user_id} ({identity.role.value}) denied access to room {room_id}")
        return allowed

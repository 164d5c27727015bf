# app/services/chat/room_variants.py
"""Room variant descriptors.

A variant is the set of participant slots a room has. Each slot belongs to
one role and maps to the room column holding that role's profile id. The
roles allowed in a room are exactly the roles of its slots.
"""
from dataclasses import dataclass
from typing import Dict, Tuple
from uuid import UUID

from ...models.chat.chat_room import ChatRoom, RoomKind
from ...models.user import UserRole

# role -> ChatRoom column holding that role's profile id
SLOT_COLUMNS: Dict[UserRole, str] = {
    UserRole.PATIENT: "patient_id",
    UserRole.NURSE: "nurse_id",
    UserRole.DOCTOR: "doctor_id",
}


@dataclass(frozen=True)
class RoomVariant:
    kind: RoomKind
    slots: Tuple[UserRole, ...]
    url_prefix: str
    label: str
    initiator: UserRole = UserRole.PATIENT

    @property
    def allowed_roles(self) -> Tuple[UserRole, ...]:
        return self.slots

    def allows(self, role: UserRole) -> bool:
        return role in self.slots

    def participant_key(self, participants: Dict[UserRole, UUID]) -> str:
        parts = [self.kind.value]
        for role in (UserRole.PATIENT, UserRole.NURSE, UserRole.DOCTOR):
            profile_id = participants.get(role) if role in self.slots else None
            parts.append(str(profile_id) if profile_id else "-")
        return ":".join(parts)

    def validate_participants(self, participants: Dict[UserRole, UUID]) -> Dict[UserRole, UUID]:
        """Every slot filled, nothing outside the slots."""
        missing = [role.value for role in self.slots if not participants.get(role)]
        if missing:
            raise ValueError(f"{self.label} room requires participants: {', '.join(missing)}")
        extra = [role.value for role, value in participants.items() if value and role not in self.slots]
        if extra:
            raise ValueError(f"{self.label} room does not accept participants: {', '.join(extra)}")
        return {role: participants[role] for role in self.slots}


PATIENT_DOCTOR = RoomVariant(
    kind=RoomKind.PATIENT_DOCTOR,
    slots=(UserRole.PATIENT, UserRole.DOCTOR),
    url_prefix="/chat",
    label="Patient-Doctor",
)

PATIENT_NURSE = RoomVariant(
    kind=RoomKind.PATIENT_NURSE,
    slots=(UserRole.PATIENT, UserRole.NURSE),
    url_prefix="/chat-patient-nurse",
    label="Patient-Nurse",
)

PATIENT_NURSE_DOCTOR = RoomVariant(
    kind=RoomKind.PATIENT_NURSE_DOCTOR,
    slots=(UserRole.PATIENT, UserRole.NURSE, UserRole.DOCTOR),
    url_prefix="/chat-patient-nurse-doctor",
    label="Patient-Nurse-Doctor",
)

ROOM_VARIANTS: Dict[RoomKind, RoomVariant] = {
    variant.kind: variant for variant in (PATIENT_DOCTOR, PATIENT_NURSE, PATIENT_NURSE_DOCTOR)
}


def variant_for(room: ChatRoom) -> RoomVariant:
    return ROOM_VARIANTS[RoomKind(room.kind)]

# app/models/chat/chat_room.py
import enum
from sqlalchemy import Column, String, ForeignKey, DateTime, Enum, Index, Uuid
from sqlalchemy.orm import relationship
from ..base import Base, utc_now


class RoomKind(enum.Enum):
    PATIENT_DOCTOR = "PATIENT_DOCTOR"
    PATIENT_NURSE = "PATIENT_NURSE"
    PATIENT_NURSE_DOCTOR = "PATIENT_NURSE_DOCTOR"


class RoomStatus(enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class ChatRoom(Base):
    __tablename__ = "chat_rooms"

    kind = Column(
        Enum(
            RoomKind,
            native_enum=False,
            values_callable=lambda enum_cls: [e.value for e in enum_cls]
        ),
        nullable=False,
        index=True
    )
    # Participant slots hold role-specific profile ids; unused slots stay NULL
    patient_id = Column(Uuid(as_uuid=True), ForeignKey("patients.id"), nullable=True, index=True)
    nurse_id = Column(Uuid(as_uuid=True), ForeignKey("nurses.id"), nullable=True, index=True)
    doctor_id = Column(Uuid(as_uuid=True), ForeignKey("doctors.id"), nullable=True, index=True)
    # "<kind>:<patient>:<nurse>:<doctor>" so uniqueness holds even where slots are NULL
    participant_key = Column(String(160), nullable=False)

    status = Column(
        Enum(
            RoomStatus,
            native_enum=False,
            values_callable=lambda enum_cls: [e.value for e in enum_cls]
        ),
        default=RoomStatus.ACTIVE,
        nullable=False
    )
    last_activity_at = Column(DateTime(timezone=True), default=utc_now, nullable=False, index=True)

    # Relationships
    patient = relationship("Patient")
    nurse = relationship("Nurse")
    doctor = relationship("Doctor")
    messages = relationship("ChatMessage", back_populates="chat_room", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_chat_room_participants', 'participant_key', unique=True),
    )

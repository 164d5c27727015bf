# app/models/chat/chat_message.py
from sqlalchemy import Column, Text, Boolean, ForeignKey, DateTime, Enum, Index, Uuid
from sqlalchemy.orm import relationship
from ..base import Base
from ..user import UserRole

class ChatMessage(Base):
    __tablename__ = "chat_messages"

    chat_room_id = Column(Uuid(as_uuid=True), ForeignKey("chat_rooms.id"), nullable=False, index=True)
    # Raw user id of the author, not a profile id
    sender_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    # Denormalized at write time
    sender_role = Column(
        Enum(
            UserRole,
            native_enum=False,
            values_callable=lambda enum_cls: [e.value for e in enum_cls]
        ),
        nullable=False
    )
    content = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    chat_room = relationship("ChatRoom", back_populates="messages")

    # Index for efficient queries
    __table_args__ = (
        Index('idx_chat_message_room_time', 'chat_room_id', 'created_at'),
        Index('idx_chat_message_unread', 'chat_room_id', 'is_read'),
    )

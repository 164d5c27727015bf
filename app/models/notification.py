# app/models/notification.py
from sqlalchemy import Column, String, Boolean, ForeignKey, Text, JSON, DateTime, Index, Uuid
from sqlalchemy.orm import relationship
from .base import Base


class Notification(Base):
    __tablename__ = "notifications"

    # Recipient
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)

    # Free-form type tag set by the producing domain action, e.g. CHAT_ROOM_CREATED
    type = Column(String(50), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    extra_data = Column("metadata", JSON, nullable=True)

    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User")

    __table_args__ = (
        Index('idx_notification_user_unread', 'user_id', 'is_read'),
    )

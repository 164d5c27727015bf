# app/models/__init__.py
"""Import all models here, if needed for Alembic migration."""
from .base import Base

from .user import User, UserRole
from .profiles import Patient, Nurse, Doctor
from .chat import ChatRoom, ChatMessage, RoomKind, RoomStatus
from .notification import Notification

# This ensures all models are loaded when importing models

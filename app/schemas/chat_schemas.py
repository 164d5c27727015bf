# app/schemas/chat_schemas.py
"""Pydantic schemas for chat HTTP bodies and inbound websocket frames."""
import json
from typing import Annotated, Literal, Optional, Union
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ..core.exceptions import InvalidMessageFormat
from ..models.chat.chat_room import RoomStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# HTTP bodies

class CreateRoomRequest(CamelModel):
    """Other participants of the room, as profile ids."""
    doctor_id: Optional[UUID] = Field(default=None, alias="doctorId", description="Doctor profile id")
    nurse_id: Optional[UUID] = Field(default=None, alias="nurseId", description="Nurse profile id")


class SendMessageRequest(CamelModel):
    content: str = Field(..., min_length=1, max_length=5000, description="Message text")


class RoomStatusUpdate(CamelModel):
    status: RoomStatus


# Inbound websocket frames, discriminated on `type`

class JoinRoomFrame(CamelModel):
    type: Literal["join-room"]
    room_id: UUID = Field(..., alias="roomId")


class LeaveRoomFrame(CamelModel):
    type: Literal["leave-room"]
    room_id: UUID = Field(..., alias="roomId")


class SendMessageFrame(CamelModel):
    type: Literal["send-message"]
    room_id: UUID = Field(..., alias="roomId")
    content: str = Field(..., min_length=1, max_length=5000)


class TypingFrame(CamelModel):
    type: Literal["typing"]
    room_id: UUID = Field(..., alias="roomId")


class MarkReadFrame(CamelModel):
    type: Literal["mark-read"]
    room_id: UUID = Field(..., alias="roomId")


class PingFrame(CamelModel):
    type: Literal["ping"]


InboundFrame = Annotated[
    Union[JoinRoomFrame, LeaveRoomFrame, SendMessageFrame, TypingFrame, MarkReadFrame, PingFrame],
    Field(discriminator="type"),
]

FRAME_TYPES = ("join-room", "leave-room", "send-message", "typing", "mark-read", "ping")

_frame_adapter = TypeAdapter(InboundFrame)


def parse_frame(raw: str):
    """Decode one text frame. Anything unusable raises InvalidMessageFormat."""
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        raise InvalidMessageFormat("Message must be valid JSON")

    if not isinstance(data, dict):
        raise InvalidMessageFormat("Message must be a JSON object")

    message_type = data.get("type")
    if not message_type:
        raise InvalidMessageFormat("Message type is required")
    if message_type not in FRAME_TYPES:
        raise InvalidMessageFormat(f"Unknown message type: {message_type}")

    try:
        return _frame_adapter.validate_python(data)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"][1:]) or message_type
        raise InvalidMessageFormat(f"Invalid {message_type} payload: {field} {first['msg'].lower()}")

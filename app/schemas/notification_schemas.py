# app/schemas/notification_schemas.py
from typing import Any, Dict, Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field


class NotificationCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    recipient_id: UUID = Field(..., alias="recipientId", description="users.id of the recipient")
    type: str = Field(..., min_length=1, max_length=50)
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1)
    metadata: Optional[Dict[str, Any]] = None

"""Schemas for persisted notifications."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, constr

from app.models.enums import NotificationType
from app.schemas.users import PublicUser


class NotificationCreate(BaseModel):
    """Payload for creating a notification addressed to another user."""

    user_id: int = Field(..., description="Recipient of the notification")
    type: NotificationType
    message: constr(strip_whitespace=True, min_length=1, max_length=500)
    link: constr(strip_whitespace=True, max_length=512) = ""


class NotificationRead(BaseModel):
    """Notification as shown in the notification dropdown."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    type: NotificationType
    message: str
    link: str
    is_read: bool
    created_at: datetime
    from_user: PublicUser

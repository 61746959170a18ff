"""Schemas for the direct chat REST surface."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.validation import MessageValidationError, normalize_message_text
from app.schemas.users import PublicUser


class ChatMessageCreate(BaseModel):
    """Payload for the synchronous send path."""

    receiver_id: int = Field(..., description="Identifier of the receiving user")
    text: str = Field(..., description="Message body, trimmed before storing")

    @field_validator("text")
    @classmethod
    def validate_text(cls, value: str) -> str:
        try:
            return normalize_message_text(value)
        except MessageValidationError as exc:
            raise ValueError(str(exc)) from exc


class ChatMessageRead(BaseModel):
    """Stored direct message with populated participants."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    sender_id: int
    receiver_id: int
    text: str
    read: bool
    timestamp: datetime
    sender: PublicUser
    receiver: PublicUser


class ConversationSummary(BaseModel):
    """Per-peer overview of the caller's conversations."""

    user: PublicUser
    last_message: ChatMessageRead
    unread_count: int = Field(0, ge=0)


class UnreadCount(BaseModel):
    unread_count: int = Field(..., ge=0)


class MarkReadResult(BaseModel):
    message: str
    updated: int = Field(..., ge=0)

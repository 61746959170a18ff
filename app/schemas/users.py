"""Schemas related to user profiles and friendships."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models.enums import FriendRequestStatus, FriendshipState


class PublicUser(BaseModel):
    """Minimal public-facing user information."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    login: str
    display_name: str | None = None


class UserProfileRead(PublicUser):
    """Public profile enriched with presence information."""

    bio: str | None = None
    last_seen: datetime | None = None
    is_online: bool = False
    created_at: datetime


class FriendRequestRead(BaseModel):
    """Serialized friend request including participants."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    requester: PublicUser
    addressee: PublicUser
    status: FriendRequestStatus
    created_at: datetime
    responded_at: datetime | None = None


class FriendRequestList(BaseModel):
    """Categorized friend requests for convenience in the UI."""

    incoming: list[FriendRequestRead] = Field(default_factory=list)
    outgoing: list[FriendRequestRead] = Field(default_factory=list)


class FriendshipStatusRead(BaseModel):
    """Relationship between the current user and another user."""

    status: FriendshipState


class DetailMessage(BaseModel):
    """Plain acknowledgement body."""

    message: str

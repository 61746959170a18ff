"""Pydantic schemas for API payloads."""

from .auth import LoginRequest, Token, UserCreate, UserRead
from .chat import (
    ChatMessageCreate,
    ChatMessageRead,
    ConversationSummary,
    MarkReadResult,
    UnreadCount,
)
from .notifications import NotificationCreate, NotificationRead
from .users import (
    DetailMessage,
    FriendRequestList,
    FriendRequestRead,
    FriendshipStatusRead,
    PublicUser,
    UserProfileRead,
)

__all__ = [
    "LoginRequest",
    "Token",
    "UserCreate",
    "UserRead",
    "PublicUser",
    "UserProfileRead",
    "FriendRequestRead",
    "FriendRequestList",
    "FriendshipStatusRead",
    "DetailMessage",
    "ChatMessageCreate",
    "ChatMessageRead",
    "ConversationSummary",
    "MarkReadResult",
    "UnreadCount",
    "NotificationCreate",
    "NotificationRead",
]

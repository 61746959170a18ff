"""Database models package."""

from .base import Base
from .chat import FriendLink, Message, Notification, User
from .enums import FriendRequestStatus, FriendshipState, NotificationType

__all__ = [
    "Base",
    "User",
    "Message",
    "FriendLink",
    "Notification",
    "FriendRequestStatus",
    "FriendshipState",
    "NotificationType",
]

from __future__ import annotations

from enum import Enum


class FriendRequestStatus(str, Enum):
    """Lifecycle states for friend relationships."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class NotificationType(str, Enum):
    """Kinds of events a user can be notified about."""

    LIKE = "like"
    COMMENT = "comment"
    FRIEND_REQUEST = "friend_request"


class FriendshipState(str, Enum):
    """Relationship of another user as seen by the current user."""

    SELF = "self"
    FRIENDS = "friends"
    PENDING = "pending"
    RECEIVED = "received"
    NOT_FRIENDS = "not-friends"

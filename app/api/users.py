"""User profile endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, require_user
from app.database import get_db
from app.models import User
from app.schemas import PublicUser, UserProfileRead
from innerlight.realtime.managers import get_presence_registry

router = APIRouter(prefix="/users", tags=["users"])

presence = get_presence_registry()


def serialize_public_user(user: User) -> PublicUser:
    return PublicUser(id=user.id, login=user.login, display_name=user.display_name)


def serialize_profile(user: User) -> UserProfileRead:
    return UserProfileRead(
        id=user.id,
        login=user.login,
        display_name=user.display_name,
        bio=user.bio,
        last_seen=user.last_seen,
        is_online=presence.is_online(user.id),
        created_at=user.created_at,
    )


@router.get("/me", response_model=UserProfileRead)
async def read_current_user(current_user: User = Depends(get_current_user)) -> UserProfileRead:
    return serialize_profile(current_user)


@router.get("/{user_id}", response_model=UserProfileRead)
async def read_user_profile(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UserProfileRead:
    """Return a public profile with last-seen time and live online flag."""

    return serialize_profile(require_user(user_id, db))

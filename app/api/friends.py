"""Friends management endpoints."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from app.api.deps import get_current_user, require_user
from app.api.notifications import add_notification, serialize_notification
from app.api.users import serialize_public_user
from app.database import get_db
from app.models import FriendLink, FriendRequestStatus, FriendshipState, NotificationType, User
from app.schemas import (
    DetailMessage,
    FriendRequestList,
    FriendRequestRead,
    FriendshipStatusRead,
    PublicUser,
)
from innerlight.realtime.managers import get_broadcaster

router = APIRouter(prefix="/friends", tags=["friends"])

logger = logging.getLogger(__name__)

broadcaster = get_broadcaster()


def _display_name(user: User) -> str:
    return user.display_name or user.login


def _get_friend_link(user_id: int, other_id: int, db: Session) -> FriendLink | None:
    stmt = select(FriendLink).where(
        or_(
            (FriendLink.requester_id == user_id) & (FriendLink.addressee_id == other_id),
            (FriendLink.requester_id == other_id) & (FriendLink.addressee_id == user_id),
        )
    )
    return db.execute(stmt).scalar_one_or_none()


def _serialize_request(link: FriendLink) -> FriendRequestRead:
    return FriendRequestRead(
        id=link.id,
        requester=serialize_public_user(link.requester),
        addressee=serialize_public_user(link.addressee),
        status=link.status,
        created_at=link.created_at,
        responded_at=link.responded_at,
    )


def _require_request(request_id: int, db: Session) -> FriendLink:
    stmt = (
        select(FriendLink)
        .where(FriendLink.id == request_id)
        .options(selectinload(FriendLink.requester), selectinload(FriendLink.addressee))
    )
    request = db.execute(stmt).scalar_one_or_none()
    if request is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Friend request not found")
    return request


def _friends_of(user_id: int, db: Session) -> list[User]:
    stmt = (
        select(FriendLink)
        .where(
            FriendLink.status == FriendRequestStatus.ACCEPTED,
            or_(FriendLink.requester_id == user_id, FriendLink.addressee_id == user_id),
        )
        .options(selectinload(FriendLink.requester), selectinload(FriendLink.addressee))
    )
    friends: list[User] = []
    for link in db.execute(stmt).scalars():
        friends.append(link.addressee if link.requester_id == user_id else link.requester)
    friends.sort(key=lambda friend: _display_name(friend).lower())
    return friends


@router.get("", response_model=list[PublicUser])
async def list_friends(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[PublicUser]:
    """Return accepted friends for the current user."""

    return [serialize_public_user(friend) for friend in _friends_of(current_user.id, db)]


@router.get("/requests", response_model=FriendRequestList)
async def list_friend_requests(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> FriendRequestList:
    """Return incoming and outgoing pending requests."""

    stmt = (
        select(FriendLink)
        .where(
            FriendLink.status == FriendRequestStatus.PENDING,
            or_(
                FriendLink.requester_id == current_user.id,
                FriendLink.addressee_id == current_user.id,
            ),
        )
        .options(selectinload(FriendLink.requester), selectinload(FriendLink.addressee))
        .order_by(FriendLink.created_at.asc(), FriendLink.id.asc())
    )
    incoming: list[FriendRequestRead] = []
    outgoing: list[FriendRequestRead] = []
    for entry in db.execute(stmt).scalars():
        if entry.addressee_id == current_user.id:
            incoming.append(_serialize_request(entry))
        else:
            outgoing.append(_serialize_request(entry))
    return FriendRequestList(incoming=incoming, outgoing=outgoing)


@router.post(
    "/requests/{user_id}",
    response_model=FriendRequestRead,
    status_code=status.HTTP_201_CREATED,
)
async def send_friend_request(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> FriendRequestRead:
    """Send a friend request, notify the addressee and announce it to connected clients."""

    if user_id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot add yourself")
    target = require_user(user_id, db)

    link = _get_friend_link(current_user.id, target.id, db)
    if link is not None:
        if link.status == FriendRequestStatus.ACCEPTED:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Already friends")
        if link.status == FriendRequestStatus.PENDING:
            if link.requester_id == current_user.id:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Already sent request")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Incoming request pending")
        # A declined link is reopened in the caller's direction.
        link.requester_id = current_user.id
        link.addressee_id = target.id
        link.status = FriendRequestStatus.PENDING
        link.created_at = datetime.now(timezone.utc)
        link.responded_at = None
    else:
        link = FriendLink(
            requester_id=current_user.id,
            addressee_id=target.id,
            status=FriendRequestStatus.PENDING,
        )
        db.add(link)

    notification = add_notification(
        db,
        user_id=target.id,
        from_user_id=current_user.id,
        type=NotificationType.FRIEND_REQUEST,
        message=f"{_display_name(current_user)} sent you a friend request",
        link=f"/profile/{current_user.id}",
    )
    db.commit()
    db.refresh(link)
    db.refresh(notification)

    result = _serialize_request(link)
    await broadcaster.broadcast_friend_request(
        {
            "request": result.model_dump(mode="json"),
            "notification": serialize_notification(notification).model_dump(mode="json"),
        }
    )
    return result


@router.delete("/requests/{user_id}", response_model=DetailMessage)
async def cancel_friend_request(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> DetailMessage:
    link = _get_friend_link(current_user.id, user_id, db)
    if (
        link is None
        or link.status != FriendRequestStatus.PENDING
        or link.requester_id != current_user.id
    ):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Friend request not found")
    db.delete(link)
    db.commit()
    return DetailMessage(message="Friend request cancelled")


@router.post("/requests/{request_id}/accept", response_model=FriendRequestRead)
async def accept_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> FriendRequestRead:
    request = _require_request(request_id, db)
    if request.addressee_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")
    if request.status == FriendRequestStatus.ACCEPTED:
        return _serialize_request(request)

    request.status = FriendRequestStatus.ACCEPTED
    request.responded_at = datetime.now(timezone.utc)
    notification = add_notification(
        db,
        user_id=request.requester_id,
        from_user_id=current_user.id,
        type=NotificationType.FRIEND_REQUEST,
        message=f"{_display_name(current_user)} accepted your friend request",
        link=f"/profile/{current_user.id}",
    )
    db.commit()
    db.refresh(request)
    db.refresh(notification)

    await broadcaster.broadcast_notification(
        serialize_notification(notification).model_dump(mode="json")
    )
    return _serialize_request(request)


@router.post("/requests/{request_id}/reject", response_model=FriendRequestRead)
async def reject_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> FriendRequestRead:
    request = _require_request(request_id, db)
    if request.addressee_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")
    if request.status != FriendRequestStatus.PENDING:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Request is not pending")

    request.status = FriendRequestStatus.DECLINED
    request.responded_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(request)
    return _serialize_request(request)


@router.delete("/{friend_id}", response_model=DetailMessage)
async def remove_friend(
    friend_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> DetailMessage:
    link = _get_friend_link(current_user.id, friend_id, db)
    if link is None or link.status != FriendRequestStatus.ACCEPTED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Not in friends list")
    db.delete(link)
    db.commit()
    logger.info("User %s removed friend %s", current_user.id, friend_id)
    return DetailMessage(message="Friend removed successfully")


@router.get("/status/{user_id}", response_model=FriendshipStatusRead)
async def friendship_status(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> FriendshipStatusRead:
    if user_id == current_user.id:
        return FriendshipStatusRead(status=FriendshipState.SELF)

    link = _get_friend_link(current_user.id, user_id, db)
    if link is None or link.status == FriendRequestStatus.DECLINED:
        state = FriendshipState.NOT_FRIENDS
    elif link.status == FriendRequestStatus.ACCEPTED:
        state = FriendshipState.FRIENDS
    elif link.requester_id == current_user.id:
        state = FriendshipState.PENDING
    else:
        state = FriendshipState.RECEIVED
    return FriendshipStatusRead(status=state)


@router.get("/mutual/{user_id}", response_model=list[PublicUser])
async def mutual_friends(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[PublicUser]:
    require_user(user_id, db)
    theirs = {friend.id for friend in _friends_of(user_id, db)}
    return [
        serialize_public_user(friend)
        for friend in _friends_of(current_user.id, db)
        if friend.id in theirs
    ]

"""Durable notification endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.orm import Session, selectinload

from app.api.deps import get_current_user, require_user
from app.api.users import serialize_public_user
from app.database import get_db
from app.models import Notification, NotificationType, User
from app.schemas import DetailMessage, NotificationCreate, NotificationRead

router = APIRouter(prefix="/notifications", tags=["notifications"])


def serialize_notification(notification: Notification) -> NotificationRead:
    return NotificationRead(
        id=notification.id,
        user_id=notification.user_id,
        type=notification.type,
        message=notification.message,
        link=notification.link,
        is_read=notification.is_read,
        created_at=notification.created_at,
        from_user=serialize_public_user(notification.from_user),
    )


def add_notification(
    db: Session,
    *,
    user_id: int,
    from_user_id: int,
    type: NotificationType,
    message: str,
    link: str = "",
) -> Notification:
    """Stage a notification on ``db``; the caller commits."""

    notification = Notification(
        user_id=user_id,
        from_user_id=from_user_id,
        type=type,
        message=message,
        link=link,
    )
    db.add(notification)
    return notification


@router.post("", response_model=NotificationRead, status_code=status.HTTP_201_CREATED)
async def create_notification(
    payload: NotificationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> NotificationRead:
    require_user(payload.user_id, db)
    notification = add_notification(
        db,
        user_id=payload.user_id,
        from_user_id=current_user.id,
        type=payload.type,
        message=payload.message,
        link=payload.link,
    )
    db.commit()
    db.refresh(notification)
    return serialize_notification(notification)


@router.get("", response_model=list[NotificationRead])
async def list_notifications(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[NotificationRead]:
    stmt = (
        select(Notification)
        .where(Notification.user_id == current_user.id)
        .options(selectinload(Notification.from_user))
        .order_by(Notification.created_at.desc(), Notification.id.desc())
    )
    return [serialize_notification(item) for item in db.execute(stmt).scalars()]


@router.put("/{notification_id}/read", response_model=NotificationRead)
async def mark_notification_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> NotificationRead:
    notification = db.get(Notification, notification_id)
    if notification is None or notification.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return serialize_notification(notification)


@router.delete("", response_model=DetailMessage)
async def clear_notifications(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> DetailMessage:
    db.execute(delete(Notification).where(Notification.user_id == current_user.id))
    db.commit()
    return DetailMessage(message="All notifications cleared")

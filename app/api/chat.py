"""Direct chat REST endpoints: history, summaries, synchronous send and read state."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm import Session, selectinload

from app.api.deps import get_current_user, require_user
from app.api.users import serialize_public_user
from app.config import get_settings
from app.database import get_db
from app.models import Message, User
from app.schemas import (
    ChatMessageCreate,
    ChatMessageRead,
    ConversationSummary,
    MarkReadResult,
    UnreadCount,
)
from innerlight.realtime.managers import get_presence_registry, get_room_router
from innerlight.realtime.rooms import canonical_room_id

router = APIRouter(prefix="/chat", tags=["chat"])

settings = get_settings()
presence = get_presence_registry()
rooms = get_room_router()


def _between(user_id: int, peer_id: int):
    return or_(
        and_(Message.sender_id == user_id, Message.receiver_id == peer_id),
        and_(Message.sender_id == peer_id, Message.receiver_id == user_id),
    )


def serialize_message(message: Message) -> ChatMessageRead:
    return ChatMessageRead(
        id=message.id,
        sender_id=message.sender_id,
        receiver_id=message.receiver_id,
        text=message.text,
        read=message.read,
        timestamp=message.timestamp,
        sender=serialize_public_user(message.sender),
        receiver=serialize_public_user(message.receiver),
    )


@router.get("/conversation/{peer_id}", response_model=list[ChatMessageRead])
async def read_conversation(
    peer_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[ChatMessageRead]:
    """Return the most recent messages with ``peer_id`` in chronological order."""

    stmt = (
        select(Message)
        .where(_between(current_user.id, peer_id))
        .options(selectinload(Message.sender), selectinload(Message.receiver))
        .order_by(Message.timestamp.desc(), Message.id.desc())
        .limit(settings.chat_history_max_limit)
    )
    messages = list(db.execute(stmt).scalars())
    messages.reverse()
    return [serialize_message(message) for message in messages]


@router.get("/conversations", response_model=list[ConversationSummary])
async def list_conversations(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[ConversationSummary]:
    """Summarize every peer the caller has exchanged messages with, newest first."""

    stmt = (
        select(Message)
        .where(or_(Message.sender_id == current_user.id, Message.receiver_id == current_user.id))
        .options(selectinload(Message.sender), selectinload(Message.receiver))
        .order_by(Message.timestamp.desc(), Message.id.desc())
    )
    summaries: dict[int, ConversationSummary] = {}
    for message in db.execute(stmt).scalars():
        incoming = message.receiver_id == current_user.id
        peer = message.sender if incoming else message.receiver
        summary = summaries.get(peer.id)
        if summary is None:
            summary = ConversationSummary(
                user=serialize_public_user(peer),
                last_message=serialize_message(message),
                unread_count=0,
            )
            summaries[peer.id] = summary
        if incoming and not message.read:
            summary.unread_count += 1
    return list(summaries.values())


@router.post("/send", response_model=ChatMessageRead, status_code=status.HTTP_201_CREATED)
async def send_message(
    payload: ChatMessageCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ChatMessageRead:
    """Store a message synchronously, then emit it to the pair's room."""

    if payload.receiver_id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot send a message to yourself",
        )
    receiver = require_user(payload.receiver_id, db)

    message = Message(
        sender_id=current_user.id,
        receiver_id=receiver.id,
        text=payload.text,
        read=presence.is_online(receiver.id),
    )
    db.add(message)
    db.commit()
    db.refresh(message)

    result = serialize_message(message)
    room_id = canonical_room_id(current_user.id, receiver.id)
    await rooms.emit(
        room_id,
        {"type": "message", "room": room_id, "message": result.model_dump(mode="json")},
    )
    return result


@router.post("/mark-read/{peer_id}", response_model=MarkReadResult)
async def mark_messages_read(
    peer_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MarkReadResult:
    stmt = (
        update(Message)
        .where(
            Message.sender_id == peer_id,
            Message.receiver_id == current_user.id,
            Message.read.is_(False),
        )
        .values(read=True)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    db.commit()
    return MarkReadResult(message="Messages marked as read", updated=result.rowcount or 0)


@router.get("/unread-count/{peer_id}", response_model=UnreadCount)
async def unread_count(
    peer_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UnreadCount:
    stmt = select(func.count(Message.id)).where(
        Message.sender_id == peer_id,
        Message.receiver_id == current_user.id,
        Message.read.is_(False),
    )
    return UnreadCount(unread_count=db.execute(stmt).scalar_one())

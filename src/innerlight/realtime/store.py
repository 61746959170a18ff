"""Storage interface consumed by the realtime path."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class OutboundMessage:
    """A chat message as emitted to a room, before it is stored."""

    sender_id: int
    receiver_id: int
    text: str
    read: bool = False
    timestamp: datetime = field(default_factory=utcnow)

    def to_payload(self) -> dict[str, Any]:
        return {
            "sender_id": self.sender_id,
            "receiver_id": self.receiver_id,
            "text": self.text,
            "read": self.read,
            "timestamp": self.timestamp.isoformat(),
        }


class ChatStore(Protocol):
    async def save_message(self, message: OutboundMessage) -> Any: ...

    async def touch_last_seen(self, user_id: str, seen_at: datetime) -> None: ...

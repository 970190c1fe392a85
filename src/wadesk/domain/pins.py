"""In-memory pinned messages, per chat.

Pins live for the process lifetime only. Mutations are synchronous: callers
do any awaiting (message lookup) before calling ``pin`` so a read-modify-write
on one chat's set never spans a suspension point.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import Any

from wadesk.whatsapp.models import Message


@dataclass(frozen=True)
class PinnedMessage:
    id: str
    text: str | None
    timestamp: int
    sender: str
    from_me: bool

    @classmethod
    def from_message(cls, message: Message) -> "PinnedMessage":
        return cls(
            id=message.id,
            text=message.body,
            timestamp=message.timestamp,
            sender="me" if message.from_me else (message.sender or message.from_jid),
            from_me=message.from_me,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "timestamp": self.timestamp,
            "sender": self.sender,
            "fromMe": self.from_me,
        }


class PinnedMessageSet:
    """Ordered set of pinned message summaries, in pin order."""

    def __init__(self) -> None:
        self._items: OrderedDict[str, PinnedMessage] = OrderedDict()

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._items

    def __len__(self) -> int:
        return len(self._items)

    def add(self, pinned: PinnedMessage) -> bool:
        if pinned.id in self._items:
            return False
        self._items[pinned.id] = pinned
        return True

    def discard(self, message_id: str) -> bool:
        return self._items.pop(message_id, None) is not None

    def to_list(self) -> list[dict[str, Any]]:
        return [item.to_dict() for item in self._items.values()]


class PinRegistry:
    """Pinned sets keyed by chat id."""

    def __init__(self) -> None:
        self._chats: dict[str, PinnedMessageSet] = {}

    def is_pinned(self, chat_id: str, message_id: str) -> bool:
        pinned = self._chats.get(chat_id)
        return pinned is not None and message_id in pinned

    def pin(self, chat_id: str, pinned: PinnedMessage) -> bool:
        return self._chats.setdefault(chat_id, PinnedMessageSet()).add(pinned)

    def unpin(self, chat_id: str, message_id: str) -> bool:
        pinned = self._chats.get(chat_id)
        if pinned is None:
            return False
        removed = pinned.discard(message_id)
        if not pinned:
            del self._chats[chat_id]
        return removed

    def list(self, chat_id: str) -> list[dict[str, Any]]:
        pinned = self._chats.get(chat_id)
        return pinned.to_list() if pinned is not None else []

"""WhatsApp message and chat models."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

from .media import MediaRef

Direction = Literal["inbound", "outbound"]


@dataclass(frozen=True)
class Message:
    """Normalized message.

    ``chat_id`` is the conversation the message belongs to: the group id for
    group messages, the peer id for direct messages. ``sender`` is who wrote
    it (the author inside a group).
    """

    id: str
    chat_id: str
    timestamp: int
    direction: Direction
    sender: str
    body: str | None = None
    media: MediaRef | None = None
    kind: str = "chat"  # raw message type: chat, image, ptt, audio, ...
    has_media: bool = False
    is_group: bool = False
    from_jid: str = ""
    to_jid: str = ""

    @property
    def from_me(self) -> bool:
        return self.direction == "outbound"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "chatId": self.chat_id,
            "timestamp": self.timestamp,
            "direction": self.direction,
            "sender": self.sender,
            "body": self.body,
            "fromMe": self.from_me,
            "from": self.from_jid,
            "to": self.to_jid,
            "isGroup": self.is_group,
            "hasMedia": self.has_media,
            "mediaType": self.kind,
        }
        if self.media is not None:
            data["media"] = self.media.to_dict()
            data["mediaUrl"] = self.media.data_url
        return data


@dataclass(frozen=True)
class Chat:
    """Read-only projection of a chat."""

    id: str
    name: str
    is_group: bool
    unread_count: int
    last_message: str = ""
    last_timestamp: int | None = None

    def to_dict(self) -> dict[str, Any]:
        timestamp = ""
        if self.last_timestamp:
            timestamp = datetime.fromtimestamp(self.last_timestamp, tz=timezone.utc).isoformat()
        return {
            "id": self.id,
            "name": self.name,
            "isGroup": self.is_group,
            "unreadCount": self.unread_count,
            "lastMessage": self.last_message,
            "timestamp": timestamp,
        }


@dataclass(frozen=True)
class Contact:
    id: str
    name: str
    number: str | None
    is_group: bool = False
    is_business: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "number": self.number,
            "isGroup": self.is_group,
            "isBusiness": self.is_business,
        }

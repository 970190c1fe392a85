"""Normalize raw client records into Message/Chat/Contact.

Media resolution never fails a normalization: download or decode errors are
logged and the message is returned without its media.
"""

from __future__ import annotations

import dataclasses
from typing import Any

from wadesk.domain.errors import ValidationError
from wadesk.observability.logging import get_logger
from wadesk.observability.redaction import hash_identifier, safe_log_context

from .client import RawRecord, WhatsAppClient
from .media import MediaCache, MediaRef
from .models import Chat, Contact, Message

logger = get_logger(__name__)

VOICE_KINDS = frozenset({"audio", "ptt"})
HISTORY_MEDIA_KINDS = VOICE_KINDS | {"image"}
GALLERY_KINDS = frozenset({"image", "video", "document"})

GALLERY_FETCH_LIMIT = 50
GALLERY_MAX_ITEMS = 24

GROUP_SUFFIX = "@g.us"


def serialized_id(value: Any) -> str:
    """whatsapp-web.js ids are either strings or ``{"_serialized": ...}``."""
    if isinstance(value, dict):
        return str(value.get("_serialized") or "")
    return str(value or "")


def record_id(raw: RawRecord) -> str:
    return serialized_id(raw.get("id"))


def record_timestamp(raw: RawRecord) -> int:
    try:
        return int(raw.get("timestamp") or 0)
    except (TypeError, ValueError):
        return 0


def is_group_record(raw: RawRecord) -> bool:
    """Group flag on the record, else a group address on the remote side."""
    if raw.get("isGroup") or raw.get("isGroupMsg"):
        return True
    remote = raw.get("to") if raw.get("fromMe") else raw.get("from")
    return serialized_id(remote).endswith(GROUP_SUFFIX)


def resolve_routing(raw: RawRecord) -> tuple[str, str, bool]:
    """Work out ``(chat_id, sender, from_me)`` for a raw message.

    In a group the conversation is the group itself: ``from`` on inbound
    messages and ``to`` on our own. The person who wrote it is ``author``.
    The group flag on the record decides which rule applies.
    """
    from_me = bool(raw.get("fromMe"))
    from_jid = serialized_id(raw.get("from"))
    to_jid = serialized_id(raw.get("to"))

    if is_group_record(raw):
        chat_id = to_jid if from_me else from_jid
        sender = serialized_id(raw.get("author")) or from_jid
        return chat_id, sender, from_me

    chat_id = to_jid if from_me else from_jid
    return chat_id, from_jid, from_me


def chat_from_record(raw: RawRecord, last: RawRecord | None = None) -> Chat:
    return Chat(
        id=record_id(raw),
        name=raw.get("name") or "Unknown",
        is_group=bool(raw.get("isGroup")),
        unread_count=int(raw.get("unreadCount") or 0),
        last_message=(last or {}).get("body") or "",
        last_timestamp=record_timestamp(last) if last else None,
    )


def contact_from_record(raw: RawRecord) -> Contact:
    return Contact(
        id=record_id(raw),
        name=raw.get("name") or raw.get("pushname") or "Unknown",
        number=raw.get("number"),
        is_group=bool(raw.get("isGroup")),
        is_business=bool(raw.get("isBusiness")),
    )


class MessageNormalizer:
    """Turns raw message records into Message, inlining media where wanted."""

    def __init__(self, client: WhatsAppClient, cache: MediaCache) -> None:
        self._client = client
        self._cache = cache

    def normalize_record(self, raw: RawRecord) -> Message:
        """Pure field mapping, no media."""
        chat_id, sender, from_me = resolve_routing(raw)
        return Message(
            id=record_id(raw),
            chat_id=chat_id,
            timestamp=record_timestamp(raw),
            direction="outbound" if from_me else "inbound",
            sender=sender,
            body=raw.get("body") or None,
            kind=str(raw.get("type") or "chat"),
            has_media=bool(raw.get("hasMedia")),
            is_group=is_group_record(raw),
            from_jid=serialized_id(raw.get("from")),
            to_jid=serialized_id(raw.get("to")),
        )

    async def normalize(self, raw: RawRecord, *, history: bool = False) -> Message:
        """Normalize and inline media.

        Live messages inline voice notes; history reads also inline images.
        """
        message = self.normalize_record(raw)
        kinds = HISTORY_MEDIA_KINDS if history else VOICE_KINDS
        if message.has_media and message.kind in kinds:
            media = await self.resolve_media(message)
            if media is not None:
                message = dataclasses.replace(message, media=media)
        return message

    async def resolve_media(self, message: Message) -> MediaRef | None:
        cached = self._cache.get(message.id)
        if cached is not None:
            return cached

        log_ctx = safe_log_context(
            chat_hash=hash_identifier(message.chat_id),
            message_hash=hash_identifier(message.id),
            kind=message.kind,
        )
        try:
            downloaded = await self._client.download_media(message.chat_id, message.id)
        except Exception as exc:
            # a failed download degrades to a message without media
            logger.warning(
                "media download failed",
                extra={"extra_fields": {**log_ctx, "error_type": type(exc).__name__}},
            )
            return None

        if not isinstance(downloaded, dict) or not downloaded.get("data") or not downloaded.get("mimetype"):
            logger.info("media unavailable", extra={"extra_fields": log_ctx})
            return None

        try:
            media = MediaRef(
                mime_type=str(downloaded["mimetype"]),
                encoded_payload=str(downloaded["data"]),
                filename=downloaded.get("filename"),
            )
        except ValidationError as exc:
            logger.warning(
                "downloaded media rejected",
                extra={"extra_fields": {**log_ctx, "reason": exc.message}},
            )
            return None

        return self._cache.put(message.id, media)

    async def gallery(self, chat_id: str) -> list[dict[str, Any]]:
        """Recent image/video/document messages, images inlined."""
        records = await self._client.fetch_messages(chat_id, GALLERY_FETCH_LIMIT)
        items: list[dict[str, Any]] = []
        for raw in records:
            if len(items) >= GALLERY_MAX_ITEMS:
                break
            message = self.normalize_record(raw)
            if not message.has_media or message.kind not in GALLERY_KINDS:
                continue
            entry: dict[str, Any] = {
                "id": message.id,
                "type": message.kind,
                "timestamp": message.timestamp,
                "sender": "me" if message.from_me else message.from_jid,
                "fromMe": message.from_me,
                "caption": message.body or "",
                "hasMedia": True,
            }
            if message.kind == "image":
                media = await self.resolve_media(message)
                if media is not None:
                    entry["mediaUrl"] = media.data_url
            items.append(entry)
        return items

"""Narrow interface to the external WhatsApp client.

Records crossing this boundary are plain dicts in the shape whatsapp-web.js
serializes them (``id`` may be a string or ``{"_serialized": ...}``).
"""

from __future__ import annotations

from typing import Any, Protocol

from .media import MediaRef

RawRecord = dict[str, Any]


class BridgeError(RuntimeError):
    """The external client failed or could not be reached."""


class WhatsAppClient(Protocol):
    async def initialize(self) -> None: ...

    async def destroy(self) -> None: ...

    async def get_chats(self) -> list[RawRecord]: ...

    async def get_chat(self, chat_id: str) -> RawRecord | None: ...

    async def get_contacts(self) -> list[RawRecord]: ...

    async def fetch_messages(self, chat_id: str, limit: int) -> list[RawRecord]:
        """Most recent ``limit`` messages of a chat, in no guaranteed order."""
        ...

    async def download_media(self, chat_id: str, message_id: str) -> RawRecord | None:
        """``{"mimetype", "data", "filename"}`` or None when unavailable."""
        ...

    async def send_message(
        self,
        chat_id: str,
        content: str | MediaRef,
        options: dict[str, Any] | None = None,
    ) -> RawRecord: ...

    async def get_chat_profile_pic_url(self, chat_id: str) -> str | None: ...

    async def get_contact_profile_pic_url(self, contact_id: str) -> str | None: ...

    async def send_seen(self, chat_id: str) -> bool: ...

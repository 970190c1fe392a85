"""HTTP adapter for the whatsapp-web.js bridge sidecar.

The bridge owns the browser session. It exposes a small REST surface and
reports lifecycle/message events back to ``POST /webhooks/bridge``.

Security: NEVER log chat ids, message text or media. Only hashes and lengths.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx

from wadesk.infra.settings import Settings
from wadesk.observability.logging import get_logger
from wadesk.observability.redaction import hash_identifier, safe_log_context

from .client import BridgeError, RawRecord
from .media import MediaRef

logger = get_logger(__name__)


def _seg(value: str) -> str:
    return quote(value, safe="")


class BridgeClient:
    """WhatsAppClient implementation backed by the bridge's REST API."""

    def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        headers = {"Content-Type": "application/json"}
        if settings.bridge_api_key:
            headers["apikey"] = settings.bridge_api_key
        self._http = httpx.AsyncClient(
            base_url=settings.bridge_url,
            headers=headers,
            timeout=settings.bridge_timeout,
            transport=transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        allow_missing: bool = False,
        expect: type | tuple[type, ...] = dict,
    ) -> Any:
        """Call the bridge and return its decoded JSON body.

        Raises:
            BridgeError: Transport or decoding failure, error status, or a body
                that is not JSON of the ``expect``ed shape.
        """
        try:
            resp = await self._http.request(method, path, json=json, params=params)
        except httpx.HTTPError as exc:
            logger.warning(
                "bridge request failed",
                extra={"extra_fields": safe_log_context(method=method, error_type=type(exc).__name__)},
            )
            reason = "unreachable" if isinstance(exc, httpx.TransportError) else "response unreadable"
            raise BridgeError(f"bridge {reason}: {type(exc).__name__}") from exc

        if resp.status_code == 404 and allow_missing:
            return None
        if resp.is_error:
            logger.warning(
                "bridge returned error",
                extra={"extra_fields": safe_log_context(method=method, status=resp.status_code)},
            )
            raise BridgeError(f"bridge HTTP {resp.status_code}: {resp.text[:200]}")
        if not resp.content:
            return None
        try:
            body = resp.json()
        except ValueError as exc:
            raise BridgeError("bridge returned a non-JSON body") from exc
        if not isinstance(body, expect):
            logger.warning(
                "bridge returned unexpected body",
                extra={"extra_fields": safe_log_context(method=method, body_type=type(body).__name__)},
            )
            raise BridgeError(f"bridge returned unexpected {type(body).__name__} body")
        return body

    async def initialize(self) -> None:
        await self._request("POST", "/session/start", expect=object)

    async def destroy(self) -> None:
        try:
            await self._request("POST", "/session/stop", expect=object)
        finally:
            await self._http.aclose()

    async def get_chats(self) -> list[RawRecord]:
        return (await self._request("GET", "/chats", expect=list)) or []

    async def get_chat(self, chat_id: str) -> RawRecord | None:
        return await self._request("GET", f"/chats/{_seg(chat_id)}", allow_missing=True)

    async def get_contacts(self) -> list[RawRecord]:
        return (await self._request("GET", "/contacts", expect=list)) or []

    async def fetch_messages(self, chat_id: str, limit: int) -> list[RawRecord]:
        return (
            await self._request("GET", f"/chats/{_seg(chat_id)}/messages", params={"limit": limit}, expect=list)
        ) or []

    async def download_media(self, chat_id: str, message_id: str) -> RawRecord | None:
        return await self._request(
            "GET",
            f"/chats/{_seg(chat_id)}/messages/{_seg(message_id)}/media",
            allow_missing=True,
        )

    async def send_message(
        self,
        chat_id: str,
        content: str | MediaRef,
        options: dict[str, Any] | None = None,
    ) -> RawRecord:
        payload: dict[str, Any] = {"options": options or {}}
        if isinstance(content, MediaRef):
            payload["media"] = {
                "mimetype": content.mime_type,
                "data": content.encoded_payload,
                "filename": content.filename,
            }
            log_ctx = safe_log_context(to_hash=hash_identifier(chat_id), media_bytes=content.size_bytes)
        else:
            payload["text"] = content
            log_ctx = safe_log_context(to_hash=hash_identifier(chat_id), text_len=len(content))

        logger.info("bridge send", extra={"extra_fields": log_ctx})
        return (await self._request("POST", f"/chats/{_seg(chat_id)}/messages", json=payload)) or {}

    async def get_chat_profile_pic_url(self, chat_id: str) -> str | None:
        data = await self._request("GET", f"/chats/{_seg(chat_id)}/profile-picture", allow_missing=True)
        return (data or {}).get("url")

    async def get_contact_profile_pic_url(self, contact_id: str) -> str | None:
        data = await self._request("GET", f"/contacts/{_seg(contact_id)}/profile-picture", allow_missing=True)
        return (data or {}).get("url")

    async def send_seen(self, chat_id: str) -> bool:
        data = await self._request("POST", f"/chats/{_seg(chat_id)}/seen")
        return bool((data or {}).get("success", False))

"""Read routes: contacts, chats, history, media gallery, profile pictures.

Every route here needs a READY session. Unexpected client failures are
logged and answered with a fixed 500 message; chat ids are logged hashed.
"""

from __future__ import annotations

import asyncio

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Response

from wadesk.api.deps import require_ready, to_http
from wadesk.domain.errors import WadeskError
from wadesk.domain.history import PageCursor
from wadesk.observability.logging import get_logger
from wadesk.observability.redaction import hash_identifier, safe_log_context
from wadesk.runtime import Runtime
from wadesk.whatsapp.client import BridgeError, RawRecord
from wadesk.whatsapp.normalizer import chat_from_record, contact_from_record, record_id

router = APIRouter(tags=["chats"])

logger = get_logger(__name__)

PROFILE_PIC_CACHE_CONTROL = "public, max-age=300"


def _failure(message: str, chat_id: str | None = None) -> HTTPException:
    logger.exception(
        message,
        extra={"extra_fields": safe_log_context(chat_hash=hash_identifier(chat_id) if chat_id else None)},
    )
    return HTTPException(status_code=500, detail={"error": message})


@router.get("/contacts")
async def list_contacts(runtime: Runtime = Depends(require_ready)) -> dict:
    try:
        records = await runtime.client.get_contacts()
    except BridgeError:
        raise _failure("Failed to get contacts") from None
    return {"contacts": [contact_from_record(raw).to_dict() for raw in records]}


@router.get("/chats")
async def list_chats(runtime: Runtime = Depends(require_ready)) -> dict:
    """List chats with their latest message.

    Latest-message reads run concurrently; one failing read leaves that chat
    without a preview instead of failing the list.
    """
    try:
        records = await runtime.client.get_chats()
    except BridgeError:
        raise _failure("Failed to get chats") from None

    async def _with_latest(raw: RawRecord) -> dict:
        chat_id = record_id(raw)
        try:
            latest = await runtime.client.fetch_messages(chat_id, 1)
        except BridgeError as exc:
            logger.warning(
                "latest message fetch failed",
                extra={
                    "extra_fields": safe_log_context(
                        chat_hash=hash_identifier(chat_id), error_type=type(exc).__name__
                    )
                },
            )
            latest = []
        return chat_from_record(raw, latest[0] if latest else None).to_dict()

    chats = await asyncio.gather(*(_with_latest(raw) for raw in records))
    return {"chats": list(chats)}


@router.get("/chat-messages/{chat_id}")
async def chat_messages(
    chat_id: str,
    beforeId: str | None = Query(None),
    limit: int | None = Query(None),
    runtime: Runtime = Depends(require_ready),
) -> dict:
    """One page of history, oldest-first, strictly older than ``beforeId``.

    ``limit`` is clamped to the allowed page size range. An empty list means
    there is no older history.
    """
    cursor = PageCursor.from_query(beforeId, limit)
    try:
        messages = await runtime.pager.fetch_page(chat_id, cursor)
    except WadeskError as exc:
        raise to_http(exc) from exc
    except BridgeError:
        raise _failure("Failed to get chat messages", chat_id) from None
    return {"messages": [message.to_dict() for message in messages]}


@router.get("/chat-media/{chat_id}")
async def chat_media(chat_id: str, runtime: Runtime = Depends(require_ready)) -> dict:
    try:
        chat = await runtime.client.get_chat(chat_id)
        if chat is None:
            raise HTTPException(status_code=404, detail={"error": "Chat not found"})
        gallery = await runtime.normalizer.gallery(chat_id)
    except BridgeError:
        raise _failure("Failed to get chat media", chat_id) from None
    return {"mediaGallery": gallery}


@router.post("/mark-chat-seen/{chat_id}")
async def mark_chat_seen(chat_id: str, runtime: Runtime = Depends(require_ready)) -> dict:
    log_ctx = safe_log_context(chat_hash=hash_identifier(chat_id))
    try:
        seen = await runtime.client.send_seen(chat_id)
    except BridgeError:
        raise _failure("Failed to mark chat as seen", chat_id) from None
    if not seen:
        logger.warning("client refused to mark chat as seen", extra={"extra_fields": log_ctx})
        raise HTTPException(status_code=500, detail={"error": "Failed to mark chat as seen"})
    logger.info("chat marked as seen", extra={"extra_fields": log_ctx})
    return {"success": True, "message": "Chat marked as seen"}


async def _profile_pic_url(runtime: Runtime, chat_id: str) -> str | None:
    """Chat lookup first, then contact lookup. Lookup errors mean "no picture"."""
    lookups = (runtime.client.get_chat_profile_pic_url, runtime.client.get_contact_profile_pic_url)
    for lookup in lookups:
        try:
            url = await lookup(chat_id)
        except BridgeError as exc:
            logger.info(
                "profile picture lookup failed",
                extra={
                    "extra_fields": safe_log_context(
                        chat_hash=hash_identifier(chat_id), error_type=type(exc).__name__
                    )
                },
            )
            continue
        if url:
            return url
    return None


@router.get("/profile-picture/{chat_id}")
async def profile_picture(chat_id: str, runtime: Runtime = Depends(require_ready)) -> dict:
    return {"profilePicUrl": await _profile_pic_url(runtime, chat_id)}


@router.get("/profile-picture/{chat_id}/image")
async def profile_picture_image(chat_id: str, runtime: Runtime = Depends(require_ready)) -> Response:
    """Proxy the picture bytes so the browser never talks to the CDN."""
    url = await _profile_pic_url(runtime, chat_id)
    if not url:
        raise HTTPException(status_code=404, detail={"error": "No profile picture"})

    try:
        upstream = await runtime.http.get(url)
    except httpx.HTTPError:
        raise _failure("Failed to proxy profile picture", chat_id) from None

    if upstream.is_error:
        logger.warning(
            "profile picture upstream error",
            extra={
                "extra_fields": safe_log_context(
                    chat_hash=hash_identifier(chat_id), status_code=upstream.status_code
                )
            },
        )
        raise HTTPException(status_code=502, detail={"error": "Failed to fetch profile picture"})

    return Response(
        content=upstream.content,
        media_type=upstream.headers.get("content-type", "image/jpeg"),
        headers={"Cache-Control": PROFILE_PIC_CACHE_CONTROL},
    )

"""Pinned messages (process-local, lost on restart)."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from wadesk.api.deps import get_runtime, require_ready
from wadesk.domain.pins import PinnedMessage
from wadesk.observability.logging import get_logger
from wadesk.observability.redaction import hash_identifier, safe_log_context
from wadesk.runtime import Runtime
from wadesk.whatsapp.client import BridgeError
from wadesk.whatsapp.normalizer import record_id

router = APIRouter(tags=["pins"])

logger = get_logger(__name__)

PIN_LOOKUP_LIMIT = 100


class PinRequest(BaseModel):
    chatId: str | None = None
    messageId: str | None = None
    action: Literal["pin", "unpin"] | None = None


@router.post("/pin-message")
async def pin_message(req: PinRequest, runtime: Runtime = Depends(require_ready)) -> dict:
    """Pin or unpin a message.

    Pinning looks the message up among the chat's most recent messages; an id
    that is not found there leaves the set unchanged.
    """
    if not (req.chatId and req.messageId and req.action):
        raise HTTPException(
            status_code=400,
            detail={"error": "Chat ID, message ID, and action are required"},
        )
    chat_id, message_id = req.chatId, req.messageId

    if req.action == "pin" and not runtime.pins.is_pinned(chat_id, message_id):
        try:
            records = await runtime.client.fetch_messages(chat_id, PIN_LOOKUP_LIMIT)
        except BridgeError:
            logger.exception(
                "pin lookup failed",
                extra={"extra_fields": safe_log_context(chat_hash=hash_identifier(chat_id))},
            )
            raise HTTPException(status_code=500, detail={"error": "Failed to pin/unpin message"}) from None

        raw = next((r for r in records if record_id(r) == message_id), None)
        if raw is not None:
            runtime.pins.pin(chat_id, PinnedMessage.from_message(runtime.normalizer.normalize_record(raw)))
        else:
            logger.info(
                "pin target not among recent messages",
                extra={"extra_fields": safe_log_context(chat_hash=hash_identifier(chat_id))},
            )
    elif req.action == "unpin":
        runtime.pins.unpin(chat_id, message_id)

    return {
        "success": True,
        "pinnedMessages": runtime.pins.list(chat_id),
        "message": f"Message {req.action}ned successfully",
    }


@router.get("/pinned-messages/{chat_id}")
def pinned_messages(chat_id: str, runtime: Runtime = Depends(get_runtime)) -> dict:
    return {"pinnedMessages": runtime.pins.list(chat_id)}

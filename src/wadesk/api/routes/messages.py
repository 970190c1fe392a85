"""Outbound message route.

Security: the request body carries numbers, text and media. None of it is
logged here; the send pipeline logs hashes and sizes only.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from wadesk.api.deps import get_runtime, to_http
from wadesk.domain.errors import WadeskError
from wadesk.runtime import Runtime
from wadesk.whatsapp.outbound import OutboundRequest

router = APIRouter(tags=["messages"])


class SendMessageRequest(BaseModel):
    """Request body for sending text, a voice note or an attachment."""

    number: str | None = None
    message: str | None = None
    audioData: str | None = None
    isVoiceMessage: bool = True
    mimeType: str | None = None
    attachmentData: str | None = None
    attachmentType: str | None = None
    attachmentName: str | None = None
    caption: str | None = None

    def to_outbound(self) -> OutboundRequest:
        return OutboundRequest(
            number=self.number or "",
            text=self.message,
            audio_data=self.audioData,
            is_voice=self.isVoiceMessage,
            mime_type=self.mimeType,
            attachment_data=self.attachmentData,
            attachment_type=self.attachmentType,
            attachment_name=self.attachmentName,
            caption=self.caption,
        )


@router.post("/send-message")
async def send_message(
    req: SendMessageRequest,
    runtime: Runtime = Depends(get_runtime),
) -> dict:
    """Send a message to a number or chat id.

    Returns:
        ``{success, message, method, partial}``.

    Raises:
        HTTPException: 503 if the session is not ready, 400/413 on invalid
            input, 500 with ``lastError``/``attemptedMethods`` when every
            delivery attempt failed.
    """
    try:
        outcome = await runtime.sender.send(req.to_outbound())
    except WadeskError as exc:
        raise to_http(exc) from exc
    return outcome.to_dict()

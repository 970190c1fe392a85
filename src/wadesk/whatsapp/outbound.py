"""Outbound send pipeline.

Text and attachments get a single delivery attempt. Voice notes walk an
ordered list of delivery strategies because the client's acceptance rules
for voice framing are undocumented and vary:

    voice -> audio -> document -> fallback_mime -> text_description -> failure_notice

The first success wins. Each attempt is time-boxed and all of them share one
budget. A timed-out attempt is abandoned, not cancelled: the client may still
deliver it, so a late success can produce a duplicate.

Security: NEVER log numbers, text or media. Only hashes and lengths.
"""

from __future__ import annotations

import asyncio
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from wadesk.domain.errors import DeliveryError, PreconditionError, ValidationError
from wadesk.infra.fanout import MESSAGE_TOPIC
from wadesk.observability.logging import get_logger
from wadesk.observability.redaction import hash_identifier, safe_log_context

from .client import WhatsAppClient
from .media import (
    FALLBACK_AUDIO_MIME,
    MIN_VOICE_BYTES,
    MediaRef,
    clean_payload,
    normalize_voice_mime,
)

logger = get_logger(__name__)

CONTACT_SUFFIX = "@c.us"
ATTEMPT_TIMEOUT = 30.0
TOTAL_TIMEOUT = 120.0

FAILURE_NOTICE = (
    "A voice message was sent to you but could not be delivered. "
    "Please ask the sender to try again."
)

_NUMBER_RE = re.compile(r"^\d{5,20}$")

Content = str | MediaRef
Options = dict[str, Any]


def normalize_number(number: str) -> str:
    """Turn user input into a chat id.

    Bare digits (optionally ``+``-prefixed) get the contact suffix; anything
    already carrying an ``@`` address is kept as-is.

    Raises:
        ValidationError: If a bare value is not all digits.
    """
    candidate = (number or "").strip()
    if "@" in candidate:
        return candidate
    candidate = re.sub(r"[\s\-()]", "", candidate).lstrip("+")
    if not _NUMBER_RE.fullmatch(candidate):
        raise ValidationError("Invalid number. Use digits only with optional '+' prefix.")
    return f"{candidate}{CONTACT_SUFFIX}"


@dataclass(frozen=True)
class OutboundRequest:
    number: str
    text: str | None = None
    audio_data: str | None = None
    is_voice: bool = True
    mime_type: str | None = None
    attachment_data: str | None = None
    attachment_type: str | None = None
    attachment_name: str | None = None
    caption: str | None = None


@dataclass(frozen=True)
class DeliveryOutcome:
    """Uniform result of a send.

    ``partial`` means something reached the recipient, but not the content
    that was asked for (only the failure notice got through).
    """

    method: str
    partial: bool = False
    attempted: tuple[str, ...] = ()
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def message(self) -> str:
        if self.partial:
            return "Voice message could not be delivered; the recipient was notified"
        if self.method == "text":
            return "Message sent successfully"
        return f"Message sent successfully via {self.method}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "partial": self.partial,
            "method": self.method,
            "message": self.message,
        }


@dataclass(frozen=True)
class DeliveryStrategy:
    """One way of framing a voice note for the client."""

    name: str
    build: Callable[[MediaRef], tuple[Content, Options]]


def _describe(media: MediaRef) -> str:
    return f"[Voice message: {media.mime_type}, {media.size_bytes / 1024:.1f} KB]"


VOICE_STRATEGIES: tuple[DeliveryStrategy, ...] = (
    DeliveryStrategy("voice", lambda m: (m, {"sendAudioAsVoice": True})),
    DeliveryStrategy("audio", lambda m: (m, {})),
    DeliveryStrategy("document", lambda m: (m, {"sendMediaAsDocument": True})),
    DeliveryStrategy(
        "fallback_mime",
        lambda m: (m.with_mime_type(FALLBACK_AUDIO_MIME, "voice-message.mp3"), {}),
    ),
    DeliveryStrategy("text_description", lambda m: (_describe(m), {})),
)


class SendPipeline:
    """Validates and delivers outbound messages.

    Args:
        client: External WhatsApp client.
        readiness: Returns ``(is_ready, is_authenticated)`` for the session.
        publish: Optional fan-out publish used to echo sent messages.
        strategies: Voice fallback chain, in order.
    """

    def __init__(
        self,
        client: WhatsAppClient,
        readiness: Callable[[], tuple[bool, bool]],
        *,
        publish: Callable[[str, Any], Any] | None = None,
        attempt_timeout: float = ATTEMPT_TIMEOUT,
        total_timeout: float = TOTAL_TIMEOUT,
        strategies: tuple[DeliveryStrategy, ...] = VOICE_STRATEGIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._readiness = readiness
        self._publish = publish
        self._attempt_timeout = attempt_timeout
        self._total_timeout = total_timeout
        self._strategies = strategies
        self._clock = clock

    async def send(self, req: OutboundRequest) -> DeliveryOutcome:
        """Route a request to the text, attachment or voice path.

        Raises:
            PreconditionError: Session not ready (503) or fields missing (400).
            ValidationError: Malformed or oversized payload.
            DeliveryError: No delivery attempt succeeded.
        """
        is_ready, is_authenticated = self._readiness()
        if not (is_ready and is_authenticated):
            raise PreconditionError.not_ready()
        if not (req.number or "").strip():
            raise PreconditionError("Number is required")
        if not (req.text or req.audio_data or req.attachment_data):
            raise PreconditionError("Message, audio or attachment is required")

        chat_id = normalize_number(req.number)

        if req.audio_data:
            outcome = await self.send_voice(chat_id, req.audio_data, req.mime_type, as_voice=req.is_voice)
            body = None
        elif req.attachment_data:
            outcome = await self.send_attachment(
                chat_id,
                req.attachment_data,
                mime_type=req.attachment_type,
                filename=req.attachment_name,
                caption=req.caption,
            )
            body = req.caption
        else:
            outcome = await self.send_text(chat_id, req.text or "")
            body = req.text

        self._echo(chat_id, body, outcome)
        return outcome

    async def send_text(self, chat_id: str, text: str) -> DeliveryOutcome:
        log_ctx = safe_log_context(to_hash=hash_identifier(chat_id), text_len=len(text))
        try:
            await self._attempt(chat_id, text, {}, self._attempt_timeout)
        except Exception as exc:
            logger.error(
                "text send failed",
                extra={"extra_fields": {**log_ctx, "error_type": type(exc).__name__}},
            )
            raise DeliveryError(
                "Failed to send message", last_error=_describe_error(exc), attempted=["text"]
            ) from exc
        logger.info("text sent", extra={"extra_fields": log_ctx})
        return DeliveryOutcome(method="text", attempted=("text",))

    async def send_attachment(
        self,
        chat_id: str,
        data: str,
        *,
        mime_type: str | None,
        filename: str | None,
        caption: str | None = None,
    ) -> DeliveryOutcome:
        payload = clean_payload(data, label="Attachment")
        media = MediaRef(
            mime_type=mime_type or "application/octet-stream",
            encoded_payload=payload,
            filename=filename,
        )
        options: Options = {"caption": caption} if caption else {}
        log_ctx = safe_log_context(
            to_hash=hash_identifier(chat_id), media_bytes=media.size_bytes, mime_type=media.mime_type
        )
        try:
            await self._attempt(chat_id, media, options, self._attempt_timeout)
        except Exception as exc:
            logger.error(
                "attachment send failed",
                extra={"extra_fields": {**log_ctx, "error_type": type(exc).__name__}},
            )
            raise DeliveryError(
                "Failed to send attachment", last_error=_describe_error(exc), attempted=["attachment"]
            ) from exc
        logger.info("attachment sent", extra={"extra_fields": log_ctx})
        return DeliveryOutcome(method="attachment", attempted=("attachment",))

    async def send_voice(
        self,
        chat_id: str,
        data: str,
        mime_type: str | None,
        *,
        as_voice: bool = True,
    ) -> DeliveryOutcome:
        """Deliver audio through the fallback chain.

        Validation happens before the first attempt; a rejected payload never
        reaches the client.
        """
        normalized_mime, extension = normalize_voice_mime(mime_type)
        payload = clean_payload(data, min_bytes=MIN_VOICE_BYTES, label="Audio")
        media = MediaRef(
            mime_type=normalized_mime,
            encoded_payload=payload,
            filename=f"voice-message.{extension}",
        )

        strategies = self._strategies if as_voice else tuple(s for s in self._strategies if s.name != "voice")
        log_ctx = safe_log_context(
            to_hash=hash_identifier(chat_id), media_bytes=media.size_bytes, mime_type=normalized_mime
        )

        attempted: list[str] = []
        errors: dict[str, str] = {}
        deadline = self._clock() + self._total_timeout

        for strategy in strategies:
            remaining = deadline - self._clock()
            if remaining <= 0:
                logger.warning("voice send budget exhausted", extra={"extra_fields": log_ctx})
                break
            attempted.append(strategy.name)
            content, options = strategy.build(media)
            try:
                await self._attempt(chat_id, content, options, min(self._attempt_timeout, remaining))
            except Exception as exc:
                errors[strategy.name] = _describe_error(exc)
                logger.warning(
                    "voice delivery attempt failed",
                    extra={
                        "extra_fields": {
                            **log_ctx,
                            "method": strategy.name,
                            "error_type": type(exc).__name__,
                        }
                    },
                )
                continue
            logger.info("voice message sent", extra={"extra_fields": {**log_ctx, "method": strategy.name}})
            return DeliveryOutcome(method=strategy.name, attempted=tuple(attempted), errors=errors)

        # Nothing landed; tell the recipient something was lost
        attempted.append("failure_notice")
        try:
            await self._attempt(chat_id, FAILURE_NOTICE, {}, self._attempt_timeout)
        except Exception as exc:
            errors["failure_notice"] = _describe_error(exc)
            logger.error(
                "voice delivery exhausted",
                extra={"extra_fields": {**log_ctx, "attempted": str(len(attempted))}},
            )
            raise DeliveryError(
                "Failed to send voice message",
                last_error=errors["failure_notice"],
                attempted=attempted,
            ) from exc

        logger.warning("voice delivery degraded to failure notice", extra={"extra_fields": log_ctx})
        return DeliveryOutcome(method="failure_notice", partial=True, attempted=tuple(attempted), errors=errors)

    async def _attempt(self, chat_id: str, content: Content, options: Options, timeout: float) -> Any:
        task = asyncio.ensure_future(self._client.send_message(chat_id, content, options))
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout)
        except asyncio.TimeoutError:
            task.add_done_callback(_log_abandoned)
            raise

    def _echo(self, chat_id: str, body: str | None, outcome: DeliveryOutcome) -> None:
        if self._publish is None:
            return
        self._publish(
            MESSAGE_TOPIC,
            {
                "chatId": chat_id,
                "to": chat_id,
                "body": body,
                "fromMe": True,
                "direction": "outbound",
                "timestamp": int(datetime.now(timezone.utc).timestamp()),
                "method": outcome.method,
            },
        )


def _describe_error(exc: BaseException) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return "timed out"
    text = str(exc)
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__


def _log_abandoned(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    if task.exception() is None:
        logger.warning("abandoned delivery attempt completed after timeout")

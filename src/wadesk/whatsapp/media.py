"""Media payloads: validation, MIME normalization and the media cache."""

from __future__ import annotations

import base64
import binascii
import hashlib
import re
from collections import Counter, OrderedDict
from dataclasses import dataclass, field

from wadesk.domain.errors import ValidationError

MAX_MEDIA_BYTES = 50 * 1024 * 1024
MIN_VOICE_BYTES = 100

FALLBACK_AUDIO_MIME = "audio/mpeg"

# Order matters: first substring hit wins
_VOICE_FORMATS = ("webm", "mp4", "wav", "ogg", "mpeg")
_DEFAULT_VOICE_FORMAT = "webm"
_EXTENSIONS = {
    "webm": "webm",
    "mp4": "m4a",
    "wav": "wav",
    "ogg": "ogg",
    "mpeg": "mp3",
}

_DATA_URL_PREFIX = re.compile(r"^data:[^,]*?;base64,", re.IGNORECASE)
_BASE64_ALPHABET = re.compile(r"^[A-Za-z0-9+/]+={0,2}$")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class MediaRef:
    """Inlined media payload.

    ``size_bytes`` and ``digest`` are derived from the decoded payload, so a
    MediaRef whose size disagrees with its payload cannot be built.

    Raises:
        ValidationError: If the payload is not base64, decodes to nothing,
                         or exceeds MAX_MEDIA_BYTES (413).
    """

    mime_type: str
    encoded_payload: str
    filename: str | None = None
    size_bytes: int = field(init=False)
    digest: str = field(init=False)

    def __post_init__(self) -> None:
        raw = decode_base64(self.encoded_payload)
        if not raw:
            raise ValidationError("Media payload decodes to an empty buffer")
        if len(raw) > MAX_MEDIA_BYTES:
            raise ValidationError("Media payload exceeds 50MB", status_code=413)
        object.__setattr__(self, "size_bytes", len(raw))
        object.__setattr__(self, "digest", hashlib.sha256(raw).hexdigest())

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.encoded_payload}"

    def with_mime_type(self, mime_type: str, filename: str | None = None) -> "MediaRef":
        return MediaRef(mime_type=mime_type, encoded_payload=self.encoded_payload, filename=filename or self.filename)

    def to_dict(self) -> dict:
        return {
            "mimeType": self.mime_type,
            "sizeBytes": self.size_bytes,
            "digest": self.digest,
            "filename": self.filename,
        }


def decode_base64(payload: str) -> bytes:
    """Strict base64 decode. Raises ValidationError on bad input."""
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError(f"Invalid base64 payload: {exc}") from exc


def normalize_voice_mime(mime_type: str | None) -> tuple[str, str]:
    """Map a client-provided MIME string onto the voice whitelist.

    Returns:
        ``(mime_type, extension)``; unknown types become ``audio/webm``.
    """
    lowered = (mime_type or "").lower()
    fmt = next((f for f in _VOICE_FORMATS if f in lowered), _DEFAULT_VOICE_FORMAT)
    return f"audio/{fmt}", _EXTENSIONS[fmt]


def clean_payload(data: str | None, *, min_bytes: int = 1, label: str = "Media") -> str:
    """Validate a base64 payload before any delivery attempt.

    Strips a ``data:...;base64,`` prefix and whitespace, then rejects empty,
    non-base64, too-small and too-large payloads. Sizes are checked on the
    decoded length estimate so oversized payloads are refused without being
    decoded.

    Returns:
        The cleaned base64 text.

    Raises:
        ValidationError: 400 for malformed or undersized payloads,
                         413 for payloads above MAX_MEDIA_BYTES.
    """
    payload = _WHITESPACE.sub("", _DATA_URL_PREFIX.sub("", data or "", count=1))
    if not payload:
        raise ValidationError(f"{label} data is empty")
    if not _BASE64_ALPHABET.fullmatch(payload):
        raise ValidationError(f"{label} data is not valid base64")

    decoded_len = len(payload) * 3 // 4 - payload.count("=")
    if decoded_len > MAX_MEDIA_BYTES:
        raise ValidationError(f"{label} data exceeds 50MB", status_code=413)
    if decoded_len < min_bytes:
        raise ValidationError(f"{label} data is too small ({decoded_len} bytes)")

    return payload


_CacheKey = tuple[str, str, str | None]


def _cache_key(media: MediaRef) -> _CacheKey:
    return media.digest, media.mime_type, media.filename


class MediaCache:
    """LRU of downloaded media, keyed by message id.

    Refs are shared between messages only when payload, MIME type and
    filename all match, so the same image forwarded into several chats is
    held once while each message keeps its own framing.
    """

    def __init__(self, max_entries: int = 256) -> None:
        self._max_entries = max(1, int(max_entries))
        self._by_message: OrderedDict[str, _CacheKey] = OrderedDict()
        self._shared: dict[_CacheKey, MediaRef] = {}
        self._refs: Counter[_CacheKey] = Counter()

    def __len__(self) -> int:
        return len(self._by_message)

    def get(self, message_id: str) -> MediaRef | None:
        key = self._by_message.get(message_id)
        if key is None:
            return None
        self._by_message.move_to_end(message_id)
        return self._shared[key]

    def put(self, message_id: str, media: MediaRef) -> MediaRef:
        """Store media for a message; returns the shared ref for its framing."""
        previous = self._by_message.pop(message_id, None)
        if previous is not None:
            self._release(previous)

        key = _cache_key(media)
        shared = self._shared.setdefault(key, media)
        self._by_message[message_id] = key
        self._refs[key] += 1

        while len(self._by_message) > self._max_entries:
            _, evicted = self._by_message.popitem(last=False)
            self._release(evicted)
        return shared

    def _release(self, key: _CacheKey) -> None:
        self._refs[key] -= 1
        if self._refs[key] <= 0:
            del self._refs[key]
            self._shared.pop(key, None)

"""Redaction helpers for safe logging.

Chat ids embed phone numbers (``15551234567@c.us``), message bodies are
private and media arrives as base64 text, so anything that came from the
messaging client passes through here before it reaches a log line.
"""

import hashlib
import re
from typing import Any

_JID_PATTERN = re.compile(r"[\w.+-]+@(?:c\.us|g\.us|s\.whatsapp\.net|lid)\b")
_PHONE_PATTERN = re.compile(r"\+?\d[\d\s\-()]{8,}\d")
_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

_REDACTED = "[REDACTED]"

# Longer strings are payloads (base64 media, message text), never identifiers
MAX_LOGGED_STRING = 200


def hash_identifier(value: str) -> str:
    """Stable, non-reversible tag for a chat or message id (sha256, 12 hex chars)."""
    return hashlib.sha256(value.encode()).hexdigest()[:12]


def redact_string(value: str) -> str:
    """Mask WhatsApp ids, phone numbers and emails."""
    result = _JID_PATTERN.sub(_REDACTED, value)
    result = _PHONE_PATTERN.sub(_REDACTED, result)
    return _EMAIL_PATTERN.sub(_REDACTED, result)


def redact_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        if len(value) > MAX_LOGGED_STRING:
            return f"str(len={len(value)})"
        return redact_string(value)
    if isinstance(value, (bytes, bytearray)):
        return f"bytes(len={len(value)})"
    if isinstance(value, dict):
        # structure only
        return f"dict(keys={sorted(str(k) for k in value)})"
    if isinstance(value, (list, tuple, set, frozenset)):
        return f"list(len={len(value)})"
    return f"<{type(value).__name__}>"


def safe_log_context(**kwargs: Any) -> dict[str, str]:
    """Build an ``extra_fields`` dict with every value redacted."""
    return {key: redact_value(value) for key, value in kwargs.items()}

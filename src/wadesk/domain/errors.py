"""Error taxonomy shared by the send pipeline, pager and routes.

Each error carries the HTTP status it maps to; routes translate them into
``HTTPException`` without inspecting messages.
"""

from __future__ import annotations

from typing import Any


class WadeskError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_detail(self) -> dict[str, Any]:
        return {"error": self.message}


class PreconditionError(WadeskError):
    """Session not ready, or a required request field is missing.

    Never retried automatically.
    """

    status_code = 400

    @classmethod
    def not_ready(cls) -> "PreconditionError":
        return cls("WhatsApp client is not ready", status_code=503)


class ValidationError(WadeskError):
    """Malformed payload encoding or oversized media."""

    status_code = 400


class NotFoundError(WadeskError):
    """Unknown chat id."""

    status_code = 404


class DeliveryError(WadeskError):
    """Every delivery attempt failed.

    Attributes:
        last_error: Description of the last underlying failure.
        attempted: Delivery methods tried, in order.
    """

    status_code = 500

    def __init__(self, message: str, *, last_error: str | None = None, attempted: list[str] | None = None) -> None:
        super().__init__(message)
        self.last_error = last_error
        self.attempted = list(attempted or [])

    def to_detail(self) -> dict[str, Any]:
        return {
            "error": self.message,
            "lastError": self.last_error,
            "attemptedMethods": self.attempted,
        }

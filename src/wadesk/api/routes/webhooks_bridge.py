"""Bridge webhook: lifecycle and message events from the whatsapp-web.js sidecar.

Security:
- Authenticated with the shared ``X-Webhook-Secret`` header (fail-closed)
- Payload content (numbers, bodies, media) is never logged
"""

from __future__ import annotations

import hmac
from typing import Any

from fastapi import APIRouter, Header, Request, Response

from wadesk.observability.correlation import get_correlation_id
from wadesk.observability.logging import get_logger
from wadesk.observability.redaction import safe_log_context

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

logger = get_logger(__name__)


@router.post("/bridge")
async def bridge_webhook(
    request: Request,
    x_webhook_secret: str | None = Header(None, alias="X-Webhook-Secret"),
) -> Response:
    """Receive one ``{"event", "data"}`` envelope from the bridge.

    Returns:
        200 OK if applied, 202 Accepted for unknown events,
        400 on invalid JSON or envelope shape,
        401 on secret mismatch (or no secret configured outside local),
        500 if applying the event failed.
    """
    runtime = request.app.state.runtime
    settings = runtime.settings
    correlation_id = get_correlation_id()

    expected_secret = settings.webhook_secret
    if not expected_secret:
        if settings.is_local:
            logger.warning(
                "WADESK_WEBHOOK_SECRET not set - skipping validation (local dev)",
                extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
            )
        else:
            logger.error(
                "WADESK_WEBHOOK_SECRET not configured - rejecting webhook (fail-closed)",
                extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
            )
            return Response(status_code=401, content="unauthorized")
    elif not x_webhook_secret or not hmac.compare_digest(x_webhook_secret, expected_secret):
        logger.warning(
            "bridge webhook secret mismatch",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=401, content="unauthorized")

    try:
        payload: Any = await request.json()
    except ValueError:
        logger.warning(
            "invalid json body",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=400, content="invalid json")

    event = payload.get("event") if isinstance(payload, dict) else None
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(event, str) or not event:
        return Response(status_code=400, content="invalid payload shape")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return Response(status_code=400, content="invalid payload shape")

    try:
        applied = await runtime.handle_event(event, data)
    except Exception:
        logger.exception(
            "bridge event failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id, event=event)},
        )
        return Response(status_code=500, content="event failed")

    logger.info(
        "bridge event received",
        extra={"extra_fields": safe_log_context(correlationId=correlation_id, event=event, applied=applied)},
    )
    return Response(status_code=200 if applied else 202, content="ok" if applied else "ignored")

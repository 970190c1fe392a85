"""Realtime push channel.

Each websocket is one fan-out observer. Frames are ``{"event", "data"}`` JSON
objects; the current status (and pending QR, if any) is replayed on connect.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from wadesk.observability.logging import get_logger
from wadesk.observability.redaction import safe_log_context

router = APIRouter(tags=["realtime"])

logger = get_logger(__name__)


@router.websocket("/ws")
async def realtime(websocket: WebSocket) -> None:
    runtime = websocket.app.state.runtime
    await websocket.accept()

    async def push(topic: str, payload: Any) -> None:
        await websocket.send_json({"event": topic, "data": payload})

    sub = runtime.hub.register(push)
    try:
        # inbound frames are ignored; receiving only detects the disconnect
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect as exc:
        logger.info(
            "realtime client disconnected",
            extra={"extra_fields": safe_log_context(subscription=sub.id, code=exc.code)},
        )
    finally:
        runtime.hub.unregister(sub)

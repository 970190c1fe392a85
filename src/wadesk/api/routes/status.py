"""Session status and restart."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from wadesk.api.deps import get_runtime
from wadesk.observability.logging import get_logger
from wadesk.observability.redaction import safe_log_context
from wadesk.runtime import Runtime

router = APIRouter(tags=["session"])

logger = get_logger(__name__)


@router.get("/status")
def get_status(runtime: Runtime = Depends(get_runtime)) -> dict:
    """Current session snapshot; ``qrCode`` is set only while pairing."""
    return runtime.session.snapshot().to_status()


@router.post("/session/restart")
async def restart_session(runtime: Runtime = Depends(get_runtime)) -> dict:
    """Schedule a client re-initialization and return the snapshot as it stands."""
    logger.info(
        "session restart requested",
        extra={"extra_fields": safe_log_context(state=runtime.session.state.value)},
    )
    runtime.schedule_initialize()
    return runtime.session.snapshot().to_status()

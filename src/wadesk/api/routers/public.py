"""Unauthenticated liveness route."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from wadesk.api.deps import get_runtime
from wadesk.runtime import Runtime

router = APIRouter(tags=["public"])


@router.get("/health")
def health(runtime: Runtime = Depends(get_runtime)) -> dict:
    """Health check endpoint. Always 200 while the process serves requests."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "whatsapp": runtime.session.snapshot().to_status(),
    }

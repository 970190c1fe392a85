"""Shared route dependencies."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request

from wadesk.domain.errors import PreconditionError, WadeskError
from wadesk.runtime import Runtime


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


def require_ready(runtime: Runtime = Depends(get_runtime)) -> Runtime:
    """Reject with 503 unless the session is READY and authenticated."""
    session = runtime.session
    if not (session.is_ready and session.is_authenticated):
        raise to_http(PreconditionError.not_ready())
    return runtime


def to_http(exc: WadeskError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())

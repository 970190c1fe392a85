"""Connection/session state machine for the external WhatsApp client.

    INITIALIZING -> QR_PENDING -> AUTHENTICATED -> READY
          ^              |              |           |
          |              v              v           v
          +------ AUTH_FAILURE / DISCONNECTED <-----+

``is_authenticated`` and ``is_ready`` are derived from the state. Every
transition publishes a status snapshot; QR changes publish on the ``qr``
topic. Transitions are synchronous so a snapshot is never observed half
updated.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from wadesk.infra.fanout import LOADING_TOPIC, QR_TOPIC, STATUS_TOPIC
from wadesk.observability.logging import get_logger
from wadesk.observability.redaction import safe_log_context

logger = get_logger(__name__)

Publisher = Callable[[str, Any], Any]

_UNSET: Any = object()


class ConnectionState(str, Enum):
    INITIALIZING = "INITIALIZING"
    QR_PENDING = "QR_PENDING"
    AUTHENTICATED = "AUTHENTICATED"
    READY = "READY"
    AUTH_FAILURE = "AUTH_FAILURE"
    DISCONNECTED = "DISCONNECTED"


# External states meaning another session took over the account
FORCED_LOGOUT_STATES = frozenset({"CONFLICT", "UNLAUNCHED"})

_EXPECTED: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.INITIALIZING: frozenset(
        {
            ConnectionState.QR_PENDING,
            ConnectionState.AUTHENTICATED,
            ConnectionState.READY,
            ConnectionState.AUTH_FAILURE,
            ConnectionState.DISCONNECTED,
        }
    ),
    ConnectionState.QR_PENDING: frozenset(
        {
            ConnectionState.QR_PENDING,
            ConnectionState.AUTHENTICATED,
            ConnectionState.AUTH_FAILURE,
            ConnectionState.DISCONNECTED,
        }
    ),
    ConnectionState.AUTHENTICATED: frozenset(
        {ConnectionState.READY, ConnectionState.AUTH_FAILURE, ConnectionState.DISCONNECTED}
    ),
    ConnectionState.READY: frozenset({ConnectionState.DISCONNECTED}),
    ConnectionState.AUTH_FAILURE: frozenset({ConnectionState.DISCONNECTED}),
    ConnectionState.DISCONNECTED: frozenset(),
}


@dataclass(frozen=True)
class SessionSnapshot:
    state: ConnectionState
    is_authenticated: bool
    is_ready: bool
    qr_code: str | None
    last_error: str | None
    external_state: str | None

    def to_status(self) -> dict[str, Any]:
        """Payload for ``GET /status`` and the ``status`` topic."""
        return {
            "isAuthenticated": self.is_authenticated,
            "isReady": self.is_ready,
            "qrCode": self.qr_code,
            "connectionState": self.state.value,
            "lastError": self.last_error,
        }


def _noop_publish(topic: str, payload: Any) -> None:
    return None


class SessionStateMachine:
    """Tracks the client lifecycle from its inbound lifecycle events.

    Args:
        publish: Fan-out publish callable ``(topic, payload)``.
        qr_renderer: Turns the raw pairing string into the payload shown to
                     users (an SVG data URL by default).
    """

    def __init__(
        self,
        publish: Publisher | None = None,
        qr_renderer: Callable[[str], str] | None = None,
    ) -> None:
        if qr_renderer is None:
            from wadesk.whatsapp.qr import qr_svg_data_url

            qr_renderer = qr_svg_data_url
        self._publish = publish or _noop_publish
        self._render_qr = qr_renderer
        self._state = ConnectionState.INITIALIZING
        self._qr: str | None = None
        self._last_error: str | None = None
        self._external_state: str | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_authenticated(self) -> bool:
        return self._state in (ConnectionState.AUTHENTICATED, ConnectionState.READY)

    @property
    def is_ready(self) -> bool:
        return self._state is ConnectionState.READY

    @property
    def pending_qr(self) -> str | None:
        return self._qr

    @property
    def last_error(self) -> str | None:
        return self._last_error

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            state=self._state,
            is_authenticated=self.is_authenticated,
            is_ready=self.is_ready,
            qr_code=self._qr,
            last_error=self._last_error,
            external_state=self._external_state,
        )

    # -- lifecycle events -------------------------------------------------

    def begin_initialization(self) -> None:
        """Client (re)initialization started."""
        self._transition(ConnectionState.INITIALIZING, qr=None, forced=True)

    def initialization_failed(self, error: str) -> None:
        """Initialization raised; stay INITIALIZING so a retry is accepted."""
        logger.error(
            "client initialization failed",
            extra={"extra_fields": safe_log_context(state=self._state.value)},
        )
        self._last_error = error
        self._transition(ConnectionState.INITIALIZING, forced=True)

    def on_qr(self, raw_qr: str) -> None:
        self._transition(ConnectionState.QR_PENDING, qr=self._render_qr(raw_qr))

    def on_authenticated(self) -> None:
        self._last_error = None
        self._transition(ConnectionState.AUTHENTICATED, qr=None)

    def on_auth_failure(self, reason: str | None = None) -> None:
        self._last_error = reason or "authentication failed"
        self._transition(ConnectionState.AUTH_FAILURE, qr=None)

    def on_ready(self) -> None:
        self._last_error = None
        self._transition(ConnectionState.READY, qr=None)

    def on_state_changed(self, external_state: str | None) -> None:
        """Raw state string reported by the client (CONNECTED, CONFLICT, ...)."""
        value = (external_state or "").upper()
        self._external_state = value or None
        if value in FORCED_LOGOUT_STATES:
            logger.warning(
                "session taken over elsewhere",
                extra={"extra_fields": safe_log_context(external_state=value)},
            )
            self._last_error = f"session state {value}"
            self._transition(ConnectionState.DISCONNECTED, qr=None, forced=True)
            return
        self._publish(STATUS_TOPIC, self.snapshot().to_status())

    def on_disconnected(self, reason: str | None = None) -> None:
        self._last_error = reason or self._last_error
        self._transition(ConnectionState.DISCONNECTED, qr=None, forced=True)

    def on_loading(self, percent: Any, message: str | None = None) -> None:
        self._publish(LOADING_TOPIC, {"percent": percent, "message": message})

    # -- internals --------------------------------------------------------

    def _transition(self, target: ConnectionState, *, qr: Any = _UNSET, forced: bool = False) -> None:
        previous = self._state
        if not forced and target not in _EXPECTED[previous]:
            logger.warning(
                "unexpected session transition",
                extra={"extra_fields": safe_log_context(previous=previous.value, target=target.value)},
            )

        qr_changed = qr is not _UNSET and qr != self._qr
        self._state = target
        if qr is not _UNSET:
            self._qr = qr

        logger.info(
            "session transition",
            extra={"extra_fields": safe_log_context(previous=previous.value, state=target.value)},
        )

        if qr_changed:
            self._publish(QR_TOPIC, self._qr)
        self._publish(STATUS_TOPIC, self.snapshot().to_status())

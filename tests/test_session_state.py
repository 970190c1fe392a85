"""Session state machine tests."""

import base64

from wadesk.domain.session import ConnectionState, SessionStateMachine
from wadesk.infra.fanout import LOADING_TOPIC, QR_TOPIC, STATUS_TOPIC
from wadesk.whatsapp.qr import qr_svg_data_url


def _machine():
    published = []
    machine = SessionStateMachine(
        publish=lambda topic, payload: published.append((topic, payload)),
        qr_renderer=lambda raw: f"qr:{raw}",
    )
    return machine, published


def _topics(published):
    return [topic for topic, _ in published]


class TestLifecycle:
    def test_starts_initializing_and_not_ready(self):
        machine, _ = _machine()
        assert machine.state is ConnectionState.INITIALIZING
        assert not machine.is_ready
        assert not machine.is_authenticated
        assert machine.pending_qr is None

    def test_qr_then_authenticated_then_ready(self):
        machine, published = _machine()

        machine.on_qr("pairing-1")
        assert machine.state is ConnectionState.QR_PENDING
        assert machine.pending_qr == "qr:pairing-1"

        machine.on_authenticated()
        assert machine.is_authenticated
        assert not machine.is_ready
        assert machine.pending_qr is None

        machine.on_ready()
        assert machine.is_ready
        assert machine.snapshot().to_status() == {
            "isAuthenticated": True,
            "isReady": True,
            "qrCode": None,
            "connectionState": "READY",
            "lastError": None,
        }
        assert published[0] == (QR_TOPIC, "qr:pairing-1")
        assert _topics(published).count(STATUS_TOPIC) == 3

    def test_new_qr_replaces_pending(self):
        machine, published = _machine()
        machine.on_qr("a")
        machine.on_qr("b")
        assert machine.pending_qr == "qr:b"
        assert [p for t, p in published if t == QR_TOPIC] == ["qr:a", "qr:b"]

    def test_auth_failure_records_reason_and_clears_qr(self):
        machine, _ = _machine()
        machine.on_qr("a")
        machine.on_auth_failure("bad session")
        assert machine.state is ConnectionState.AUTH_FAILURE
        assert machine.last_error == "bad session"
        assert machine.pending_qr is None
        assert not machine.is_authenticated

    def test_disconnect_clears_readiness(self):
        machine, _ = _machine()
        machine.on_authenticated()
        machine.on_ready()
        machine.on_disconnected("NAVIGATION")
        assert machine.state is ConnectionState.DISCONNECTED
        assert not machine.is_ready
        assert not machine.is_authenticated
        assert machine.last_error == "NAVIGATION"

    def test_restart_after_disconnect(self):
        machine, _ = _machine()
        machine.on_disconnected()
        machine.begin_initialization()
        assert machine.state is ConnectionState.INITIALIZING

    def test_initialization_failure_stays_retryable(self):
        machine, published = _machine()
        machine.begin_initialization()
        machine.initialization_failed("RuntimeError: browser crashed")
        assert machine.state is ConnectionState.INITIALIZING
        assert machine.last_error == "RuntimeError: browser crashed"
        assert published[-1][1]["lastError"] == "RuntimeError: browser crashed"

        machine.on_qr("again")
        assert machine.state is ConnectionState.QR_PENDING


class TestExternalState:
    def test_conflict_forces_disconnect(self):
        machine, _ = _machine()
        machine.on_authenticated()
        machine.on_ready()
        machine.on_state_changed("CONFLICT")
        assert machine.state is ConnectionState.DISCONNECTED
        assert machine.snapshot().external_state == "CONFLICT"

    def test_unlaunched_forces_disconnect(self):
        machine, _ = _machine()
        machine.on_ready()
        machine.on_state_changed("unlaunched")
        assert machine.state is ConnectionState.DISCONNECTED

    def test_other_states_only_publish_status(self):
        machine, published = _machine()
        machine.on_authenticated()
        machine.on_ready()
        published.clear()
        machine.on_state_changed("CONNECTED")
        assert machine.is_ready
        assert _topics(published) == [STATUS_TOPIC]


def test_loading_progress_published():
    machine, published = _machine()
    machine.on_loading(42, "WhatsApp")
    assert published == [(LOADING_TOPIC, {"percent": 42, "message": "WhatsApp"})]
    assert machine.state is ConnectionState.INITIALIZING


def test_default_renderer_produces_svg_data_url():
    machine = SessionStateMachine()
    machine.on_qr("2@abcdef,ghijk,lmnop")
    assert machine.pending_qr.startswith("data:image/svg+xml;base64,")


def test_qr_svg_has_dark_modules():
    url = qr_svg_data_url("2@abcdef")
    svg = base64.b64decode(url.split(",", 1)[1]).decode("utf-8")
    assert svg.startswith("<svg")
    assert "<rect x=" in svg

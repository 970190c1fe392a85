"""Shared test helpers for wadesk tests.

These are NOT fixtures - they are regular functions and classes imported by
conftest.py and individual test files.
"""

from __future__ import annotations

import asyncio
import base64
import time
from typing import Any

from wadesk.infra.settings import Settings
from wadesk.runtime import Runtime
from wadesk.whatsapp.client import BridgeError
from wadesk.whatsapp.media import MediaRef

CONTACT = "15551234567@c.us"
GROUP = "120363000000000001@g.us"


def b64(size: int, fill: bytes = b"a") -> str:
    """Base64 text that decodes to ``size`` bytes."""
    return base64.b64encode(fill * size).decode("ascii")


def make_record(
    msg_id: str,
    timestamp: int,
    *,
    chat_id: str = CONTACT,
    from_me: bool = False,
    body: str | None = None,
    kind: str = "chat",
    has_media: bool = False,
    author: str | None = None,
    is_group: bool = False,
) -> dict[str, Any]:
    """Raw message record shaped like the bridge reports it."""
    me = "15550000000@c.us"
    record: dict[str, Any] = {
        "id": {"_serialized": msg_id},
        "timestamp": timestamp,
        "from": me if from_me else chat_id,
        "to": chat_id if from_me else me,
        "fromMe": from_me,
        "body": body if body is not None else f"body {msg_id}",
        "type": kind,
        "hasMedia": has_media,
    }
    if is_group:
        record["isGroupMsg"] = True
        if author:
            record["author"] = author
    return record


def make_history(count: int, *, chat_id: str = CONTACT, start: int = 1000) -> list[dict[str, Any]]:
    """``count`` records with ids m1..mN and strictly increasing timestamps."""
    return [make_record(f"m{i}", start + i, chat_id=chat_id) for i in range(1, count + 1)]


class FakeClient:
    """In-memory WhatsAppClient.

    ``history`` is stored oldest-first; ``fetch_messages`` returns the most
    recent ``limit`` records in ``order`` ("newest" or "oldest" first).
    """

    def __init__(self) -> None:
        self.chats: dict[str, dict[str, Any]] = {}
        self.history: dict[str, list[dict[str, Any]]] = {}
        self.contacts: list[dict[str, Any]] = []
        self.media: dict[str, dict[str, Any]] = {}
        self.profile_pics: dict[str, str] = {}
        self.contact_pics: dict[str, str] = {}
        self.order = "newest"
        self.sent: list[tuple[str, Any, dict[str, Any]]] = []
        self.fetch_calls: list[tuple[str, int]] = []
        self.download_calls: list[str] = []
        # send behaviour, consumed per attempt: an Exception to raise,
        # a float to sleep before succeeding, or None to succeed
        self.send_script: list[Any] = []
        self.seen_result = True
        self.fail_fetch_for: set[str] = set()
        self.initialize_error: Exception | None = None
        self.initialized = 0
        self.destroyed = False

    def add_chat(self, chat_id: str, records: list[dict[str, Any]] | None = None, **fields: Any) -> None:
        self.chats[chat_id] = {"id": {"_serialized": chat_id}, "name": fields.pop("name", "Chat"), **fields}
        self.history[chat_id] = list(records or [])

    async def initialize(self) -> None:
        self.initialized += 1
        if self.initialize_error is not None:
            raise self.initialize_error

    async def destroy(self) -> None:
        self.destroyed = True

    async def get_chats(self) -> list[dict[str, Any]]:
        return list(self.chats.values())

    async def get_chat(self, chat_id: str) -> dict[str, Any] | None:
        return self.chats.get(chat_id)

    async def get_contacts(self) -> list[dict[str, Any]]:
        return list(self.contacts)

    async def fetch_messages(self, chat_id: str, limit: int) -> list[dict[str, Any]]:
        self.fetch_calls.append((chat_id, limit))
        if chat_id in self.fail_fetch_for:
            raise BridgeError("fetch failed")
        recent = self.history.get(chat_id, [])[-limit:]
        return list(reversed(recent)) if self.order == "newest" else list(recent)

    async def download_media(self, chat_id: str, message_id: str) -> dict[str, Any] | None:
        self.download_calls.append(message_id)
        return self.media.get(message_id)

    async def send_message(self, chat_id: str, content: Any, options: dict[str, Any] | None = None) -> dict:
        step = self.send_script.pop(0) if self.send_script else None
        if isinstance(step, BaseException):
            raise step
        if isinstance(step, (int, float)):
            await asyncio.sleep(step)
        self.sent.append((chat_id, content, dict(options or {})))
        return {"id": {"_serialized": f"sent-{len(self.sent)}"}}

    async def get_chat_profile_pic_url(self, chat_id: str) -> str | None:
        return self.profile_pics.get(chat_id)

    async def get_contact_profile_pic_url(self, contact_id: str) -> str | None:
        return self.contact_pics.get(contact_id)

    async def send_seen(self, chat_id: str) -> bool:
        return self.seen_result


def wait_until(predicate, timeout: float = 2.0) -> bool:
    """Poll ``predicate`` while a TestClient portal loop runs in its thread."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def make_runtime(client: FakeClient | None = None, *, http_client: Any = None, **settings: Any) -> Runtime:
    """Runtime around a FakeClient with a stub QR renderer."""
    settings.setdefault("reinit_delay", 0.0)
    settings.setdefault("webhook_secret", "test-secret")
    return Runtime(
        client or FakeClient(),
        Settings(**settings),
        http_client=http_client,
        qr_renderer=lambda raw: f"qr:{raw}",
    )


def make_ready(runtime: Runtime) -> Runtime:
    runtime.session.on_authenticated()
    runtime.session.on_ready()
    return runtime


def is_media(content: Any) -> bool:
    return isinstance(content, MediaRef)


class LogRecorder:
    """Simple recorder to capture log calls deterministically."""

    def __init__(self):
        self.calls: list[tuple[str, tuple, dict]] = []

    def _record(self, level: str, *args, **kwargs):
        self.calls.append((level, args, kwargs))

    def info(self, *args, **kwargs):
        self._record("info", *args, **kwargs)

    def warning(self, *args, **kwargs):
        self._record("warning", *args, **kwargs)

    def error(self, *args, **kwargs):
        self._record("error", *args, **kwargs)

    def exception(self, *args, **kwargs):
        self._record("exception", *args, **kwargs)

    def get_all_logged_content(self) -> str:
        return " ".join(f"{args} {kwargs}" for _, args, kwargs in self.calls)

    def messages(self, level: str | None = None) -> list[str]:
        return [args[0] for lvl, args, _ in self.calls if level is None or lvl == level]

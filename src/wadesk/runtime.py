"""Process-wide state container.

One ``Runtime`` per app: the external client, session state machine, event
hub, pinned messages and media cache. Route handlers receive it through a
FastAPI dependency instead of reaching for module globals, so tests can build
an app around an in-memory client.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from typing import Any

import httpx

from wadesk.domain.history import HistoryPager
from wadesk.domain.pins import PinRegistry
from wadesk.domain.session import SessionStateMachine
from wadesk.infra.fanout import MESSAGE_TOPIC, STATUS_TOPIC, EventHub
from wadesk.infra.settings import Settings
from wadesk.observability.correlation import correlation_scope
from wadesk.observability.logging import get_logger
from wadesk.observability.redaction import safe_log_context
from wadesk.whatsapp.client import WhatsAppClient
from wadesk.whatsapp.media import MediaCache
from wadesk.whatsapp.normalizer import MessageNormalizer
from wadesk.whatsapp.outbound import SendPipeline

logger = get_logger(__name__)


class Runtime:
    """Holds and wires every stateful collaborator.

    Args:
        client: External WhatsApp client.
        settings: Process settings.
        http_client: Client used to proxy profile pictures.
        qr_renderer: Override how pairing strings are rendered for users.
    """

    def __init__(
        self,
        client: WhatsAppClient,
        settings: Settings,
        *,
        http_client: httpx.AsyncClient | None = None,
        qr_renderer: Callable[[str], str] | None = None,
    ) -> None:
        self.client = client
        self.settings = settings
        self.hub = EventHub()
        self.session = SessionStateMachine(publish=self.hub.publish, qr_renderer=qr_renderer)
        # newcomers get a status even before the first lifecycle event
        self.hub.publish(STATUS_TOPIC, self.session.snapshot().to_status())
        self.pins = PinRegistry()
        self.media_cache = MediaCache(settings.media_cache_size)
        self.normalizer = MessageNormalizer(client, self.media_cache)
        self.pager = HistoryPager(client, self.normalizer)
        self.sender = SendPipeline(
            client,
            lambda: (self.session.is_ready, self.session.is_authenticated),
            publish=self.hub.publish,
            attempt_timeout=settings.attempt_timeout,
            total_timeout=settings.send_timeout,
        )
        self.http = http_client or httpx.AsyncClient(timeout=settings.bridge_timeout, follow_redirects=True)
        self._init_task: asyncio.Task[None] | None = None

    async def initialize(self) -> None:
        """(Re)start the external client. Failures leave a retryable state."""
        self.session.begin_initialization()
        try:
            await self.client.initialize()
        except Exception as exc:
            logger.exception("whatsapp client initialization failed")
            self.session.initialization_failed(f"{type(exc).__name__}: {exc}")

    def schedule_initialize(self, delay: float = 0.0) -> asyncio.Task[None]:
        """Start initialization in the background unless one is in flight."""
        if self._init_task is not None and not self._init_task.done():
            return self._init_task

        async def _run() -> None:
            if delay > 0:
                await asyncio.sleep(delay)
            with correlation_scope():
                await self.initialize()

        self._init_task = asyncio.get_running_loop().create_task(_run())
        return self._init_task

    async def handle_event(self, event: str, data: dict[str, Any]) -> bool:
        """Apply one lifecycle/message event reported by the client.

        Returns:
            False if the event name is not recognised.
        """
        session = self.session
        if event == "qr":
            session.on_qr(str(data.get("qr") or ""))
        elif event == "authenticated":
            session.on_authenticated()
        elif event == "auth_failure":
            session.on_auth_failure(data.get("message"))
        elif event == "ready":
            session.on_ready()
        elif event == "change_state":
            session.on_state_changed(data.get("state"))
        elif event == "loading_screen":
            session.on_loading(data.get("percent"), data.get("message"))
        elif event == "disconnected":
            session.on_disconnected(data.get("reason"))
            if self.settings.reinit_delay > 0:
                self.schedule_initialize(self.settings.reinit_delay)
        elif event == "message":
            raw = data.get("message") or data
            message = await self.normalizer.normalize(raw)
            self.hub.publish(MESSAGE_TOPIC, message.to_dict())
        else:
            logger.info("ignoring unknown client event", extra={"extra_fields": safe_log_context(event=event)})
            return False
        return True

    async def shutdown(self) -> None:
        if self._init_task is not None and not self._init_task.done():
            self._init_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._init_task
        self.hub.close()
        try:
            await self.client.destroy()
        except Exception:
            logger.exception("whatsapp client shutdown failed")
        await self.http.aclose()

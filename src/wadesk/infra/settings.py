"""Process configuration loaded from the environment.

All knobs are plain environment variables; there is no config file. Values are
read once into a frozen ``Settings`` when the app is created, so tests can
build an app with explicit settings instead of patching ``os.environ``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

DEFAULT_BRIDGE_URL = "http://localhost:3001"


@dataclass(frozen=True)
class Settings:
    """Runtime settings.

    Attributes:
        bridge_url: Base URL of the whatsapp-web.js bridge sidecar.
        bridge_api_key: Token sent to the bridge as the ``apikey`` header.
        bridge_timeout: HTTP timeout (seconds) for bridge calls.
        webhook_secret: Shared secret the bridge sends in ``X-Webhook-Secret``.
        environment: ``local`` relaxes the webhook secret check when unset.
        reinit_delay: Seconds to wait before re-initializing after a
                      disconnect. ``0`` disables automatic re-initialization.
        send_timeout: Shared budget (seconds) for the voice fallback chain.
        attempt_timeout: Time box (seconds) for a single delivery attempt.
        media_cache_size: Max entries kept by the media cache.
    """

    bridge_url: str = DEFAULT_BRIDGE_URL
    bridge_api_key: str = ""
    bridge_timeout: float = 30.0
    webhook_secret: str = ""
    environment: str = "production"
    reinit_delay: float = 5.0
    send_timeout: float = 120.0
    attempt_timeout: float = 30.0
    media_cache_size: int = 256

    @property
    def is_local(self) -> bool:
        return self.environment == "local"


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be a number, got {raw!r}") from None


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from environment variables.

    Args:
        env: Mapping to read from. Defaults to ``os.environ``.

    Raises:
        RuntimeError: If a numeric variable cannot be parsed.
    """
    env = os.environ if env is None else env

    return Settings(
        bridge_url=(env.get("WADESK_BRIDGE_URL") or DEFAULT_BRIDGE_URL).rstrip("/"),
        bridge_api_key=env.get("WADESK_BRIDGE_API_KEY", ""),
        bridge_timeout=_float(env, "WADESK_BRIDGE_TIMEOUT_SECONDS", 30.0),
        webhook_secret=env.get("WADESK_WEBHOOK_SECRET", ""),
        environment=env.get("WADESK_ENV", "production"),
        reinit_delay=_float(env, "WADESK_REINIT_DELAY_SECONDS", 5.0),
        send_timeout=_float(env, "WADESK_SEND_TIMEOUT_SECONDS", 120.0),
        attempt_timeout=_float(env, "WADESK_ATTEMPT_TIMEOUT_SECONDS", 30.0),
        media_cache_size=int(_float(env, "WADESK_MEDIA_CACHE_SIZE", 256)),
    )

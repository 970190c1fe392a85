"""ASGI entry point and ``wadesk`` console script."""

from __future__ import annotations

import argparse

import uvicorn

from wadesk.observability.logging import configure_logging

from .factory import create_app


def main() -> None:
    parser = argparse.ArgumentParser(description="WhatsApp web front-end service")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=3000)
    parser.add_argument("--log-level", default="info")
    args = parser.parse_args()

    configure_logging(args.log_level)

    uvicorn.run(
        "wadesk.api.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()

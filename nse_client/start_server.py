"""
Helper entrypoint that resolves the deployment port before booting uvicorn.

Some hosting providers invoke the start command without shell expansion, so
expressions like ``--port $PORT`` end up passing the literal string ``"$PORT"``
to uvicorn.  This module reads the environment directly and falls back to a
default when the value is malformed.
"""

from __future__ import annotations

import logging
import os

import uvicorn

from .logging_setup import setup_logging


logger = logging.getLogger(__name__)


def resolve_port(default: int = 8000) -> int:
    """Return the port uvicorn should bind to, guarding against bad inputs."""
    raw = os.environ.get("PORT")
    if raw is None or raw == "":
        return default
    try:
        port = int(raw)
        if port <= 0:
            raise ValueError("Port must be positive")
        return port
    except (TypeError, ValueError):
        logger.warning("Invalid PORT=%r; falling back to %d", raw, default)
        return default


def main() -> None:
    setup_logging()
    port = resolve_port()
    host = os.environ.get("HOST", "0.0.0.0")
    logger.info("Starting NSE option chain service", extra={"host": host, "port": port})
    uvicorn.run("nse_client.server:app", host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()

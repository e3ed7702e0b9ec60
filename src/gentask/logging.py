"""Logging configuration for gentask."""

from __future__ import annotations

import logging
import os

import structlog


def configure_logging(level: str | int | None = None) -> None:
    """Configure stdlib logging and structlog JSON rendering.

    ``level`` defaults to ``LOG_LEVEL`` from the environment. httpx's own
    per-request INFO lines are silenced; vendor traffic is captured by the
    task HTTP logger instead.
    """
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

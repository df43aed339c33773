"""structlog configuration shared by the CLI and the web app."""

from __future__ import annotations

import logging

import structlog

_configured_level: int | None = None


def configure_logging(level: str | int = "INFO") -> None:
    """Configure structlog once per process; later calls only change the level."""

    global _configured_level
    numeric = level if isinstance(level, int) else logging.getLevelName(str(level).upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO
    if _configured_level == numeric:
        return
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        cache_logger_on_first_use=False,
    )
    _configured_level = numeric

"""structlog configuration.

Development gets coloured console output; everything else gets one
JSON object per line. contextvars are merged first so request_id,
method, path and user_id bound by the middleware and auth dependency
show up on every entry.
"""

import logging

import structlog

from taskboard.config import settings


def configure_logging() -> None:
    level = logging.DEBUG if settings.debug else logging.INFO

    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.is_development
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )

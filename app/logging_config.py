import logging
import sys

import structlog

from app.config import settings


def setup_logging(*, debug: bool | None = None, level: str | None = None) -> None:
    """Route stdlib logging and structlog through one renderer.

    JSON lines in production, a colored console renderer when debugging.
    """
    debug = settings.DEBUG if debug is None else debug
    log_level = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)

    logging.basicConfig(format='%(message)s', stream=sys.stdout, level=log_level, force=True)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

    renderer = structlog.dev.ConsoleRenderer() if debug else structlog.processors.JSONRenderer(ensure_ascii=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt='iso', utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

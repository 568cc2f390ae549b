import structlog
import logging
from docapproval.config import settings


def _log_level() -> int:
    return getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)


def setup_logging():
    """Configure structlog for app events and stdlib logging for libraries.

    tenacity reports notification retries through a stdlib logger, so the
    root logger gets the same level as the structlog filter.
    """
    logging.basicConfig(level=_log_level(), format="%(name)s %(levelname)s %(message)s")

    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.ENVIRONMENT == "development"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_log_level()),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

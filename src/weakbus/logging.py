"""Structured logging setup for applications embedding the bus."""

import logging

import structlog
from structlog.types import Processor


def configure_logging(level: int | str = logging.INFO, *, json: bool = False) -> None:
    """
    Configure structlog on top of the standard library logger.

    Args:
        level: Minimum level for weakbus and application loggers
        json: Render JSON lines instead of the console format
    """
    logging.basicConfig(format="%(message)s", level=level)

    renderer: Processor = (
        structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

"""Structured logging setup (structlog on top of stdlib logging)."""
import logging
import sys
from typing import Optional

import structlog

from ragdesk import config


def configure_logging(
    log_level: Optional[str] = None, json_logs: Optional[bool] = None
) -> None:
    """Configure structlog for the application.

    Args:
        log_level: Logging level name (default from config)
        json_logs: Render JSON when True, coloured console output otherwise
    """
    log_level = (log_level or config.LOG_LEVEL).upper()
    json_logs = config.LOG_JSON if json_logs is None else json_logs
    numeric_level = getattr(logging, log_level, logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

"""
Structured logging setup.
"""
import logging
import sys

import structlog

from pricelist_engine.config.settings import MonitoringSettings


def configure_logging(monitoring: MonitoringSettings, verbose: bool = False) -> None:
    """Configure structlog rendering and the stdlib root level."""
    level = logging.DEBUG if verbose else getattr(logging, monitoring.log_level)

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)

    renderer = (
        structlog.processors.JSONRenderer()
        if monitoring.log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

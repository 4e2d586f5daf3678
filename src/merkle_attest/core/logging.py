"""
Merkle Attest - Logging Configuration

The service logs to stdout. The CLI passes stderr so that command output on
stdout stays machine-readable.
"""

import logging
import sys
from typing import TextIO

import structlog

from merkle_attest.core.config import settings

# Libraries that log every request at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def setup_logging(level: str | None = None, stream: TextIO | None = None) -> None:
    """
    Configure structured logging.

    Args:
        level: Log level name, defaults to LOG_LEVEL
        stream: Output stream, defaults to stdout
    """
    use_json = settings.ENV == "production"
    level_no = getattr(logging, (level or settings.LOG_LEVEL).upper())
    stream = stream or sys.stdout

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if use_json:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=stream.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=stream, level=level_no)
    logging.getLogger().setLevel(level_no)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level_no, logging.WARNING))

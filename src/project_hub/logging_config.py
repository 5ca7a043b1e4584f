"""Structured logging setup for project-hub.

Output is JSON (for log shipping) or a coloured console format (for local
use). Values come from explicit arguments, then from ``Settings``.

Usage:
    from project_hub.logging_config import setup_logging
    import structlog

    setup_logging()
    logger = structlog.get_logger()
    logger.info("project_started", project_id="telegram-bot")
"""

from collections.abc import Iterator
from contextlib import contextmanager
import logging
import sys
from typing import Literal

import structlog
from structlog.types import Processor

from project_hub.config import Settings, get_settings


def setup_logging(
    settings: Settings | None = None,
    *,
    service_name: str | None = None,
    log_format: Literal["json", "console"] | None = None,
    log_level: str | None = None,
) -> None:
    """Configure structlog on top of stdlib logging.

    Args:
        settings: Settings to read defaults from (cached settings if omitted).
        service_name: Bound to every event as ``service``.
        log_format: "json" or "console".
        log_level: DEBUG, INFO, WARNING or ERROR.
    """
    settings = settings or get_settings()
    service_name = service_name or settings.service_name
    log_format = log_format or settings.log_format
    log_level = (log_level or settings.log_level).upper()

    numeric_level = getattr(logging, log_level, logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
        force=True,
    )

    processors: list[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=False),
        # project_id / operation bound by the controllers
        structlog.contextvars.merge_contextvars,
        structlog.processors.CallsiteParameterAdder(
            {
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            }
        ),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer(sort_keys=False))
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(service=service_name)

    structlog.get_logger().info(
        "logging_initialized",
        service=service_name,
        log_format=log_format,
        log_level=log_level,
    )


@contextmanager
def bound_operation(project_id: str, operation: str) -> Iterator[None]:
    """Bind ``project_id`` and ``operation`` to every event logged inside the block."""
    with structlog.contextvars.bound_contextvars(project_id=project_id, operation=operation):
        yield

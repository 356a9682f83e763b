"""Log rendering for Hookshot.

Library modules log through ``logging.getLogger(__name__)``; once
:func:`configure_logging` has run, those records are rendered by structlog
together with any dispatch-scoped context bound via :func:`bind_context`.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from structlog.typing import Processor

# Third-party loggers that log every outbound request at INFO
_NOISY_LOGGERS = ("httpx", "httpcore")

_configured = False


def configure_logging(
    level: str = "INFO",
    format: str = "json",
) -> None:
    """Install a root stdout handler rendering every record through structlog.

    Replaces any existing root handlers. httpx and httpcore are held at
    WARNING or above since they log each outbound delivery request.

    Args:
        level: Root log level name.
        format: "json" for one JSON object per line, "text" for the
            colored console renderer.
    """
    global _configured

    log_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    renderer: Processor
    if format.lower() == "json":
        renderer = structlog.processors.JSONRenderer()
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    # Route stdlib records (logging.getLogger(__name__)) through the same renderer
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configured = True


def configure_from_settings() -> None:
    """Configure logging from ``HOOKSHOT_LOG_LEVEL`` / ``HOOKSHOT_LOG_FORMAT``."""
    from hookshot.config import settings

    configure_logging(level=settings.log_level, format=settings.log_format)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger, configuring logging with defaults on first use."""
    if not _configured:
        configure_logging()

    return structlog.get_logger(name)  # type: ignore[no-any-return]


def bind_context(**kwargs: object) -> None:
    """Attach fields such as ``tenant_id`` and ``event_id`` to later records.

    Context is task-local, so fields bound before a dispatch fans out are
    inherited by every delivery task it creates.
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


def unbind_context(*keys: str) -> None:
    """Drop the given fields from the logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


logger = get_logger("hookshot")

"""Structured logging for the knowledge pipeline, built on structlog.

One shared processor chain feeds a coloured ConsoleRenderer in development
or a JSONRenderer in production (``APP_ENV=production`` or
``json_output=True``).  Standard-library ``logging`` is routed through the
same formatter, and the chatty HTTP and vector-store libraries are held at
WARNING so per-request lines do not drown the ingestion events.

Ingestion runs many documents for one agent concurrently, so the agent id is
bound once per operation with :func:`agent_context` rather than passed to
every log call.  ``merge_contextvars`` then stamps it on each event emitted
inside the block, including events from fragment tasks spawned there.
"""

import contextlib
import logging
import os
import sys
from collections.abc import Iterator

import structlog

# Loggers that emit one line per HTTP request or collection call.
_QUIET_LOGGERS: tuple[str, ...] = ("chromadb", "httpx", "httpcore", "openai")


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Configure structlog and the stdlib bridge.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        json_output: Force JSON output. When False, JSON is still used if
                     ``APP_ENV`` is ``"production"``.

    Returns:
        A configured structlog BoundLogger.
    """
    use_json = json_output or os.environ.get("APP_ENV", "development") == "production"
    level = log_level.upper()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if use_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[*shared_processors, renderer],
        # Fragment loops log per chunk at debug level; those are dropped
        # before any processor runs.
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *shared_processors,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    quiet_level = max(logging.WARNING, logging.getLevelName(level))
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a named structlog logger, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name)


@contextlib.contextmanager
def agent_context(agent_id: str) -> Iterator[None]:
    """Bind ``agent_id`` to every log event emitted inside the block.

    Nested blocks for the same agent are harmless; the previous binding is
    restored on exit.
    """
    with structlog.contextvars.bound_contextvars(agent_id=agent_id):
        yield

"""Structured logging for the rate tracker, built on structlog.

Every event carries the tracked vault and cache backend once
bind_tracker_context() has run, so logs from the sampler, the backfill
and the API can be told apart per deployment without repeating them at
each call site.
"""

import logging

import structlog

# Loggers of libraries that are chatty below WARNING
_QUIET_LOGGERS = ("web3", "web3.providers", "urllib3", "aiohttp.access")


def setup_logging(log_level: str = "INFO", log_format: str = "console") -> None:
    """Route stdlib and structlog output through one structlog formatter.

    Args:
        log_level: Root level name, e.g. "DEBUG" or "INFO".
        log_format: "json" for machine-readable lines, anything else for the
            coloured development console renderer.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format.lower() == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # foreign_pre_chain gives web3/aiohttp/uvicorn records the same fields
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_tracker_context(vault: str, cache_backend: str) -> None:
    """Bind deployment-wide fields into the structlog context.

    Must run before the sampler and backfill tasks are created; tasks
    copy the context that is current when they start.
    """
    structlog.contextvars.bind_contextvars(vault=vault, cache_backend=cache_backend)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger with the given name."""
    return structlog.get_logger(name)

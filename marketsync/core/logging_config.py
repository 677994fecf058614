"""
Structured logging configuration for MarketSync.

Configures structlog to wrap stdlib logging so that:
- Development: colored, human-readable console output
- Staging/Production: JSON lines for log aggregation

All ``logging.getLogger(__name__)`` calls get structured output through
structlog's ProcessorFormatter on the root handler, and carry whatever
is bound in the structlog contextvars (``request_id``, ``tenant_id``,
``operation``).
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

from marketsync.config import AppEnv


def setup_logging(
    app_env: AppEnv,
    log_level: str = "INFO",
    log_format: str = "auto",
) -> None:
    """
    Configure structured logging for the application.

    Args:
        app_env: Current environment (development, staging, production).
        log_level: Root logger level (DEBUG, INFO, WARNING, ERROR).
        log_format: ``"json"``, ``"console"``, or ``"auto"``
                    (auto = console in dev, json otherwise).
    """
    use_json = _should_use_json(app_env, log_format)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if use_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

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

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Quiet noisy third-party loggers
    for noisy_logger in ("uvicorn.access", "sqlalchemy.engine", "httpx", "arq.jobs"):
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)


def _should_use_json(app_env: AppEnv, log_format: str) -> bool:
    """Determine whether to use JSON output."""
    if log_format == "json":
        return True
    if log_format == "console":
        return False
    return app_env != AppEnv.DEVELOPMENT


@contextmanager
def tenant_scope(tenant_id: str, **extra: str) -> Iterator[None]:
    """
    Bind ``tenant_id`` (and any extra keys) to every log line in the block.

    Previously bound values for the same keys are restored on exit, so
    nested scopes (a webhook resolving a tenant inside a request) work.
    """
    keys = {"tenant_id": tenant_id, **extra}
    previous = structlog.contextvars.get_contextvars()
    structlog.contextvars.bind_contextvars(**keys)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars(*keys)
        restore = {k: previous[k] for k in keys if k in previous}
        if restore:
            structlog.contextvars.bind_contextvars(**restore)


def current_correlation_id() -> str | None:
    """Return the request id bound by the logging middleware, if any."""
    return structlog.contextvars.get_contextvars().get("request_id")

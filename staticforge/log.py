"""Logging setup for StaticForge runs.

Everything is routed through the standard library logging tree so records
from the engine, from features and from third-party libraries share one
stderr handler. The engine logs under ``staticforge.*``; features get the
``staticforge.features`` logger through the services container.

``--log-json`` switches the handler to one JSON object per line, with
tracebacks rendered into the ``exception`` field.
"""

from __future__ import annotations

import logging
import sys

import structlog

FEATURE_LOGGER_NAME = "staticforge.features"


def _renderer(log_json: bool) -> list[structlog.types.Processor]:
    if log_json:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]


def configure_logging(
    *,
    verbose: bool = False,
    log_json: bool = False,
) -> None:
    """Install the stderr handler and structlog pipeline. Safe to call repeatedly.

    Args:
        verbose: Log StaticForge DEBUG records; INFO and above otherwise.
        log_json: Emit JSON lines instead of console output.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *_renderer(log_json),
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    # Third-party loggers (jinja2, mistune) only surface warnings.
    root_logger.setLevel(logging.WARNING)
    logging.getLogger("staticforge").setLevel(logging.DEBUG if verbose else logging.INFO)


def feature_logger() -> structlog.stdlib.BoundLogger:
    """Return the logger handed to plugins through the services container."""
    return structlog.get_logger(FEATURE_LOGGER_NAME)

"""
Structured logging configuration for polygeom.

Uses structlog (https://www.structlog.org/) so that proximity queries,
accelerator builds and conversions emit context-rich events. Supports both
JSON output (log aggregation) and colored console output (development).

Usage::

    from polygeom.core.logging import configure_logging, get_logger

    configure_logging(level="DEBUG")  # Call once at startup
    logger = get_logger(__name__)
    logger.info("conversion_complete", source="TriangleMesh", target="VolumeGrid")
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import structlog

from polygeom.core.config import LoggingConfig


def configure_logging(
    config: Optional[LoggingConfig] = None,
    *,
    level: Optional[str] = None,
    json_output: Optional[bool] = None,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure structured logging for the library and its host application.

    Keyword overrides take precedence over the values in ``config``.

    Args:
        config: Logging section of the geometry configuration. Defaults to
                ``LoggingConfig()``.
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_output: If True, output JSON lines; otherwise colored console lines.
        log_file: Optional path to write logs to in addition to stderr.
    """
    config = config or LoggingConfig()
    level = level or config.level
    json_output = config.json_output if json_output is None else json_output
    log_file = log_file or config.log_file

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    # trimesh and scipy warnings go through the stdlib root logger
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=handlers,
        force=True,
    )

    renderer: structlog.types.Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    for handler in logging.root.handlers:
        handler.setFormatter(formatter)


@contextmanager
def query_context(**values: Any) -> Iterator[None]:
    """Bind query fields (operation, kinds) to every event logged inside the block."""
    with structlog.contextvars.bound_contextvars(**values):
        yield


def _quiet_by_default() -> None:
    """Drop debug events until the host application configures logging."""
    if not structlog.is_configured():
        structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(logging.INFO))


_quiet_by_default()


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structlog logger for the given module name.

    Args:
        name: Module name, typically ``__name__``.

    Returns:
        A bound structlog logger instance.
    """
    return structlog.get_logger(name)

"""Structured logging for turnkit.

Modules log through the standard library (``logging.getLogger(__name__)``).
``configure_logging`` routes those records through structlog so they are
rendered with run-scoped context (run id, thread id, agent name) bound via
``bind_run_context``.

Example:
    from turnkit.observability import LogConfig, bind_run_context, configure_logging

    configure_logging(LogConfig(level=LogLevel.DEBUG, json_format=True))

    with bind_run_context(run_id="run-1", agent="assistant"):
        logging.getLogger("turnkit.demo").info("started")
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, TextIO

import structlog
from structlog.types import Processor

ROOT_LOGGER = "turnkit"

# Attribute names every LogRecord carries; anything else came in via ``extra``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime"}


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    def to_int(self) -> int:
        """Convert to logging module integer level."""
        return logging.getLevelName(self.value.upper())


@dataclass
class LogConfig:
    """Configuration for the logging system.

    Attributes:
        level: Minimum log level for turnkit loggers.
        json_format: Render records as JSON lines instead of console text.
        include_caller: Add module/function/line of the call site.
        colors: Use colors in console output.
        stream: Stream the handler writes to.
    """

    level: LogLevel = LogLevel.INFO
    json_format: bool = False
    include_caller: bool = False
    colors: bool = False
    stream: TextIO = field(default_factory=lambda: sys.stderr)


def _add_extra_fields(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Copy ``extra=`` fields of a stdlib record into the event dict."""
    record = event_dict.get("_record")
    if record is not None:
        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                event_dict.setdefault(key, value)
    return event_dict


def _shared_processors(config: LogConfig) -> List[Processor]:
    processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if config.include_caller:
        processors.append(
            structlog.processors.CallsiteParameterAdder(
                {
                    structlog.processors.CallsiteParameter.MODULE,
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                    structlog.processors.CallsiteParameter.LINENO,
                }
            )
        )
    return processors


def configure_logging(config: Optional[LogConfig] = None) -> logging.Handler:
    """Route turnkit's stdlib loggers through structlog.

    Replaces any handler previously installed by this function, so it is
    safe to call more than once.

    Args:
        config: Logging configuration. Uses defaults if not provided.

    Returns:
        The installed handler.
    """
    config = config or LogConfig()

    renderer: Processor
    if config.json_format:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=config.colors)

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[*_shared_processors(config), _add_extra_fields],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )

    handler = logging.StreamHandler(config.stream)
    handler.setFormatter(formatter)
    handler.set_name("turnkit-structlog")

    root = logging.getLogger(ROOT_LOGGER)
    for existing in list(root.handlers):
        if existing.get_name() == "turnkit-structlog":
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(config.level.to_int())
    return handler


@contextmanager
def bind_run_context(**fields: Any) -> Iterator[None]:
    """Bind fields to every record logged inside the block.

    Binding is per asyncio task (contextvars), so concurrent runs do not
    see each other's fields. ``None`` values are dropped.
    """
    bound = {key: value for key, value in fields.items() if value is not None}
    with structlog.contextvars.bound_contextvars(**bound):
        yield


def get_run_context() -> Dict[str, Any]:
    """Return the fields currently bound with ``bind_run_context``."""
    return dict(structlog.contextvars.get_contextvars())

"""Observability: telemetry and structured logging.

Example:
    # Logging with run context
    from turnkit.observability import LogConfig, bind_run_context, configure_logging

    configure_logging(LogConfig(json_format=True))
    with bind_run_context(run_id="run-1", agent="calc"):
        logger.info("Processing task")

    # Telemetry
    from turnkit.observability import TelemetryRecorder

    telemetry = TelemetryRecorder()
    telemetry.increment("tool.executions")
    with telemetry.timer("tool.search"):
        ...
    report = telemetry.get_report()
"""

from .logging import (
    LogConfig,
    LogLevel,
    bind_run_context,
    configure_logging,
    get_run_context,
)
from .telemetry import (
    ErrorStats,
    MemorySnapshot,
    MemoryTrend,
    TelemetryRecorder,
    TimerStats,
    ToolStats,
)

__all__ = [
    # Logging
    "LogConfig",
    "LogLevel",
    "configure_logging",
    "bind_run_context",
    "get_run_context",
    # Telemetry
    "TelemetryRecorder",
    "TimerStats",
    "ToolStats",
    "ErrorStats",
    "MemorySnapshot",
    "MemoryTrend",
]

"""Lightweight telemetry for the turn loop.

This module provides an in-process recorder for:
- Named, re-entrant timers (count/total/min/max)
- Monotonic counters
- Error occurrence counts
- A bounded ring buffer of process memory samples with trend detection
- Per-tool execution statistics
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, Iterator, List, Optional

import psutil

logger = logging.getLogger(__name__)


class MemoryTrend(str, Enum):
    """Direction of recent memory usage."""

    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"
    INSUFFICIENT_DATA = "insufficient_data"


@dataclass
class TimerStats:
    """Aggregated samples of a named timer (milliseconds).

    Attributes:
        count: Number of completed samples.
        total: Sum of all samples.
        min: Shortest sample, None until the first sample.
        max: Longest sample, None until the first sample.
    """

    count: int = 0
    total: float = 0.0
    min: Optional[float] = None
    max: Optional[float] = None

    def add(self, duration: float) -> None:
        self.count += 1
        self.total += duration
        if self.min is None or duration < self.min:
            self.min = duration
        if self.max is None or duration > self.max:
            self.max = duration

    @property
    def average(self) -> float:
        return self.total / self.count if self.count else 0.0


@dataclass
class ErrorStats:
    """Occurrences of one error key."""

    count: int = 0
    last_occurred: Optional[datetime] = None


@dataclass
class ToolStats:
    """Execution statistics for one tool.

    Attributes:
        count: Number of executions.
        total_time: Total execution time in milliseconds.
        failures: Number of failed executions.
        success_rate: Fraction of successful executions (0.0 - 1.0).
    """

    count: int = 0
    total_time: float = 0.0
    failures: int = 0
    success_rate: float = 1.0

    def update(self, duration: float, success: bool) -> None:
        self.count += 1
        self.total_time += duration
        if not success:
            self.failures += 1
        self.success_rate = (self.count - self.failures) / self.count


@dataclass
class MemorySnapshot:
    """A single process memory sample in bytes."""

    rss: int
    vms: int = 0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class TelemetryRecorder:
    """In-process recorder for timers, counters, memory and tool stats.

    One recorder is owned by each orchestrator (or shared explicitly);
    there is no module-level instance.

    Example:
        telemetry = TelemetryRecorder()

        token = telemetry.start_timer("tool.search")
        ...
        telemetry.stop_timer("tool.search", token)

        with telemetry.timer("agent.run"):
            ...

        telemetry.increment("tool.executions")
        report = telemetry.get_report()
    """

    TREND_WINDOW = 5
    TREND_THRESHOLD = 5.0  # percent

    def __init__(self, max_snapshots: int = 100):
        """Initialize the recorder.

        Args:
            max_snapshots: Capacity of the memory snapshot ring buffer.
        """
        if max_snapshots < 1:
            raise ValueError("max_snapshots must be at least 1")

        self.max_snapshots = max_snapshots
        self._timers: Dict[str, TimerStats] = {}
        self._running: Dict[str, Dict[int, float]] = {}
        self._tokens = itertools.count(1)
        self._counters: Dict[str, int] = {}
        self._errors: Dict[str, ErrorStats] = {}
        self._tools: Dict[str, ToolStats] = {}
        self._snapshots: Deque[MemorySnapshot] = deque(maxlen=max_snapshots)
        self._monitor_task: Optional[asyncio.Task[None]] = None
        self._process = psutil.Process()

    # Timers

    def start_timer(self, name: str) -> int:
        """Start a timer sample.

        Several samples of the same timer may run at once.

        Returns:
            Token identifying this sample for ``stop_timer``.
        """
        token = next(self._tokens)
        self._running.setdefault(name, {})[token] = time.perf_counter()
        self._timers.setdefault(name, TimerStats())
        return token

    def stop_timer(self, name: str, token: Optional[int] = None) -> float:
        """Stop a timer sample and fold it into the timer's stats.

        Args:
            name: Timer name.
            token: Token from ``start_timer``. Stops the most recent sample
                when omitted.

        Returns:
            The sample duration in milliseconds, 0.0 if nothing was running.
        """
        now = time.perf_counter()
        running = self._running.get(name)
        if not running or (token is not None and token not in running):
            logger.warning(f"Timer '{name}' was not started")
            return 0.0

        if token is None:
            token = next(reversed(running))
        started = running.pop(token)
        if not running:
            del self._running[name]

        duration = (now - started) * 1000.0
        self._timers.setdefault(name, TimerStats()).add(duration)
        return duration

    @contextmanager
    def timer(self, name: str) -> Iterator[None]:
        """Time the enclosed block."""
        token = self.start_timer(name)
        try:
            yield
        finally:
            self.stop_timer(name, token)

    def get_timer(self, name: str) -> Optional[TimerStats]:
        return self._timers.get(name)

    # Counters

    def increment(self, name: str, amount: int = 1) -> None:
        """Increment a counter.

        Raises:
            ValueError: If amount is negative.
        """
        if amount < 0:
            raise ValueError("Counters can only be incremented with positive values")
        self._counters[name] = self._counters.get(name, 0) + amount

    def get_counter(self, name: str) -> int:
        return self._counters.get(name, 0)

    # Errors and tools

    def record_error(self, key: str) -> None:
        stats = self._errors.setdefault(key, ErrorStats())
        stats.count += 1
        stats.last_occurred = datetime.now(timezone.utc)

    def record_tool_execution(self, tool_name: str, duration: float, success: bool) -> None:
        """Record one tool execution.

        Args:
            tool_name: Name of the executed tool.
            duration: Execution time in milliseconds.
            success: Whether the execution succeeded.
        """
        self._tools.setdefault(tool_name, ToolStats()).update(duration, success)

    def get_tool_stats(self, tool_name: str) -> Optional[ToolStats]:
        return self._tools.get(tool_name)

    # Memory

    def record_memory_sample(self, rss: int, vms: int = 0) -> MemorySnapshot:
        """Append a memory sample, evicting the oldest one when full."""
        snapshot = MemorySnapshot(rss=rss, vms=vms)
        self._snapshots.append(snapshot)
        return snapshot

    def capture_memory_snapshot(self) -> MemorySnapshot:
        """Sample the current process memory."""
        info = self._process.memory_info()
        return self.record_memory_sample(info.rss, info.vms)

    @property
    def snapshots(self) -> List[MemorySnapshot]:
        return list(self._snapshots)

    def memory_trend(self) -> MemoryTrend:
        """Classify memory usage over the most recent samples."""
        if len(self._snapshots) < 2:
            return MemoryTrend.INSUFFICIENT_DATA

        recent = list(self._snapshots)[-self.TREND_WINDOW:]
        first = recent[0].rss
        last = recent[-1].rss
        if first <= 0:
            return MemoryTrend.STABLE

        change = (last - first) / first * 100.0
        if change > self.TREND_THRESHOLD:
            return MemoryTrend.INCREASING
        if change < -self.TREND_THRESHOLD:
            return MemoryTrend.DECREASING
        return MemoryTrend.STABLE

    def start_monitoring(self, interval: float = 5.0) -> None:
        """Start sampling memory periodically on the running event loop.

        A sampler left over from an event loop that has since finished is
        replaced.
        """
        if self.is_monitoring:
            return

        async def monitor_loop() -> None:
            while True:
                self.capture_memory_snapshot()
                await asyncio.sleep(interval)

        self._monitor_task = asyncio.get_running_loop().create_task(monitor_loop())
        logger.debug(f"Memory monitoring started (interval={interval}s)")

    async def stop_monitoring(self) -> None:
        """Stop periodic memory sampling."""
        task, self._monitor_task = self._monitor_task, None
        if task is None or not self._is_live(task):
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Memory monitoring stopped")

    @property
    def is_monitoring(self) -> bool:
        return self._monitor_task is not None and self._is_live(self._monitor_task)

    @staticmethod
    def _is_live(task: "asyncio.Task[None]") -> bool:
        return not task.done() and not task.get_loop().is_closed()

    # Reporting

    def get_report(self) -> Dict[str, Any]:
        """Build a consolidated report of everything recorded so far."""
        memory_info = self._process.memory_info()
        report: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.time() - self._process.create_time(), 3),
            "timers": {},
            "counters": dict(self._counters),
            "memory": {
                "current": {"rss": memory_info.rss, "vms": memory_info.vms},
                "snapshots": len(self._snapshots),
                "trend": self.memory_trend().value,
            },
            "errors": {
                key: {
                    "count": stats.count,
                    "last_occurred": (
                        stats.last_occurred.isoformat() if stats.last_occurred else None
                    ),
                }
                for key, stats in self._errors.items()
            },
            "tools": {},
        }

        for name, stats in self._timers.items():
            if stats.count == 0:
                continue
            report["timers"][name] = {
                "count": stats.count,
                "total": round(stats.total, 2),
                "average": round(stats.average, 2),
                "min": round(stats.min or 0.0, 2),
                "max": round(stats.max or 0.0, 2),
            }

        for name, stats in self._tools.items():
            report["tools"][name] = {
                "executions": stats.count,
                "total_time": round(stats.total_time, 2),
                "average_time": round(stats.total_time / stats.count, 2) if stats.count else 0.0,
                "success_rate": round(stats.success_rate * 100, 2),
                "failures": stats.failures,
            }

        return report

    def reset(self) -> None:
        """Clear all recorded data."""
        self._timers.clear()
        self._running.clear()
        self._counters.clear()
        self._errors.clear()
        self._tools.clear()
        self._snapshots.clear()
        logger.debug("Telemetry reset")

    async def shutdown(self) -> None:
        """Stop monitoring and clear all recorded data."""
        await self.stop_monitoring()
        self.reset()

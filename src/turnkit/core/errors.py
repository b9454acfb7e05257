"""Typed errors, deduplicating error handling and retry with backoff.

Every failure the turn loop observes is normalized into an ``AgentError``:
a typed, severity-ranked record that is never mutated after creation.
The ``ErrorClassifier`` logs those records by severity, forwards them to
the telemetry recorder and suppresses noisy repeats of the same failure.

Example:
    errors = ErrorClassifier(telemetry=recorder)

    try:
        await flaky()
    except Exception as e:
        record = errors.handle(e, {"component": "search", "operation": "query"})

    # Retry retryable failures with exponential backoff
    result = await errors.retry(fetch, {"operation": "fetch"}, max_retries=3)
"""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    Mapping,
    Optional,
    Tuple,
    TypeVar,
)

if TYPE_CHECKING:
    from turnkit.observability.telemetry import TelemetryRecorder

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Category of a failure."""

    CONFIGURATION = "CONFIGURATION"
    VALIDATION = "VALIDATION"
    RUNTIME = "RUNTIME"
    NETWORK = "NETWORK"
    TIMEOUT = "TIMEOUT"
    RESOURCE = "RESOURCE"
    PERMISSION = "PERMISSION"
    CRITICAL = "CRITICAL"


class ErrorSeverity(str, Enum):
    """How bad a failure is."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class AgentError(Exception):
    """A typed, immutable error record.

    Attributes:
        kind: Category of the failure.
        severity: Severity of the failure.
        message: Human-readable message.
        context: Read-only mapping with where/what information.
        code: Optional machine-readable code.
        retryable: Whether retrying the operation may succeed.
        timestamp: Creation time (UTC).
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.RUNTIME,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: Optional[Mapping[str, Any]] = None,
        code: Optional[str] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self._message = message
        self._kind = ErrorKind(kind)
        self._severity = ErrorSeverity(severity)
        self._context: Mapping[str, Any] = MappingProxyType(dict(context or {}))
        self._code = code
        self._retryable = retryable
        self._timestamp = datetime.now(timezone.utc)

    @property
    def message(self) -> str:
        return self._message

    @property
    def kind(self) -> ErrorKind:
        return self._kind

    @property
    def severity(self) -> ErrorSeverity:
        return self._severity

    @property
    def context(self) -> Mapping[str, Any]:
        return self._context

    @property
    def code(self) -> Optional[str]:
        return self._code

    @property
    def retryable(self) -> bool:
        return self._retryable

    @property
    def timestamp(self) -> datetime:
        return self._timestamp

    def with_context(self, **extra: Any) -> "AgentError":
        """Return a new AgentError with merged context.

        Args:
            **extra: Context entries; these win over existing entries.

        Returns:
            A copy of the same error type. The original is left untouched.
        """
        clone = copy.copy(self)
        clone._context = MappingProxyType({**self._context, **extra})
        return clone

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error for logs and reports."""
        return {
            "message": self._message,
            "kind": self._kind.value,
            "severity": self._severity.value,
            "context": dict(self._context),
            "code": self._code,
            "retryable": self._retryable,
            "timestamp": self._timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [
            f"[{self._kind.value}:{self._severity.value}]",
            f"[{self._code}]" if self._code else "",
            self._message,
        ]
        component = self._context.get("component")
        operation = self._context.get("operation")
        if component:
            parts.append(f"(Component: {component})")
        if operation:
            parts.append(f"(Operation: {operation})")
        return " ".join(p for p in parts if p)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(message={self._message!r}, "
            f"kind={self._kind.value}, severity={self._severity.value})"
        )


class ConfigurationError(AgentError):
    """Invalid or missing configuration, raised at construction time."""

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.HIGH,
        context: Optional[Mapping[str, Any]] = None,
        code: Optional[str] = None,
    ):
        super().__init__(
            message,
            kind=ErrorKind.CONFIGURATION,
            severity=severity,
            context=context,
            code=code,
            retryable=False,
        )


@dataclass
class ErrorClassifierConfig:
    """Configuration for duplicate suppression.

    Attributes:
        dedup_window: Window length in seconds, opened by the first
            occurrence of an error.
        max_similar_errors: Occurrences logged per window before the rest
            are suppressed.
    """

    dedup_window: float = 60.0
    max_similar_errors: int = 10


@dataclass
class _DedupEntry:
    window_start: float
    last_seen: float
    count: int = 0
    suppressed: int = 0


class ErrorClassifier:
    """Normalizes failures, suppresses repeats and retries operations."""

    def __init__(
        self,
        config: Optional[ErrorClassifierConfig] = None,
        telemetry: Optional[TelemetryRecorder] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the classifier.

        Args:
            config: Dedup configuration. Uses defaults if not provided.
            telemetry: Recorder that receives error counters.
            clock: Monotonic clock in seconds, injectable for tests.
        """
        self.config = config or ErrorClassifierConfig()
        self.telemetry = telemetry
        self._clock = clock
        self._seen: Dict[Tuple[ErrorKind, str], _DedupEntry] = {}

    def classify(
        self,
        error: BaseException,
        context: Optional[Mapping[str, Any]] = None,
    ) -> AgentError:
        """Turn any exception into an AgentError without side effects."""
        context = dict(context or {})
        if isinstance(error, AgentError):
            return error.with_context(**context) if context else error
        return AgentError(
            str(error) or error.__class__.__name__,
            kind=ErrorKind.RUNTIME,
            severity=ErrorSeverity.MEDIUM,
            context={**context, "original_error": error.__class__.__name__},
        )

    def handle(
        self,
        error: BaseException,
        context: Optional[Mapping[str, Any]] = None,
    ) -> AgentError:
        """Classify, log and count an error.

        Repeats of the same ``(kind, message)`` beyond the configured
        threshold inside the dedup window are counted but not logged or
        forwarded to telemetry.

        Returns:
            The classified AgentError.
        """
        record = self.classify(error, context)

        if self._should_suppress(record):
            return record

        self._log(record)

        if self.telemetry is not None:
            self.telemetry.record_error(f"{record.kind.value}.{record.severity.value}")
            self.telemetry.increment("errors.total")
            self.telemetry.increment(f"errors.{record.kind.value.lower()}")

        return record

    def _should_suppress(self, record: AgentError) -> bool:
        key = (record.kind, record.message)
        now = self._clock()
        if key not in self._seen:
            self._prune(now)
        entry = self._seen.get(key)

        if entry is None or now - entry.window_start >= self.config.dedup_window:
            entry = _DedupEntry(window_start=now, last_seen=now)
            self._seen[key] = entry

        entry.count += 1
        entry.last_seen = now

        if entry.count > self.config.max_similar_errors:
            entry.suppressed += 1
            return True
        return False

    def _prune(self, now: float) -> None:
        expired = [
            key
            for key, entry in self._seen.items()
            if now - entry.window_start >= self.config.dedup_window
        ]
        for key in expired:
            del self._seen[key]

    def _log(self, record: AgentError) -> None:
        details = {
            "error_kind": record.kind.value,
            "severity": record.severity.value,
            "error_context": dict(record.context),
            "code": record.code,
            "retryable": record.retryable,
        }
        if record.severity in (ErrorSeverity.CRITICAL, ErrorSeverity.HIGH):
            logger.error(str(record), extra=details)
        elif record.severity == ErrorSeverity.MEDIUM:
            logger.warning(str(record), extra=details)
        else:
            logger.debug(str(record), extra=details)

    async def wrap_async(
        self,
        fn: Callable[[], Awaitable[T]],
        context: Optional[Mapping[str, Any]] = None,
    ) -> T:
        """Await ``fn()`` and re-raise any failure as a handled AgentError."""
        try:
            return await fn()
        except Exception as e:
            raise self.handle(e, context) from e

    def wrap(
        self,
        fn: Callable[[], T],
        context: Optional[Mapping[str, Any]] = None,
    ) -> T:
        """Call ``fn()`` and re-raise any failure as a handled AgentError."""
        try:
            return fn()
        except Exception as e:
            raise self.handle(e, context) from e

    async def retry(
        self,
        operation: Callable[[], Awaitable[T]],
        context: Optional[Mapping[str, Any]] = None,
        max_retries: int = 3,
        base_delay: float = 1.0,
        backoff_multiplier: float = 2.0,
    ) -> T:
        """Run an operation, retrying retryable failures with backoff.

        Args:
            operation: Zero-argument coroutine function to run.
            context: Context attached to every handled failure.
            max_retries: Total number of attempts.
            base_delay: Delay in seconds before the second attempt.
            backoff_multiplier: Factor applied to the delay after each retry.

        Returns:
            The operation's result.

        Raises:
            AgentError: The last classified error, once attempts are
                exhausted or a non-retryable error occurs.
            ValueError: If max_retries is less than 1.
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        context = dict(context or {})
        delay = base_delay

        for attempt in range(max_retries):
            try:
                return await operation()
            except Exception as e:
                record = self.handle(
                    e,
                    {**context, "attempt": attempt + 1, "max_retries": max_retries},
                )
                if attempt == max_retries - 1 or not record.retryable:
                    raise record from e

                logger.warning(
                    f"Retrying operation ({attempt + 1}/{max_retries}) "
                    f"in {delay:.2f}s: {record.message}"
                )
                await asyncio.sleep(delay)
                delay *= backoff_multiplier

        raise RuntimeError("Unexpected state in retry logic")

    def get_error_stats(self) -> Dict[str, Any]:
        """Return counts per ``KIND:message`` key and the recent ones."""
        now = self._clock()
        counts = {
            f"{kind.value}:{message}": entry.count
            for (kind, message), entry in self._seen.items()
        }
        recent = [
            {
                "error": f"{kind.value}:{message}",
                "count": entry.count,
                "suppressed": entry.suppressed,
                "seconds_ago": round(now - entry.last_seen, 3),
            }
            for (kind, message), entry in self._seen.items()
            if now - entry.last_seen < self.config.dedup_window
        ]
        return {
            "total_unique_errors": len(self._seen),
            "error_counts": counts,
            "suppressed_total": sum(e.suppressed for e in self._seen.values()),
            "recent_errors": recent,
        }

    def clear_error_stats(self) -> None:
        """Forget all dedup state."""
        self._seen.clear()
        logger.debug("Error statistics cleared")

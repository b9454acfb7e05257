"""Tool execution engine: concurrent tool calls routed through both hook pipelines."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, List, Optional, Sequence

from turnkit.core.errors import AgentError, ErrorClassifier, ErrorKind, ErrorSeverity
from turnkit.core.ids import generate_id
from turnkit.hooks.types import Continue, ShortCircuit
from turnkit.llm.base import Message, ToolCall

from .base import BaseTool
from .registry import ToolRegistry

if TYPE_CHECKING:
    from turnkit.execution.state import TurnState
    from turnkit.hooks.breakpoints import BreakpointPipeline
    from turnkit.hooks.interceptors import InterceptorPipeline
    from turnkit.observability.telemetry import TelemetryRecorder

logger = logging.getLogger(__name__)


@dataclass
class ExecutionConfig:
    """Configuration for tool execution.

    Attributes:
        timeout: Maximum seconds for a single tool invocation (None for no timeout).
        max_concurrent: Maximum concurrent tool invocations (None for no limit).
            Hook stages are not counted.
    """

    timeout: Optional[float] = None
    max_concurrent: Optional[int] = None


@dataclass
class _Outcome:
    """Settled result of one tool call's pipeline."""

    message: Message
    success: bool


class ToolExecutionEngine:
    """Runs a batch of tool calls concurrently.

    Each known call goes through its own pipeline, strictly in this order:

    1. global before-interceptor, then global before-breakpoint
    2. tool-specific before-interceptor (skipped if the global stage
       short-circuited), then tool-specific before-breakpoint
    3. the short-circuit result, or the real tool invocation
    4. tool-specific after-interceptor and after-breakpoint
    5. global after-interceptor and after-breakpoint

    Calls of unknown tools get an ``unknown tool: <name>`` error result
    without touching any hook. All calls settle before ``execute``
    returns; a failing call never cancels its siblings.

    Example:
        engine = ToolExecutionEngine(registry, interceptors, breakpoints, telemetry, errors)
        results = await engine.execute(state.pending_tool_calls, state)
    """

    def __init__(
        self,
        registry: ToolRegistry,
        interceptors: InterceptorPipeline,
        breakpoints: BreakpointPipeline,
        telemetry: TelemetryRecorder,
        errors: ErrorClassifier,
        config: Optional[ExecutionConfig] = None,
        agent_name: str = "agent",
    ):
        """Initialize the engine.

        Args:
            registry: Tools available to the batch.
            interceptors: Pipeline for mutating hooks.
            breakpoints: Pipeline for observing hooks.
            telemetry: Recorder for timers, counters and tool stats.
            errors: Classifier receiving tool failures.
            config: Execution configuration. Uses defaults if not provided.
            agent_name: Name attached to error context.
        """
        self.registry = registry
        self.interceptors = interceptors
        self.breakpoints = breakpoints
        self.telemetry = telemetry
        self.errors = errors
        self.config = config or ExecutionConfig()
        self.agent_name = agent_name
        self._semaphore = (
            asyncio.Semaphore(self.config.max_concurrent) if self.config.max_concurrent else None
        )

    async def execute(self, tool_calls: Sequence[ToolCall], state: TurnState) -> List[Message]:
        """Execute a batch of tool calls.

        Args:
            tool_calls: Calls requested by the latest model response.
            state: Current turn state, passed to every hook.

        Returns:
            One tool result message per call, in the order of ``tool_calls``.
        """
        if not tool_calls:
            return []

        calls = [call if call.id else call.with_id(generate_id("call")) for call in tool_calls]
        results: List[Optional[Message]] = [None] * len(calls)
        failures = 0

        known: List[int] = []
        for index, call in enumerate(calls):
            if self.registry.get(call.name) is None:
                logger.warning(f"Model requested unknown tool '{call.name}'")
                self.telemetry.increment("tool.unknown")
                results[index] = Message.tool_result(
                    f"unknown tool: {call.name}",
                    tool_call_id=call.id,
                    name=call.name,
                    is_error=True,
                )
                failures += 1
            else:
                known.append(index)

        logger.debug(f"Executing {len(known)} tool calls ({len(calls) - len(known)} unknown)")

        settled = await asyncio.gather(
            *(self._run_call(calls[index], state) for index in known),
            return_exceptions=True,
        )

        for index, outcome in zip(known, settled):
            if isinstance(outcome, BaseException):
                results[index] = self._critical_result(calls[index], outcome)
                failures += 1
            else:
                results[index] = outcome.message
                if not outcome.success:
                    failures += 1

        if failures * 2 > len(calls):
            logger.warning(
                f"{failures} of {len(calls)} tool calls failed, "
                "this may indicate a systemic problem"
            )

        return [message for message in results if message is not None]

    async def _run_call(self, call: ToolCall, state: TurnState) -> _Outcome:
        name = call.name
        self.telemetry.increment("tool.executions")
        self.telemetry.increment(f"tool.{name}.executions")
        token = self.telemetry.start_timer(f"tool.{name}")
        success = False

        try:
            current = call
            decision = await self.interceptors.before_tool_call(current, state)
            if isinstance(decision, Continue):
                current = decision.modified_input
            await self.breakpoints.before_tool_call(current, state)

            if isinstance(decision, Continue):
                decision = await self.interceptors.before_specific_tool_call(current, state)
                if isinstance(decision, Continue):
                    current = decision.modified_input
            await self.breakpoints.before_specific_tool_call(current, state)

            if isinstance(decision, ShortCircuit):
                logger.debug(f"Tool call {call.id} ({name}) short-circuited by interceptor")
                result = decision.result
            else:
                try:
                    result = await self._invoke(current)
                except Exception as e:
                    record = self.errors.handle(
                        e,
                        {
                            "component": "ToolExecutionEngine",
                            "operation": "invoke",
                            "agent": self.agent_name,
                            "tool_name": current.name,
                            "call_id": call.id,
                        },
                    )
                    self.telemetry.record_error(f"tool.{name}.error")
                    return _Outcome(
                        message=Message.tool_result(
                            f"Error executing tool {name}: {record.message}",
                            tool_call_id=call.id,
                            name=name,
                            is_error=True,
                        ),
                        success=False,
                    )

            result = await self.interceptors.after_specific_tool_call(result, current, state)
            await self.breakpoints.after_specific_tool_call(result, current, state)
            result = await self.interceptors.after_tool_call(result, current, state)
            await self.breakpoints.after_tool_call(result, current, state)

            success = True
            return _Outcome(
                message=Message.tool_result(self._format(result), tool_call_id=call.id, name=name),
                success=True,
            )
        finally:
            duration = self.telemetry.stop_timer(f"tool.{name}", token)
            self.telemetry.record_tool_execution(name, duration, success)
            self.telemetry.increment("tool.successes" if success else "tool.failures")

    async def _invoke(self, call: ToolCall) -> Any:
        # Resolved again: an interceptor may have renamed the call
        tool = self.registry.get(call.name)
        if tool is None:
            raise AgentError(
                f"unknown tool: {call.name}",
                kind=ErrorKind.VALIDATION,
                severity=ErrorSeverity.LOW,
                context={"tool_name": call.name},
            )

        if self._semaphore is None:
            return await self._invoke_with_timeout(tool, call)
        async with self._semaphore:
            return await self._invoke_with_timeout(tool, call)

    async def _invoke_with_timeout(self, tool: BaseTool, call: ToolCall) -> Any:
        if not self.config.timeout:
            return await tool.invoke(call.arguments)

        try:
            return await asyncio.wait_for(tool.invoke(call.arguments), timeout=self.config.timeout)
        except asyncio.TimeoutError as e:
            raise AgentError(
                f"Tool '{call.name}' timed out after {self.config.timeout}s",
                kind=ErrorKind.TIMEOUT,
                severity=ErrorSeverity.MEDIUM,
                context={"tool_name": call.name},
                retryable=True,
            ) from e

    def _critical_result(self, call: ToolCall, error: BaseException) -> Message:
        record = self.errors.handle(
            AgentError(
                str(error) or error.__class__.__name__,
                kind=ErrorKind.CRITICAL,
                severity=ErrorSeverity.HIGH,
                context={
                    "component": "ToolExecutionEngine",
                    "operation": "execute",
                    "agent": self.agent_name,
                    "tool_name": call.name,
                    "call_id": call.id,
                    "original_error": error.__class__.__name__,
                },
            )
        )
        return Message.tool_result(
            f"Critical error executing tool {call.name}: {record.message}",
            tool_call_id=call.id,
            name=call.name,
            is_error=True,
        )

    @staticmethod
    def _format(result: Any) -> str:
        if isinstance(result, str):
            return result
        if result is None:
            return ""
        return str(result)

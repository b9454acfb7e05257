"""Common test fixtures and configuration for turnkit tests."""

from __future__ import annotations

import operator
from typing import Any, Callable, List, Optional, Union

import pytest

from turnkit.core.errors import ErrorClassifier, ErrorClassifierConfig
from turnkit.execution.state import TurnState
from turnkit.hooks.types import BreakpointConfig, InterceptorConfig
from turnkit.llm.base import Message, ToolCall, ToolDefinition
from turnkit.observability.telemetry import TelemetryRecorder
from turnkit.tools.base import FunctionTool
from turnkit.tools.registry import ToolRegistry

_OPERATORS = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
}


# ============================================================================
# Model Fixtures
# ============================================================================


ScriptStep = Union[Message, BaseException, Callable[[List[Message]], Message]]


class ScriptedModel:
    """Model invoker replaying a fixed script of responses.

    Each step is a Message to return, an exception to raise, or a callable
    building the response from the outgoing messages.
    """

    def __init__(self, script: Optional[List[ScriptStep]] = None):
        self.script = list(script or [])
        self.calls: List[List[Message]] = []
        self.tools_seen: List[Optional[List[ToolDefinition]]] = []

    async def invoke(
        self,
        messages: List[Message],
        tools: Optional[List[ToolDefinition]] = None,
    ) -> Message:
        self.calls.append(list(messages))
        self.tools_seen.append(tools)
        if not self.script:
            return Message.assistant("done")

        step = self.script.pop(0)
        if isinstance(step, BaseException):
            raise step
        if callable(step):
            return step(messages)
        return step

    @property
    def call_count(self) -> int:
        return len(self.calls)


# ============================================================================
# Tool Fixtures
# ============================================================================


def calculate(expression: str) -> str:
    """Evaluate a binary arithmetic expression.

    Args:
        expression: Expression such as "2 + 2".
    """
    left, op, right = expression.split()
    value = _OPERATORS[op](float(left), float(right))
    return str(int(value)) if float(value).is_integer() else str(value)


async def fail(reason: str = "boom") -> str:
    """Always fail.

    Args:
        reason: Error message to raise.
    """
    raise RuntimeError(reason)


@pytest.fixture
def calculator_tool() -> FunctionTool:
    """Calculator tool named "calculator"."""
    return FunctionTool(calculate, name="calculator")


@pytest.fixture
def failing_tool() -> FunctionTool:
    """Tool that always raises RuntimeError."""
    return FunctionTool(fail, name="failing")


# ============================================================================
# Service Fixtures
# ============================================================================


@pytest.fixture
def telemetry() -> TelemetryRecorder:
    """Fresh telemetry recorder."""
    return TelemetryRecorder()


@pytest.fixture
def errors(telemetry: TelemetryRecorder) -> ErrorClassifier:
    """Error classifier forwarding to the telemetry fixture."""
    return ErrorClassifier(ErrorClassifierConfig(), telemetry=telemetry)


@pytest.fixture
def registry(telemetry: TelemetryRecorder, calculator_tool: FunctionTool) -> ToolRegistry:
    """Registry holding the calculator tool."""
    registry = ToolRegistry(telemetry=telemetry)
    registry.add(calculator_tool)
    return registry


@pytest.fixture
def interceptor_config() -> InterceptorConfig:
    return InterceptorConfig()


@pytest.fixture
def breakpoint_config() -> BreakpointConfig:
    return BreakpointConfig()


@pytest.fixture
def turn_state() -> TurnState:
    """State with a single user message."""
    return TurnState(messages=[Message.user("Calculate 2 + 2")], thread_id="thread-1")


@pytest.fixture
def sample_tool_call() -> ToolCall:
    return ToolCall(name="calculator", arguments={"expression": "2 + 2"}, id="call_1")


@pytest.fixture
def scripted_model() -> Callable[..., ScriptedModel]:
    """Factory for scripted models."""

    def factory(*script: Any) -> ScriptedModel:
        return ScriptedModel(list(script))

    return factory

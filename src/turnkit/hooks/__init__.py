"""Interceptor and breakpoint hooks around the turn loop.

Interceptors may rewrite data or short-circuit a tool call; breakpoints
only observe. Both are registered on a config object by scope and point,
and run through a pipeline that keeps hook failures away from the turn.

Example:
    from turnkit.hooks import Continue, HookPoint, HookScope, InterceptorConfig
    from turnkit.llm import ToolCall

    interceptors = InterceptorConfig()

    @interceptors.register(HookScope.TOOL, HookPoint.BEFORE_TOOL_CALL, tool_name="search")
    def limit_results(call, state):
        return Continue(ToolCall(call.name, {**call.arguments, "limit": 5}, call.id))
"""

from .breakpoints import BreakpointPipeline, CancellationToken, current_cancellation_token
from .interceptors import InterceptorPipeline
from .types import (
    BreakpointConfig,
    Continue,
    HookConfig,
    HookFunction,
    HookPoint,
    HookScope,
    InterceptorConfig,
    InterceptorResult,
    ShortCircuit,
    hook_key,
)

__all__ = [
    # Configuration
    "HookScope",
    "HookPoint",
    "HookFunction",
    "HookConfig",
    "InterceptorConfig",
    "BreakpointConfig",
    "hook_key",
    # Interceptor results
    "ShortCircuit",
    "Continue",
    "InterceptorResult",
    # Pipelines
    "InterceptorPipeline",
    "BreakpointPipeline",
    "CancellationToken",
    "current_cancellation_token",
]

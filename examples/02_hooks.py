#!/usr/bin/env python3
"""Example 2: Hooks - interceptors that cache and breakpoints that audit.

Shows:
- A tool-scoped interceptor short-circuiting cached lookups
- A global interceptor tagging every tool result
- Breakpoints observing model calls, including a slow one that the
  turn stops waiting for after ``breakpoint_timeout``
"""

import asyncio

from turnkit import (
    AgentConfig,
    BreakpointConfig,
    HookPoint,
    HookScope,
    InterceptorConfig,
    Message,
    MessageRole,
    ShortCircuit,
    ToolCall,
    TurnOrchestrator,
    current_cancellation_token,
    tool,
)

WEATHER = {"paris": "18C, cloudy", "rome": "24C, sunny"}
CACHE = {"rome": "24C, sunny (cached)"}


@tool()
async def weather(city: str) -> str:
    """Look up the current weather.

    Args:
        city: City name.
    """
    await asyncio.sleep(0.1)
    return WEATHER.get(city.lower(), "unknown")


class WeatherModel:
    """Asks for the weather in two cities at once, then summarizes."""

    async def invoke(self, messages, tools=None) -> Message:
        results = [m for m in messages if m.role == MessageRole.TOOL]
        if results:
            return Message.assistant("; ".join(m.content for m in results))
        return Message.assistant(
            tool_calls=[
                ToolCall("weather", {"city": "Paris"}),
                ToolCall("weather", {"city": "Rome"}),
            ]
        )


# ============================================================================
# Interceptors
# ============================================================================

interceptors = InterceptorConfig()


@interceptors.register(HookScope.TOOL, HookPoint.BEFORE_TOOL_CALL, tool_name="weather")
def serve_cached(call, state):
    cached = CACHE.get(call.arguments["city"].lower())
    if cached:
        return ShortCircuit(cached)
    return None


@interceptors.register(HookScope.GLOBAL, HookPoint.AFTER_TOOL_CALL)
def tag_result(result, call, state):
    return f"{call.arguments['city']}: {result}"


# ============================================================================
# Breakpoints
# ============================================================================

breakpoints = BreakpointConfig()


@breakpoints.register(HookScope.MODEL, HookPoint.AFTER_MODEL_CALL)
def show_response(response, state):
    calls = [c.name for c in response.tool_calls or []]
    print(f"[breakpoint] model replied, tool calls: {calls}")


@breakpoints.register(HookScope.GLOBAL, HookPoint.BEFORE_TOOL_CALL)
async def slow_audit(call, state):
    # Stops early once the pipeline gives up waiting
    token = current_cancellation_token()
    for _ in range(50):
        if token is not None and token.cancelled:
            print(f"[breakpoint] audit of {call.id} abandoned")
            return
        await asyncio.sleep(0.01)


async def main():
    orchestrator = TurnOrchestrator(
        AgentConfig(name="weather-agent", breakpoint_timeout=0.2),
        WeatherModel(),
        tools=[weather],
        interceptors=interceptors,
        breakpoints=breakpoints,
    )

    state = await orchestrator.run("Weather in Paris and Rome?")
    print(f"\nAgent: {state.last_message.content}")

    await orchestrator.cleanup()


if __name__ == "__main__":
    asyncio.run(main())

#!/usr/bin/env python3
"""Example 1: Calculator Agent - one turn with a tool round trip.

The model here is a tiny rule-based stand-in: it asks for the calculator
when the user writes an expression and answers once a tool result is in.
Swap it for any object with ``async invoke(messages, tools)``.
"""

import asyncio
import operator
import re

from turnkit import (
    AgentConfig,
    InMemoryCheckpointer,
    Message,
    MessageRole,
    ToolCall,
    TurnOrchestrator,
    tool,
)
from turnkit.observability import LogConfig, LogLevel, configure_logging

# ============================================================================
# Tools
# ============================================================================

OPERATORS = {"+": operator.add, "-": operator.sub, "*": operator.mul, "/": operator.truediv}
EXPRESSION = re.compile(r"(-?\d+(?:\.\d+)?)\s*([-+*/])\s*(-?\d+(?:\.\d+)?)")


@tool(name="calculator")
def calculator(expression: str) -> str:
    """Evaluate a binary arithmetic expression.

    Args:
        expression: Expression such as "2 + 2" or "10 * 5".
    """
    match = EXPRESSION.fullmatch(expression.strip())
    if match is None:
        raise ValueError(f"cannot parse expression: {expression!r}")
    left, op, right = match.groups()
    value = OPERATORS[op](float(left), float(right))
    return str(int(value)) if value.is_integer() else str(value)


# ============================================================================
# Model
# ============================================================================


class RuleBasedModel:
    """Requests the calculator for arithmetic, then reports its result."""

    async def invoke(self, messages, tools=None) -> Message:
        last = messages[-1]
        if last.role == MessageRole.TOOL:
            return Message.assistant(f"The result is {last.content}.")

        match = EXPRESSION.search(last.content)
        if match and tools:
            return Message.assistant(
                tool_calls=[ToolCall("calculator", {"expression": match.group(0)})]
            )
        return Message.assistant("Give me something to calculate.")


# ============================================================================
# Main
# ============================================================================


async def main():
    configure_logging(LogConfig(level=LogLevel.INFO))

    orchestrator = TurnOrchestrator(
        AgentConfig(name="calculator-agent", system_prompt="You are a calculator."),
        RuleBasedModel(),
        tools=[calculator],
        checkpointer=InMemoryCheckpointer(),
    )

    print("=" * 60)
    print("Calculator Agent")
    print("=" * 60)

    for question in ("Calculate 2 + 2", "And 10 * 5?"):
        state = await orchestrator.run(question, thread_id="demo")
        print(f"\nYou: {question}")
        print(f"Agent: {state.last_message.content}")

    print(f"\nThread now holds {len(state.messages)} messages")

    report = orchestrator.get_performance_report()
    print(f"Tool stats: {report['tools']}")

    await orchestrator.cleanup()


if __name__ == "__main__":
    asyncio.run(main())

"""Message types and the model invocation protocol.

The model itself is an external collaborator: anything with an async
``invoke(messages, tools=None) -> Message`` method can drive the loop.

Example:
    from turnkit.llm import Message, ToolCall

    class EchoModel:
        async def invoke(self, messages, tools=None):
            return Message.assistant(messages[-1].content)
"""

from .base import (
    Message,
    MessageRole,
    ModelInvoker,
    ToolCall,
    ToolDefinition,
)

__all__ = [
    "Message",
    "MessageRole",
    "ModelInvoker",
    "ToolCall",
    "ToolDefinition",
]

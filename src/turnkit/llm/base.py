"""Message types and the model invocation protocol."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable


class MessageRole(str, Enum):
    """Role of a message in a conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model.

    Tool calls are immutable once issued. Interceptors that rewrite a call
    produce a new ToolCall instead of mutating this one.
    """

    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None

    def with_id(self, call_id: str) -> "ToolCall":
        """Return a copy carrying the given id."""
        return replace(self, id=call_id)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": dict(self.arguments)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolCall":
        return cls(
            name=data["name"],
            arguments=dict(data.get("arguments") or {}),
            id=data.get("id"),
        )


@dataclass
class ToolDefinition:
    """Definition of a tool that can be bound to the model."""

    name: str
    description: str
    parameters: Dict[str, Any]  # JSON Schema for parameters


@dataclass
class Message:
    """A message in a conversation."""

    role: MessageRole
    content: str
    name: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None
    tool_call_id: Optional[str] = None  # For tool response messages
    is_error: bool = False  # For tool response messages

    @property
    def has_tool_calls(self) -> bool:
        """Check if the message requests tool calls."""
        return bool(self.tool_calls)

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(
        cls,
        content: str = "",
        tool_calls: Optional[List[ToolCall]] = None,
    ) -> "Message":
        return cls(role=MessageRole.ASSISTANT, content=content, tool_calls=tool_calls)

    @classmethod
    def tool_result(
        cls,
        content: str,
        tool_call_id: str,
        name: Optional[str] = None,
        is_error: bool = False,
    ) -> "Message":
        return cls(
            role=MessageRole.TOOL,
            content=content,
            name=name,
            tool_call_id=tool_call_id,
            is_error=is_error,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert message to dictionary format."""
        result: Dict[str, Any] = {
            "role": self.role.value,
            "content": self.content,
        }
        if self.name:
            result["name"] = self.name
        if self.tool_calls:
            result["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id:
            result["tool_call_id"] = self.tool_call_id
        if self.is_error:
            result["is_error"] = True
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        """Rebuild a message produced by ``to_dict``."""
        tool_calls = data.get("tool_calls")
        return cls(
            role=MessageRole(data["role"]),
            content=data.get("content", ""),
            name=data.get("name"),
            tool_calls=[ToolCall.from_dict(tc) for tc in tool_calls] if tool_calls else None,
            tool_call_id=data.get("tool_call_id"),
            is_error=bool(data.get("is_error", False)),
        )


@runtime_checkable
class ModelInvoker(Protocol):
    """Protocol for the model invocation service.

    Prompt construction, the provider wire protocol and response parsing
    all live behind this interface.
    """

    async def invoke(
        self,
        messages: List[Message],
        tools: Optional[List[ToolDefinition]] = None,
    ) -> Message:
        """Invoke the model.

        Args:
            messages: Outgoing message sequence.
            tools: Definitions of the tools bound for this call, if any.

        Returns:
            The assistant message, possibly carrying tool calls.
        """
        ...

"""Turn state: the ordered message history of a thread."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from turnkit.llm.base import Message, MessageRole, ToolCall


class LoopPhase(str, Enum):
    """States of the turn loop."""

    MODEL = "model"
    TOOLS = "tools"
    END = "end"


@dataclass
class TurnState:
    """Ordered sequence of messages for one thread.

    Attributes:
        messages: Conversation so far, oldest first.
        thread_id: Thread the state belongs to, if any.
    """

    messages: List[Message] = field(default_factory=list)
    thread_id: Optional[str] = None

    def merge(self, new_messages: Iterable[Message]) -> "TurnState":
        """Return a new state with ``new_messages`` appended.

        Existing messages are never reordered or deduplicated.
        """
        return TurnState(messages=[*self.messages, *new_messages], thread_id=self.thread_id)

    @property
    def last_message(self) -> Optional[Message]:
        return self.messages[-1] if self.messages else None

    @property
    def pending_tool_calls(self) -> List[ToolCall]:
        """Tool calls requested by the latest message, if it is an assistant message."""
        last = self.last_message
        if last is None or last.role != MessageRole.ASSISTANT or not last.tool_calls:
            return []
        return list(last.tool_calls)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "thread_id": self.thread_id,
            "messages": [m.to_dict() for m in self.messages],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TurnState":
        return cls(
            messages=[Message.from_dict(m) for m in data.get("messages", [])],
            thread_id=data.get("thread_id"),
        )

    def __len__(self) -> int:
        return len(self.messages)

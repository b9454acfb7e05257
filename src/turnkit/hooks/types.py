"""Hook configuration: scopes, points and the dispatch table.

A hook is addressed by a ``(scope, point)`` pair, plus a tool name for the
TOOL scope. Each slot holds at most one function. An empty slot is the
no-op fast path of both pipelines.

Example:
    interceptors = InterceptorConfig()

    @interceptors.register(HookScope.GLOBAL, HookPoint.BEFORE_TOOL_CALL)
    def log_call(call, state):
        print(f"calling {call.name}")
        return Continue(call)

    interceptors.register(
        HookScope.TOOL,
        HookPoint.BEFORE_TOOL_CALL,
        lambda call, state: ShortCircuit("cached"),
        tool_name="search",
    )
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    FrozenSet,
    List,
    Optional,
    Tuple,
    Union,
)

from turnkit.core.errors import ConfigurationError
from turnkit.core.ids import generate_id
from turnkit.llm.base import ToolCall

logger = logging.getLogger(__name__)

# Hooks may be sync functions or coroutine functions
HookFunction = Callable[..., Any]


class HookScope(str, Enum):
    """Where a hook applies."""

    CORE = "core"  # once per run
    MODEL = "model"  # around each model call, breakpoints only
    GLOBAL = "global"  # every tool call
    TOOL = "tool"  # calls to one named tool


class HookPoint(str, Enum):
    """Stage of the turn lifecycle a hook attaches to."""

    BEFORE_MODEL_INVOKE = "before_model_invoke"
    AFTER_AGENT_COMPLETE = "after_agent_complete"
    BEFORE_MODEL_CALL = "before_model_call"
    AFTER_MODEL_CALL = "after_model_call"
    BEFORE_TOOL_CALL = "before_tool_call"
    AFTER_TOOL_CALL = "after_tool_call"


_CORE_POINTS = frozenset({HookPoint.BEFORE_MODEL_INVOKE, HookPoint.AFTER_AGENT_COMPLETE})
_TOOL_POINTS = frozenset({HookPoint.BEFORE_TOOL_CALL, HookPoint.AFTER_TOOL_CALL})
_MODEL_POINTS = frozenset({HookPoint.BEFORE_MODEL_CALL, HookPoint.AFTER_MODEL_CALL})

_SlotKey = Tuple[HookScope, HookPoint, Optional[str]]


@dataclass(frozen=True)
class ShortCircuit:
    """Skip the real tool invocation and use ``result`` instead."""

    result: Any


@dataclass(frozen=True)
class Continue:
    """Proceed with the (possibly rewritten) tool call."""

    modified_input: ToolCall


InterceptorResult = Union[ShortCircuit, Continue]


def hook_key(
    scope: HookScope,
    point: HookPoint,
    call: Optional[ToolCall] = None,
) -> str:
    """Build the mutual-exclusion key for one hook invocation.

    Tool stages are keyed by tool name and call id, so concurrent calls of
    the same tool with different ids never block each other. Core and model
    stages get a fresh unique id.
    """
    if call is not None:
        return f"{scope.value}-{point.value}-{call.name}-{call.id}"
    return f"{scope.value}-{point.value}-{generate_id('hook')}"


class HookConfig:
    """Tagged dispatch table of hook functions.

    Attributes:
        enabled: When False, every lookup misses.
    """

    allowed_points: ClassVar[Dict[HookScope, FrozenSet[HookPoint]]] = {
        HookScope.CORE: _CORE_POINTS,
        HookScope.GLOBAL: _TOOL_POINTS,
        HookScope.TOOL: _TOOL_POINTS,
    }

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._hooks: Dict[_SlotKey, HookFunction] = {}

    def _slot(
        self,
        scope: Union[HookScope, str],
        point: Union[HookPoint, str],
        tool_name: Optional[str],
    ) -> _SlotKey:
        try:
            scope = HookScope(scope)
            point = HookPoint(point)
        except ValueError as e:
            raise ConfigurationError(str(e), context={"component": type(self).__name__}) from e

        if point not in self.allowed_points.get(scope, frozenset()):
            raise ConfigurationError(
                f"{type(self).__name__} does not support {scope.value}/{point.value} hooks",
                context={"component": type(self).__name__, "operation": "register"},
            )
        if scope is HookScope.TOOL and not tool_name:
            raise ConfigurationError(
                "tool_name is required for tool-scoped hooks",
                context={"component": type(self).__name__, "operation": "register"},
            )
        if scope is not HookScope.TOOL and tool_name:
            raise ConfigurationError(
                f"tool_name is only valid for tool-scoped hooks, got scope {scope.value}",
                context={"component": type(self).__name__, "operation": "register"},
            )
        return (scope, point, tool_name)

    def register(
        self,
        scope: Union[HookScope, str],
        point: Union[HookPoint, str],
        fn: Optional[HookFunction] = None,
        tool_name: Optional[str] = None,
    ) -> Union[HookFunction, Callable[[HookFunction], HookFunction]]:
        """Register a hook function.

        Can be used as a decorator or called directly.

        Args:
            scope: Scope of the hook.
            point: Lifecycle point of the hook.
            fn: The hook function (optional if used as decorator).
            tool_name: Tool the hook applies to; TOOL scope only.

        Returns:
            The function if provided, decorator otherwise.

        Raises:
            ConfigurationError: If the scope/point pair is not supported.
        """
        slot = self._slot(scope, point, tool_name)

        def decorator(func: HookFunction) -> HookFunction:
            if slot in self._hooks:
                logger.info(f"Replacing {type(self).__name__} hook {_describe(slot)}")
            self._hooks[slot] = func
            logger.debug(f"Registered {type(self).__name__} hook {_describe(slot)}")
            return func

        if fn is not None:
            return decorator(fn)
        return decorator

    def unregister(
        self,
        scope: Union[HookScope, str],
        point: Union[HookPoint, str],
        tool_name: Optional[str] = None,
    ) -> bool:
        """Remove a hook.

        Returns:
            True if a hook was registered in that slot.
        """
        slot = self._slot(scope, point, tool_name)
        return self._hooks.pop(slot, None) is not None

    def lookup(
        self,
        scope: HookScope,
        point: HookPoint,
        tool_name: Optional[str] = None,
    ) -> Optional[HookFunction]:
        """Return the hook for a slot, or None when absent or disabled."""
        if not self.enabled:
            return None
        key_name = tool_name if scope is HookScope.TOOL else None
        return self._hooks.get((scope, point, key_name))

    def has(
        self,
        scope: HookScope,
        point: HookPoint,
        tool_name: Optional[str] = None,
    ) -> bool:
        return self.lookup(scope, point, tool_name) is not None

    def tool_names(self) -> List[str]:
        """Names of tools with at least one tool-scoped hook."""
        names = {name for (scope, _, name) in self._hooks if scope is HookScope.TOOL}
        return sorted(n for n in names if n)

    def clear(self) -> None:
        self._hooks.clear()

    def __len__(self) -> int:
        return len(self._hooks)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(enabled={self.enabled}, hooks={len(self._hooks)})"


class InterceptorConfig(HookConfig):
    """Hooks that may rewrite data or short-circuit tool calls."""


class BreakpointConfig(HookConfig):
    """Observe-only hooks; their return values are discarded."""

    allowed_points: ClassVar[Dict[HookScope, FrozenSet[HookPoint]]] = {
        **HookConfig.allowed_points,
        HookScope.MODEL: _MODEL_POINTS,
    }


def _describe(slot: _SlotKey) -> str:
    scope, point, tool_name = slot
    suffix = f" ({tool_name})" if tool_name else ""
    return f"{scope.value}/{point.value}{suffix}"

"""Tool registry: the mutable, name-keyed set of invocable tools."""

from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, List, Optional, Union

from turnkit.core.errors import AgentError, ErrorKind, ErrorSeverity
from turnkit.llm.base import ToolDefinition

from .base import BaseTool, FunctionTool

if TYPE_CHECKING:
    from turnkit.observability.telemetry import TelemetryRecorder

logger = logging.getLogger(__name__)

ToolLike = Union[BaseTool, Callable[..., Any]]


class ToolRegistry:
    """Registry for managing tools.

    Names are unique: adding a tool under an existing name replaces the old
    one. Mutations are synchronous and visible to any lookup that happens
    afterwards, including lookups of a batch already in flight.
    """

    def __init__(self, telemetry: Optional[TelemetryRecorder] = None):
        """Initialize an empty tool registry.

        Args:
            telemetry: Recorder receiving ``tools.added``/``tools.set`` counters.
        """
        self._tools: Dict[str, BaseTool] = {}
        self.telemetry = telemetry

    @staticmethod
    def _coerce(tool: Any) -> Optional[BaseTool]:
        if isinstance(tool, BaseTool):
            return tool if tool.name else None
        if inspect.isclass(tool):
            return None
        if callable(tool):
            return FunctionTool(tool)
        return None

    def add(self, tool: ToolLike) -> BaseTool:
        """Add a tool, replacing any tool with the same name.

        Args:
            tool: A BaseTool instance or a callable to wrap as a tool.

        Returns:
            The registered BaseTool instance.

        Raises:
            AgentError: VALIDATION error if the tool is missing or unnamed.
        """
        registered = self._coerce(tool)
        if registered is None:
            raise AgentError(
                "Tool must not be empty and must have a name",
                kind=ErrorKind.VALIDATION,
                severity=ErrorSeverity.HIGH,
                context={
                    "component": "ToolRegistry",
                    "operation": "add",
                    "tool_name": getattr(tool, "name", None),
                },
            )

        if registered.name in self._tools:
            logger.warning(
                f"Tool '{registered.name}' already registered, overwriting",
                extra={"tool_name": registered.name},
            )

        self._tools[registered.name] = registered
        logger.debug(f"Added tool: {registered.name}")

        if self.telemetry is not None:
            self.telemetry.increment("tools.added")
        return registered

    def set_all(self, tools: Union[List[ToolLike], tuple]) -> None:
        """Replace the whole tool set at once.

        Invalid entries are skipped with a warning.

        Raises:
            AgentError: VALIDATION error if ``tools`` is not a list or tuple.
        """
        if not isinstance(tools, (list, tuple)):
            raise AgentError(
                "Tool list must be a list or tuple",
                kind=ErrorKind.VALIDATION,
                severity=ErrorSeverity.HIGH,
                context={
                    "component": "ToolRegistry",
                    "operation": "set_all",
                    "tools_type": type(tools).__name__,
                },
            )

        replacement: Dict[str, BaseTool] = {}
        for candidate in tools:
            registered = self._coerce(candidate)
            if registered is None:
                logger.warning(f"Skipping invalid tool: {candidate!r}")
                continue
            replacement[registered.name] = registered

        old_count = len(self._tools)
        self._tools = replacement
        logger.info(f"Tool set updated: {old_count} -> {len(replacement)} tools")

        if self.telemetry is not None:
            self.telemetry.increment("tools.set")

        if not replacement:
            logger.warning("No tools available after update")

    def get(self, name: str) -> Optional[BaseTool]:
        """Get a tool by name, None if not registered."""
        found = self._tools.get(name)
        if found is None:
            logger.debug(f"Tool '{name}' not found")
        return found

    def get_all(self) -> List[BaseTool]:
        """Return all registered tools."""
        return list(self._tools.values())

    def has(self, name: str) -> bool:
        return name in self._tools

    def names(self) -> List[str]:
        return list(self._tools.keys())

    def remove(self, name: str) -> Optional[BaseTool]:
        """Remove a tool by name.

        Returns:
            The removed tool if found, None otherwise.
        """
        return self._tools.pop(name, None)

    def to_definitions(self) -> List[ToolDefinition]:
        """Convert all tools to ToolDefinition format for model binding."""
        return [t.to_definition() for t in self._tools.values()]

    def clear(self) -> None:
        """Remove all tools."""
        self._tools = {}

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[BaseTool]:
        return iter(list(self._tools.values()))

    def __repr__(self) -> str:
        return f"ToolRegistry(tools={list(self._tools.keys())})"

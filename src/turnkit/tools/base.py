"""Base tool classes and decorators."""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Type, TypeVar

from pydantic import BaseModel

from turnkit.llm.base import ToolDefinition

from .schema import build_arguments_model, json_schema, summary_line, validate_arguments


class BaseTool(ABC):
    """Abstract base class for tools.

    Subclasses implement ``execute``. The input schema is generated from
    the ``execute`` signature unless ``args_model`` is set on the class.

    Attributes:
        name: The unique name of the tool.
        description: A description of what the tool does.
        args_model: pydantic model validating the tool's arguments.
    """

    name: str = ""
    description: str = ""
    args_model: Optional[Type[BaseModel]] = None

    def __init__(
        self,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ):
        """Initialize the tool.

        Args:
            name: Optional name override.
            description: Optional description override.
        """
        if name:
            self.name = name
        elif not self.name:
            self.name = self.__class__.__name__

        if description:
            self.description = description
        elif not self.description:
            self.description = summary_line(self.__class__) or f"Execute {self.name}"

        if self.args_model is None:
            self.args_model = build_arguments_model(
                self.execute, model_name=f"{self.__class__.__name__}Arguments"
            )

    @abstractmethod
    async def execute(self, **kwargs: Any) -> Any:
        """Execute the tool with validated arguments.

        Raises:
            Exception: Any failure; the execution engine turns it into an
                error result.
        """

    async def invoke(self, arguments: Optional[Dict[str, Any]] = None) -> Any:
        """Validate arguments and execute the tool.

        Args:
            arguments: Raw arguments from the tool call.

        Returns:
            The tool's result.

        Raises:
            AgentError: If the arguments fail validation.
        """
        validated = validate_arguments(self.args_model, arguments or {}, tool_name=self.name)
        return await self.execute(**validated)

    @property
    def parameters(self) -> Dict[str, Any]:
        """JSON Schema of the tool's arguments."""
        return json_schema(self.args_model)

    def to_definition(self) -> ToolDefinition:
        """Convert tool to ToolDefinition for model binding."""
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


F = TypeVar("F", bound=Callable[..., Any])


class FunctionTool(BaseTool):
    """Tool wrapper for regular or async functions."""

    def __init__(
        self,
        func: Callable[..., Any],
        name: Optional[str] = None,
        description: Optional[str] = None,
    ):
        self._func = func
        self._is_async = inspect.iscoroutinefunction(func)
        self.name = name or func.__name__
        self.description = description or summary_line(func) or f"Execute {self.name}"
        self.args_model = build_arguments_model(func)

    async def execute(self, **kwargs: Any) -> Any:
        """Execute the wrapped function."""
        if self._is_async:
            return await self._func(**kwargs)
        return self._func(**kwargs)


def tool(
    name: Optional[str] = None,
    description: Optional[str] = None,
) -> Callable[[F], FunctionTool]:
    """Decorator to convert a function into a tool.

    Args:
        name: Optional name for the tool. Defaults to function name.
        description: Optional description. Defaults to the first docstring line.

    Returns:
        A FunctionTool instance wrapping the function.

    Example:
        @tool(name="calculator")
        def calculate(expression: str) -> str:
            '''Evaluate an arithmetic expression.

            Args:
                expression: Expression such as "2 + 2".
            '''
            ...
    """

    def decorator(func: F) -> FunctionTool:
        return FunctionTool(func, name=name, description=description)

    return decorator

"""Tools: definitions, the registry and the execution engine.

Example:
    # Using the @tool decorator
    from turnkit.tools import tool

    @tool(name="search")
    async def search_web(query: str) -> str:
        '''Search the web for information.

        Args:
            query: What to search for.
        '''
        return f"Results for: {query}"

    # Using class-based tools
    from turnkit.tools import BaseTool

    class EchoTool(BaseTool):
        name = "echo"
        description = "Repeat the input"

        async def execute(self, text: str) -> str:
            return text

    # Using the registry
    from turnkit.tools import ToolRegistry

    registry = ToolRegistry()
    registry.add(search_web)
    registry.add(EchoTool())
"""

from .base import (
    BaseTool,
    FunctionTool,
    tool,
)
from .executor import (
    ExecutionConfig,
    ToolExecutionEngine,
)
from .registry import ToolRegistry
from .schema import (
    build_arguments_model,
    extract_param_descriptions,
    json_schema,
    validate_arguments,
)

__all__ = [
    # Base classes
    "BaseTool",
    "FunctionTool",
    # Decorators
    "tool",
    # Registry
    "ToolRegistry",
    # Executor
    "ExecutionConfig",
    "ToolExecutionEngine",
    # Schema utilities
    "build_arguments_model",
    "extract_param_descriptions",
    "json_schema",
    "validate_arguments",
]

"""Tests for base tool classes and the @tool decorator."""

from __future__ import annotations

from typing import Any

import pytest

from turnkit.core.errors import AgentError, ErrorKind
from turnkit.llm.base import ToolDefinition
from turnkit.tools.base import BaseTool, FunctionTool, tool


class EchoTool(BaseTool):
    """Repeat the given text."""

    name = "echo"

    async def execute(self, text: str, times: int = 1) -> str:
        """Echo text.

        Args:
            text: Text to repeat.
            times: Number of repetitions.
        """
        return " ".join([text] * times)


class BrokenTool(BaseTool):
    name = "broken"
    description = "Always fails"

    async def execute(self, **kwargs: Any) -> Any:
        raise RuntimeError("kaputt")


# ============================================================================
# BaseTool Tests
# ============================================================================


class TestBaseTool:
    """Tests for BaseTool."""

    def test_description_from_class_docstring(self):
        assert EchoTool().description == "Repeat the given text."

    def test_name_override(self):
        assert EchoTool(name="shout").name == "shout"

    def test_default_name_is_class_name(self):
        class Unnamed(BaseTool):
            async def execute(self) -> str:
                return "ok"

        assert Unnamed().name == "Unnamed"

    def test_definition(self):
        """Test that the definition carries the generated schema."""
        definition = EchoTool().to_definition()

        assert isinstance(definition, ToolDefinition)
        assert definition.name == "echo"
        assert definition.parameters["required"] == ["text"]
        assert definition.parameters["properties"]["times"]["description"] == "Number of repetitions."

    @pytest.mark.asyncio
    async def test_invoke_validates_and_executes(self):
        assert await EchoTool().invoke({"text": "hi", "times": "2"}) == "hi hi"

    @pytest.mark.asyncio
    async def test_invoke_rejects_invalid_arguments(self):
        with pytest.raises(AgentError) as exc_info:
            await EchoTool().invoke({"times": 2})

        assert exc_info.value.kind == ErrorKind.VALIDATION

    @pytest.mark.asyncio
    async def test_invoke_propagates_failures(self):
        with pytest.raises(RuntimeError, match="kaputt"):
            await BrokenTool().invoke({})

    def test_repr(self):
        assert repr(EchoTool()) == "EchoTool(name='echo')"


# ============================================================================
# FunctionTool and Decorator Tests
# ============================================================================


class TestFunctionTool:
    """Tests for FunctionTool and @tool."""

    @pytest.mark.asyncio
    async def test_sync_function(self, calculator_tool: FunctionTool):
        assert await calculator_tool.invoke({"expression": "2 + 2"}) == "4"

    @pytest.mark.asyncio
    async def test_async_function(self):
        async def greet(name: str) -> str:
            """Greet someone."""
            return f"hello {name}"

        assert await FunctionTool(greet).invoke({"name": "ada"}) == "hello ada"

    def test_decorator_defaults(self):
        @tool()
        def lookup(key: str) -> str:
            """Look a key up.

            Args:
                key: The key.
            """
            return key

        assert isinstance(lookup, FunctionTool)
        assert lookup.name == "lookup"
        assert lookup.description == "Look a key up."
        assert lookup.parameters["properties"]["key"]["description"] == "The key."

    def test_decorator_overrides(self):
        @tool(name="calc", description="Does math")
        def anything(x: int) -> int:
            return x

        assert anything.name == "calc"
        assert anything.description == "Does math"

    def test_description_fallback(self):
        def bare(x):
            return x

        assert FunctionTool(bare).description == "Execute bare"

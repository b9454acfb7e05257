"""Tests for hook configuration and keys."""

from __future__ import annotations

import pytest

from turnkit.core.errors import ConfigurationError
from turnkit.hooks.types import (
    BreakpointConfig,
    Continue,
    HookPoint,
    HookScope,
    InterceptorConfig,
    ShortCircuit,
    hook_key,
)
from turnkit.llm.base import ToolCall


def noop(*args):
    return None


# ============================================================================
# Registration Tests
# ============================================================================


class TestRegister:
    """Tests for registering hooks."""

    def test_direct_registration(self, interceptor_config: InterceptorConfig):
        interceptor_config.register(HookScope.GLOBAL, HookPoint.BEFORE_TOOL_CALL, noop)

        assert interceptor_config.lookup(HookScope.GLOBAL, HookPoint.BEFORE_TOOL_CALL) is noop
        assert len(interceptor_config) == 1

    def test_decorator_registration(self, interceptor_config: InterceptorConfig):
        """Test that register works as a decorator and returns the function."""

        @interceptor_config.register(HookScope.CORE, HookPoint.AFTER_AGENT_COMPLETE)
        def finish(state):
            return state

        assert callable(finish)
        assert interceptor_config.has(HookScope.CORE, HookPoint.AFTER_AGENT_COMPLETE)

    def test_string_values_accepted(self, interceptor_config: InterceptorConfig):
        interceptor_config.register("global", "after_tool_call", noop)

        assert interceptor_config.has(HookScope.GLOBAL, HookPoint.AFTER_TOOL_CALL)

    def test_replacing_keeps_one_hook(self, interceptor_config: InterceptorConfig):
        def other(*args):
            return None

        interceptor_config.register(HookScope.GLOBAL, HookPoint.BEFORE_TOOL_CALL, noop)
        interceptor_config.register(HookScope.GLOBAL, HookPoint.BEFORE_TOOL_CALL, other)

        assert interceptor_config.lookup(HookScope.GLOBAL, HookPoint.BEFORE_TOOL_CALL) is other
        assert len(interceptor_config) == 1

    def test_tool_scope_keyed_by_name(self, interceptor_config: InterceptorConfig):
        interceptor_config.register(
            HookScope.TOOL, HookPoint.BEFORE_TOOL_CALL, noop, tool_name="search"
        )

        assert interceptor_config.has(HookScope.TOOL, HookPoint.BEFORE_TOOL_CALL, "search")
        assert not interceptor_config.has(HookScope.TOOL, HookPoint.BEFORE_TOOL_CALL, "other")
        assert interceptor_config.tool_names() == ["search"]

    @pytest.mark.parametrize(
        "scope,point,tool_name",
        [
            (HookScope.CORE, HookPoint.BEFORE_TOOL_CALL, None),
            (HookScope.GLOBAL, HookPoint.BEFORE_MODEL_INVOKE, None),
            (HookScope.MODEL, HookPoint.BEFORE_MODEL_CALL, None),
            (HookScope.TOOL, HookPoint.BEFORE_TOOL_CALL, None),
            (HookScope.GLOBAL, HookPoint.BEFORE_TOOL_CALL, "search"),
            ("nowhere", HookPoint.BEFORE_TOOL_CALL, None),
        ],
    )
    def test_invalid_slots_rejected(self, interceptor_config, scope, point, tool_name):
        """Test that unsupported scope/point combinations raise."""
        with pytest.raises(ConfigurationError):
            interceptor_config.register(scope, point, noop, tool_name=tool_name)

    def test_breakpoints_support_model_scope(self, breakpoint_config: BreakpointConfig):
        breakpoint_config.register(HookScope.MODEL, HookPoint.AFTER_MODEL_CALL, noop)

        assert breakpoint_config.has(HookScope.MODEL, HookPoint.AFTER_MODEL_CALL)

    def test_unregister(self, interceptor_config: InterceptorConfig):
        interceptor_config.register(HookScope.GLOBAL, HookPoint.AFTER_TOOL_CALL, noop)

        assert interceptor_config.unregister(HookScope.GLOBAL, HookPoint.AFTER_TOOL_CALL) is True
        assert interceptor_config.unregister(HookScope.GLOBAL, HookPoint.AFTER_TOOL_CALL) is False

    def test_disabled_config_misses(self):
        config = InterceptorConfig(enabled=False)
        config.register(HookScope.GLOBAL, HookPoint.BEFORE_TOOL_CALL, noop)

        assert config.lookup(HookScope.GLOBAL, HookPoint.BEFORE_TOOL_CALL) is None

    def test_clear(self, interceptor_config: InterceptorConfig):
        interceptor_config.register(HookScope.GLOBAL, HookPoint.BEFORE_TOOL_CALL, noop)
        interceptor_config.clear()

        assert len(interceptor_config) == 0


# ============================================================================
# Key and Result Tests
# ============================================================================


class TestHookKey:
    """Tests for hook_key()."""

    def test_tool_key_uses_name_and_id(self):
        call = ToolCall("search", {}, id="call_7")

        assert hook_key(HookScope.GLOBAL, HookPoint.BEFORE_TOOL_CALL, call) == (
            "global-before_tool_call-search-call_7"
        )

    def test_distinct_ids_give_distinct_keys(self):
        a = hook_key(HookScope.TOOL, HookPoint.AFTER_TOOL_CALL, ToolCall("x", id="1"))
        b = hook_key(HookScope.TOOL, HookPoint.AFTER_TOOL_CALL, ToolCall("x", id="2"))

        assert a != b

    def test_core_keys_are_unique(self):
        first = hook_key(HookScope.CORE, HookPoint.BEFORE_MODEL_INVOKE)
        second = hook_key(HookScope.CORE, HookPoint.BEFORE_MODEL_INVOKE)

        assert first != second
        assert first.startswith("core-before_model_invoke-")


class TestResults:
    def test_results_are_frozen(self):
        result = ShortCircuit("cached")

        with pytest.raises(AttributeError):
            result.result = "other"  # type: ignore[misc]

    def test_continue_equality(self):
        call = ToolCall("x", {"a": 1}, id="1")

        assert Continue(call) == Continue(ToolCall("x", {"a": 1}, id="1"))

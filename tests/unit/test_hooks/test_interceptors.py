"""Tests for the interceptor pipeline.

This module tests:
- No-op fast path and disabled configs
- Key locks serializing invocations with the same key
- The advisory concurrency limit
- Fail-open behavior and result validation
"""

from __future__ import annotations

import asyncio
import logging
from typing import List

import pytest

from turnkit.core.errors import ConfigurationError, ErrorClassifier
from turnkit.execution.state import TurnState
from turnkit.hooks.interceptors import InterceptorPipeline
from turnkit.hooks.types import (
    Continue,
    HookPoint,
    HookScope,
    InterceptorConfig,
    ShortCircuit,
)
from turnkit.llm.base import Message, ToolCall


@pytest.fixture
def pipeline(interceptor_config: InterceptorConfig, errors: ErrorClassifier) -> InterceptorPipeline:
    return InterceptorPipeline(interceptor_config, errors)


# ============================================================================
# Construction Tests
# ============================================================================


class TestConstruction:
    def test_missing_config(self):
        with pytest.raises(ConfigurationError):
            InterceptorPipeline(None)

    def test_invalid_limit(self, interceptor_config: InterceptorConfig):
        with pytest.raises(ConfigurationError):
            InterceptorPipeline(interceptor_config, concurrency_limit=0)


# ============================================================================
# run() Tests
# ============================================================================


class TestRun:
    """Tests for the invocation discipline of run()."""

    @pytest.mark.asyncio
    async def test_no_hook_returns_fallback(self, pipeline: InterceptorPipeline):
        assert await pipeline.run("k", None, "fallback") == "fallback"

    @pytest.mark.asyncio
    async def test_disabled_config_skips_hook(self, errors: ErrorClassifier):
        pipeline = InterceptorPipeline(InterceptorConfig(enabled=False), errors)
        called = []

        result = await pipeline.run("k", lambda: called.append(1), "fallback")

        assert result == "fallback"
        assert called == []

    @pytest.mark.asyncio
    async def test_sync_and_async_hooks(self, pipeline: InterceptorPipeline):
        async def async_hook():
            return "async"

        assert await pipeline.run("a", lambda: "sync", None) == "sync"
        assert await pipeline.run("b", async_hook, None) == "async"

    @pytest.mark.asyncio
    async def test_same_key_runs_serially(self, pipeline: InterceptorPipeline):
        """Test that two invocations with one key never overlap."""
        events: List[str] = []

        def make_hook(label: str):
            async def hook():
                events.append(f"{label}-start")
                await asyncio.sleep(0.02)
                events.append(f"{label}-end")
                return label

            return hook

        results = await asyncio.gather(
            pipeline.run("shared", make_hook("first"), None),
            pipeline.run("shared", make_hook("second"), None),
        )

        assert results == ["first", "second"]
        assert events == ["first-start", "first-end", "second-start", "second-end"]

    @pytest.mark.asyncio
    async def test_distinct_keys_run_concurrently(self, pipeline: InterceptorPipeline):
        running = 0
        peak = 0

        async def hook():
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.02)
            running -= 1

        await asyncio.gather(*(pipeline.run(f"k{i}", hook, None) for i in range(3)))

        assert peak == 3
        assert pipeline.active_task_count == 0

    @pytest.mark.asyncio
    async def test_slot_wait_is_advisory(
        self,
        interceptor_config: InterceptorConfig,
        errors: ErrorClassifier,
        caplog,
    ):
        """Test that a saturated pipeline still runs the hook after the wait."""
        caplog.set_level(logging.WARNING, logger="turnkit")
        pipeline = InterceptorPipeline(
            interceptor_config,
            errors,
            concurrency_limit=1,
            slot_poll_interval=0.01,
            max_slot_wait=0.05,
        )
        release = asyncio.Event()

        async def blocker():
            await release.wait()
            return "blocker"

        blocked = asyncio.create_task(pipeline.run("slow", blocker, None))
        await asyncio.sleep(0)

        result = await pipeline.run("fast", lambda: "fast", None)

        assert result == "fast"
        assert "running 'fast' anyway" in caplog.text

        release.set()
        assert await blocked == "blocker"

    @pytest.mark.asyncio
    async def test_slot_freed_before_deadline(self, interceptor_config: InterceptorConfig):
        pipeline = InterceptorPipeline(
            interceptor_config, concurrency_limit=1, slot_poll_interval=0.01, max_slot_wait=5.0
        )
        order: List[str] = []

        async def short():
            await asyncio.sleep(0.03)
            order.append("short")

        first = asyncio.create_task(pipeline.run("one", short, None))
        await asyncio.sleep(0)
        await pipeline.run("two", lambda: order.append("second"), None)
        await first

        assert order == ["short", "second"]

    @pytest.mark.asyncio
    async def test_failure_returns_fallback(
        self,
        pipeline: InterceptorPipeline,
        errors: ErrorClassifier,
    ):
        """Test that a raising hook is reported and its input passes through."""

        def broken():
            raise ValueError("interceptor bug")

        result = await pipeline.run("k", broken, "original")

        assert result == "original"
        assert errors.get_error_stats()["error_counts"] == {"RUNTIME:interceptor bug": 1}
        assert pipeline.active_task_count == 0

    @pytest.mark.asyncio
    async def test_lock_released_after_failure(self, pipeline: InterceptorPipeline):
        def broken():
            raise ValueError("boom")

        await pipeline.run("k", broken, None)

        assert await asyncio.wait_for(pipeline.run("k", lambda: "again", None), 1.0) == "again"


# ============================================================================
# Stage Tests
# ============================================================================


class TestToolStages:
    """Tests for before/after tool interceptors."""

    @pytest.mark.asyncio
    async def test_no_hook_continues(
        self,
        pipeline: InterceptorPipeline,
        sample_tool_call: ToolCall,
        turn_state: TurnState,
    ):
        assert await pipeline.before_tool_call(sample_tool_call, turn_state) == Continue(
            sample_tool_call
        )

    @pytest.mark.asyncio
    async def test_short_circuit(
        self,
        pipeline: InterceptorPipeline,
        interceptor_config: InterceptorConfig,
        sample_tool_call: ToolCall,
        turn_state: TurnState,
    ):
        interceptor_config.register(
            HookScope.GLOBAL,
            HookPoint.BEFORE_TOOL_CALL,
            lambda call, state: ShortCircuit("cached"),
        )

        result = await pipeline.before_tool_call(sample_tool_call, turn_state)

        assert result == ShortCircuit("cached")

    @pytest.mark.asyncio
    async def test_none_means_continue(
        self,
        pipeline: InterceptorPipeline,
        interceptor_config: InterceptorConfig,
        sample_tool_call: ToolCall,
        turn_state: TurnState,
    ):
        interceptor_config.register(
            HookScope.GLOBAL, HookPoint.BEFORE_TOOL_CALL, lambda call, state: None
        )

        result = await pipeline.before_tool_call(sample_tool_call, turn_state)

        assert result == Continue(sample_tool_call)

    @pytest.mark.asyncio
    async def test_rewrite_restores_call_id(
        self,
        pipeline: InterceptorPipeline,
        interceptor_config: InterceptorConfig,
        sample_tool_call: ToolCall,
        turn_state: TurnState,
    ):
        """Test that a rewritten call always keeps the original id."""
        interceptor_config.register(
            HookScope.TOOL,
            HookPoint.BEFORE_TOOL_CALL,
            lambda call, state: Continue(ToolCall(call.name, {"expression": "5 - 1"}, id="new")),
            tool_name="calculator",
        )

        result = await pipeline.before_specific_tool_call(sample_tool_call, turn_state)

        assert isinstance(result, Continue)
        assert result.modified_input.id == "call_1"
        assert result.modified_input.arguments == {"expression": "5 - 1"}

    @pytest.mark.asyncio
    async def test_specific_hook_ignores_other_tools(
        self,
        pipeline: InterceptorPipeline,
        interceptor_config: InterceptorConfig,
        turn_state: TurnState,
    ):
        interceptor_config.register(
            HookScope.TOOL,
            HookPoint.BEFORE_TOOL_CALL,
            lambda call, state: ShortCircuit("search only"),
            tool_name="search",
        )
        call = ToolCall("calculator", {}, id="c1")

        assert await pipeline.before_specific_tool_call(call, turn_state) == Continue(call)

    @pytest.mark.asyncio
    async def test_invalid_shape_falls_back(
        self,
        pipeline: InterceptorPipeline,
        interceptor_config: InterceptorConfig,
        errors: ErrorClassifier,
        sample_tool_call: ToolCall,
        turn_state: TurnState,
    ):
        """Test that a wrongly shaped return is treated as a failure."""
        interceptor_config.register(
            HookScope.GLOBAL, HookPoint.BEFORE_TOOL_CALL, lambda call, state: "not a decision"
        )

        result = await pipeline.before_tool_call(sample_tool_call, turn_state)

        assert result == Continue(sample_tool_call)
        assert errors.get_error_stats()["total_unique_errors"] == 1

    @pytest.mark.asyncio
    async def test_after_hook_rewrites_and_none_keeps(
        self,
        pipeline: InterceptorPipeline,
        interceptor_config: InterceptorConfig,
        sample_tool_call: ToolCall,
        turn_state: TurnState,
    ):
        interceptor_config.register(
            HookScope.GLOBAL, HookPoint.AFTER_TOOL_CALL, lambda result, call, state: result * 2
        )
        interceptor_config.register(
            HookScope.TOOL,
            HookPoint.AFTER_TOOL_CALL,
            lambda result, call, state: None,
            tool_name="calculator",
        )

        assert await pipeline.after_tool_call("4", sample_tool_call, turn_state) == "44"
        assert await pipeline.after_specific_tool_call("4", sample_tool_call, turn_state) == "4"


class TestCoreStages:
    """Tests for core interceptors."""

    @pytest.mark.asyncio
    async def test_before_model_invoke_rewrites_messages(
        self,
        pipeline: InterceptorPipeline,
        interceptor_config: InterceptorConfig,
        turn_state: TurnState,
    ):
        interceptor_config.register(
            HookScope.CORE,
            HookPoint.BEFORE_MODEL_INVOKE,
            lambda messages, state: [Message.system("Be brief.")] + messages,
        )

        messages = await pipeline.before_model_invoke(turn_state.messages, turn_state)

        assert [m.content for m in messages] == ["Be brief.", "Calculate 2 + 2"]

    @pytest.mark.asyncio
    async def test_before_model_invoke_rejects_non_list(
        self,
        pipeline: InterceptorPipeline,
        interceptor_config: InterceptorConfig,
        turn_state: TurnState,
    ):
        interceptor_config.register(
            HookScope.CORE, HookPoint.BEFORE_MODEL_INVOKE, lambda messages, state: "oops"
        )

        messages = await pipeline.before_model_invoke(turn_state.messages, turn_state)

        assert messages is turn_state.messages

    @pytest.mark.asyncio
    async def test_after_agent_complete(
        self,
        pipeline: InterceptorPipeline,
        interceptor_config: InterceptorConfig,
        turn_state: TurnState,
    ):
        """Test that the final state can be replaced, but only by a TurnState."""

        async def annotate(state: TurnState) -> TurnState:
            return state.merge([Message.assistant("annotated")])

        interceptor_config.register(HookScope.CORE, HookPoint.AFTER_AGENT_COMPLETE, annotate)

        final = await pipeline.after_agent_complete(turn_state)

        assert final.last_message.content == "annotated"

    @pytest.mark.asyncio
    async def test_cleanup_releases_locks(self, pipeline: InterceptorPipeline):
        release = asyncio.Event()

        async def blocker():
            await release.wait()

        task = asyncio.create_task(pipeline.run("held", blocker, None))
        await asyncio.sleep(0)

        await pipeline.cleanup(max_wait=0.05)

        assert await asyncio.wait_for(pipeline.run("held", lambda: "free", None), 1.0) == "free"
        release.set()
        await task

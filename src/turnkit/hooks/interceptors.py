"""Interceptor pipeline: mutating hooks with key locks and a soft concurrency limit.

Every hook invocation goes through ``InterceptorPipeline.run``:

1. Disabled config or no registered hook: return the input unchanged.
2. Wait for any running invocation under the same key to settle.
3. While the number of active invocations is at the limit, poll for a free
   slot up to ``max_slot_wait`` seconds. The limit is advisory: when the
   wait expires the hook runs anyway and a warning is logged.
4. Run the hook. A failure, or a return value of the wrong shape, is
   routed through the ErrorClassifier and the original input is returned.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from turnkit.core.errors import (
    AgentError,
    ConfigurationError,
    ErrorClassifier,
    ErrorKind,
    ErrorSeverity,
)
from turnkit.llm.base import Message, ToolCall

from .types import (
    Continue,
    HookFunction,
    HookPoint,
    HookScope,
    InterceptorConfig,
    InterceptorResult,
    ShortCircuit,
    hook_key,
)

if TYPE_CHECKING:
    from turnkit.execution.state import TurnState

logger = logging.getLogger(__name__)


def _shape_error(key: str, expected: str, got: Any) -> AgentError:
    return AgentError(
        f"Interceptor '{key}' returned {type(got).__name__}, expected {expected}",
        kind=ErrorKind.VALIDATION,
        severity=ErrorSeverity.MEDIUM,
        context={"component": "InterceptorPipeline", "operation": "normalize", "key": key},
    )


class InterceptorPipeline:
    """Runs interceptor hooks at the turn's extension points.

    Example:
        config = InterceptorConfig()
        config.register(
            HookScope.GLOBAL,
            HookPoint.AFTER_TOOL_CALL,
            lambda result, call, state: f"[{call.name}] {result}",
        )
        pipeline = InterceptorPipeline(config, ErrorClassifier())
        result = await pipeline.after_tool_call("4", call, state)
    """

    def __init__(
        self,
        config: Optional[InterceptorConfig],
        errors: Optional[ErrorClassifier] = None,
        concurrency_limit: int = 10,
        slot_poll_interval: float = 0.05,
        max_slot_wait: float = 5.0,
    ):
        """Initialize the pipeline.

        Args:
            config: Interceptor hooks. Required.
            errors: Classifier receiving hook failures.
            concurrency_limit: Active invocations before callers start waiting.
            slot_poll_interval: Seconds between slot checks while waiting.
            max_slot_wait: Seconds to wait for a slot before running anyway.

        Raises:
            ConfigurationError: If config is missing or a limit is invalid.
        """
        if config is None:
            raise ConfigurationError(
                "Interceptor configuration is required",
                context={"component": "InterceptorPipeline", "operation": "init"},
            )
        if concurrency_limit < 1:
            raise ConfigurationError(
                f"concurrency_limit must be at least 1, got {concurrency_limit}",
                context={"component": "InterceptorPipeline", "operation": "init"},
            )

        self.config = config
        self.errors = errors or ErrorClassifier()
        self.concurrency_limit = concurrency_limit
        self.slot_poll_interval = slot_poll_interval
        self.max_slot_wait = max_slot_wait

        self._locks: Dict[str, asyncio.Event] = {}
        self._active = 0

    @property
    def active_task_count(self) -> int:
        """Number of hook invocations currently running."""
        return self._active

    async def run(
        self,
        key: str,
        hook_fn: Optional[Callable[[], Any]],
        fallback: Any,
        normalize: Optional[Callable[[Any], Any]] = None,
    ) -> Any:
        """Run one hook invocation under the pipeline's discipline.

        Args:
            key: Mutual-exclusion key for this invocation.
            hook_fn: Zero-argument callable invoking the hook, sync or async.
                None means no hook is registered.
            fallback: Value returned when there is no hook or it fails.
            normalize: Converts the hook's return value; raising marks the
                invocation as failed.

        Returns:
            The hook's (normalized) result, or ``fallback``.
        """
        if not self.config.enabled or hook_fn is None:
            return fallback

        await self._wait_for_slot(key)
        await self._wait_for_key(key)

        done = asyncio.Event()
        self._locks[key] = done
        self._active += 1
        try:
            result = hook_fn()
            if inspect.isawaitable(result):
                result = await result
            if normalize is not None:
                result = normalize(result)
            return result
        except Exception as e:
            self.errors.handle(
                e,
                {"component": "InterceptorPipeline", "operation": "run", "key": key},
            )
            return fallback
        finally:
            self._active -= 1
            if self._locks.get(key) is done:
                del self._locks[key]
            done.set()

    async def _wait_for_key(self, key: str) -> None:
        # Re-check after every wake up: another waiter may have claimed the key
        while key in self._locks:
            logger.debug(f"Interceptor '{key}' waiting for running invocation")
            await self._locks[key].wait()

    async def _wait_for_slot(self, key: str) -> None:
        if self._active < self.concurrency_limit:
            return

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.max_slot_wait
        while self._active >= self.concurrency_limit:
            if loop.time() >= deadline:
                logger.warning(
                    f"Interceptor limit of {self.concurrency_limit} still reached after "
                    f"{self.max_slot_wait}s, running '{key}' anyway"
                )
                return
            await asyncio.sleep(self.slot_poll_interval)

    # ------------------------------------------------------------------
    # Core stages
    # ------------------------------------------------------------------

    async def before_model_invoke(
        self,
        messages: List[Message],
        state: TurnState,
    ) -> List[Message]:
        """Let the CORE hook rewrite the outgoing message sequence."""
        hook = self.config.lookup(HookScope.CORE, HookPoint.BEFORE_MODEL_INVOKE)
        if hook is None:
            return messages

        key = hook_key(HookScope.CORE, HookPoint.BEFORE_MODEL_INVOKE)

        def normalize(result: Any) -> List[Message]:
            if not isinstance(result, list):
                raise _shape_error(key, "a list of messages", result)
            return result

        return await self.run(key, lambda: hook(messages, state), messages, normalize)

    async def after_agent_complete(self, state: TurnState) -> TurnState:
        """Let the CORE hook rewrite the final turn state."""
        hook = self.config.lookup(HookScope.CORE, HookPoint.AFTER_AGENT_COMPLETE)
        if hook is None:
            return state

        from turnkit.execution.state import TurnState

        key = hook_key(HookScope.CORE, HookPoint.AFTER_AGENT_COMPLETE)

        def normalize(result: Any) -> TurnState:
            if not isinstance(result, TurnState):
                raise _shape_error(key, "TurnState", result)
            return result

        return await self.run(key, lambda: hook(state), state, normalize)

    # ------------------------------------------------------------------
    # Tool stages
    # ------------------------------------------------------------------

    async def before_tool_call(self, call: ToolCall, state: TurnState) -> InterceptorResult:
        """Run the GLOBAL before-tool hook."""
        return await self._before_tool(HookScope.GLOBAL, call, state)

    async def before_specific_tool_call(
        self,
        call: ToolCall,
        state: TurnState,
    ) -> InterceptorResult:
        """Run the before-tool hook registered for ``call.name``, if any."""
        return await self._before_tool(HookScope.TOOL, call, state)

    async def after_tool_call(self, result: Any, call: ToolCall, state: TurnState) -> Any:
        """Run the GLOBAL after-tool hook."""
        return await self._after_tool(HookScope.GLOBAL, result, call, state)

    async def after_specific_tool_call(
        self,
        result: Any,
        call: ToolCall,
        state: TurnState,
    ) -> Any:
        """Run the after-tool hook registered for ``call.name``, if any."""
        return await self._after_tool(HookScope.TOOL, result, call, state)

    async def _before_tool(
        self,
        scope: HookScope,
        call: ToolCall,
        state: TurnState,
    ) -> InterceptorResult:
        hook = self._tool_hook(scope, HookPoint.BEFORE_TOOL_CALL, call)
        fallback = Continue(call)
        if hook is None:
            return fallback

        key = hook_key(scope, HookPoint.BEFORE_TOOL_CALL, call)
        return await self.run(
            key,
            lambda: hook(call, state),
            fallback,
            lambda result: self._normalize_before(key, result, call),
        )

    async def _after_tool(
        self,
        scope: HookScope,
        result: Any,
        call: ToolCall,
        state: TurnState,
    ) -> Any:
        hook = self._tool_hook(scope, HookPoint.AFTER_TOOL_CALL, call)
        if hook is None:
            return result

        key = hook_key(scope, HookPoint.AFTER_TOOL_CALL, call)
        # None leaves the result unchanged
        return await self.run(
            key,
            lambda: hook(result, call, state),
            result,
            lambda new: result if new is None else new,
        )

    def _tool_hook(
        self,
        scope: HookScope,
        point: HookPoint,
        call: ToolCall,
    ) -> Optional[HookFunction]:
        tool_name = call.name if scope is HookScope.TOOL else None
        return self.config.lookup(scope, point, tool_name)

    @staticmethod
    def _normalize_before(key: str, result: Any, call: ToolCall) -> InterceptorResult:
        if result is None:
            return Continue(call)
        if isinstance(result, ToolCall):
            result = Continue(result)
        if isinstance(result, ShortCircuit):
            return result
        if not isinstance(result, Continue):
            raise _shape_error(key, "ShortCircuit, Continue or ToolCall", result)

        modified = result.modified_input
        if not isinstance(modified, ToolCall):
            raise _shape_error(key, "Continue carrying a ToolCall", modified)
        if modified.id != call.id:
            logger.debug(f"Interceptor '{key}' changed call id {modified.id!r}, restoring {call.id!r}")
            return Continue(modified.with_id(call.id))
        return result

    async def cleanup(self, max_wait: float = 3.0) -> None:
        """Wait up to ``max_wait`` seconds for active hooks, then release all key locks."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + max_wait
        while self._active > 0 and loop.time() < deadline:
            await asyncio.sleep(self.slot_poll_interval)

        if self._active > 0:
            logger.warning(f"Interceptor cleanup finished with {self._active} hooks still running")

        locks = list(self._locks.values())
        self._locks.clear()
        for event in locks:
            event.set()
        logger.debug("Interceptor pipeline cleaned up")

"""Breakpoint pipeline: best-effort observation hooks.

Breakpoints never block the turn for long and never change its data:

* When ``max_concurrent`` breakpoints are already running, a new
  invocation is skipped entirely.
* An invocation whose key is already running is skipped as a duplicate.
* Each invocation runs as its own task and is awaited for at most
  ``timeout`` seconds. On timeout the task's CancellationToken is
  cancelled and the pipeline stops waiting, but the task keeps running
  detached until it finishes on its own. Cancelling the token is only a
  signal; hook code can poll ``current_cancellation_token()`` to honor it.
"""

from __future__ import annotations

import asyncio
import contextvars
import inspect
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Set

from turnkit.core.errors import ConfigurationError, ErrorClassifier
from turnkit.llm.base import Message, ToolCall

from .types import BreakpointConfig, HookPoint, HookScope, hook_key

if TYPE_CHECKING:
    from turnkit.execution.state import TurnState

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation signal handed to a breakpoint task."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled})"


_current_token: contextvars.ContextVar[Optional[CancellationToken]] = contextvars.ContextVar(
    "turnkit_breakpoint_token", default=None
)


def current_cancellation_token() -> Optional[CancellationToken]:
    """Return the token of the breakpoint task running this code, if any."""
    return _current_token.get()


class BreakpointPipeline:
    """Runs breakpoint hooks at the turn's extension points.

    Example:
        config = BreakpointConfig()
        config.register(
            HookScope.MODEL,
            HookPoint.AFTER_MODEL_CALL,
            lambda response, state: print(response.content),
        )
        pipeline = BreakpointPipeline(config, timeout=1.0)
    """

    def __init__(
        self,
        config: Optional[BreakpointConfig],
        errors: Optional[ErrorClassifier] = None,
        max_concurrent: int = 5,
        timeout: float = 2.0,
    ):
        """Initialize the pipeline.

        Args:
            config: Breakpoint hooks. Required.
            errors: Classifier receiving hook failures.
            max_concurrent: Active invocations beyond which new ones are skipped.
            timeout: Seconds to wait for a single invocation.

        Raises:
            ConfigurationError: If config is missing or a limit is invalid.
        """
        if config is None:
            raise ConfigurationError(
                "Breakpoint configuration is required",
                context={"component": "BreakpointPipeline", "operation": "init"},
            )
        if max_concurrent < 1:
            raise ConfigurationError(
                f"max_concurrent must be at least 1, got {max_concurrent}",
                context={"component": "BreakpointPipeline", "operation": "init"},
            )

        self.config = config
        self.errors = errors or ErrorClassifier()
        self.max_concurrent = max_concurrent
        self.timeout = timeout

        self._active: Dict[str, asyncio.Task] = {}
        self._tokens: Dict[asyncio.Task, CancellationToken] = {}
        self._detached: Set[asyncio.Task] = set()
        self.skipped_count = 0

    @property
    def active_count(self) -> int:
        """Number of invocations the pipeline is currently waiting on."""
        return len(self._active)

    @property
    def detached_count(self) -> int:
        """Number of timed-out invocations still running."""
        return len(self._detached)

    async def run(self, key: str, hook_fn: Optional[Callable[[], Any]]) -> None:
        """Run one breakpoint invocation; never raises for hook failures.

        Args:
            key: Duplicate-suppression key for this invocation.
            hook_fn: Zero-argument callable invoking the hook, sync or async.
                None means no hook is registered.
        """
        if not self.config.enabled or hook_fn is None:
            return

        if len(self._active) >= self.max_concurrent:
            self.skipped_count += 1
            logger.debug(
                f"Skipping breakpoint '{key}': {len(self._active)} of "
                f"{self.max_concurrent} slots in use"
            )
            return

        if key in self._active:
            self.skipped_count += 1
            logger.debug(f"Skipping duplicate breakpoint '{key}'")
            return

        token = CancellationToken()
        task = asyncio.create_task(self._invoke(key, hook_fn, token), name=f"breakpoint:{key}")
        self._active[key] = task
        self._tokens[task] = token
        task.add_done_callback(self._forget_token)

        try:
            done, _ = await asyncio.wait({task}, timeout=self.timeout)
            if not done:
                token.cancel()
                self._detach(task)
                logger.warning(
                    f"Breakpoint '{key}' timed out after {self.timeout}s, "
                    "continuing without waiting for it"
                )
        except asyncio.CancelledError:
            token.cancel()
            self._detach(task)
            raise
        finally:
            if self._active.get(key) is task:
                del self._active[key]

    async def _invoke(
        self,
        key: str,
        hook_fn: Callable[[], Any],
        token: CancellationToken,
    ) -> None:
        # Runs in the task's own copy of the context
        _current_token.set(token)
        try:
            result = hook_fn()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self.errors.handle(
                e,
                {"component": "BreakpointPipeline", "operation": "run", "key": key},
            )

    def _detach(self, task: asyncio.Task) -> None:
        if task.done():
            return
        self._detached.add(task)
        task.add_done_callback(self._detached.discard)

    def _forget_token(self, task: asyncio.Task) -> None:
        self._tokens.pop(task, None)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def before_model_invoke(self, messages: List[Message], state: TurnState) -> None:
        """Observe the final outgoing message sequence."""
        hook = self.config.lookup(HookScope.CORE, HookPoint.BEFORE_MODEL_INVOKE)
        if hook is not None:
            await self.run(
                hook_key(HookScope.CORE, HookPoint.BEFORE_MODEL_INVOKE),
                lambda: hook(messages, state),
            )

    async def after_agent_complete(self, state: TurnState) -> None:
        """Observe the final turn state."""
        hook = self.config.lookup(HookScope.CORE, HookPoint.AFTER_AGENT_COMPLETE)
        if hook is not None:
            await self.run(
                hook_key(HookScope.CORE, HookPoint.AFTER_AGENT_COMPLETE),
                lambda: hook(state),
            )

    async def before_model_call(self, state: TurnState) -> None:
        hook = self.config.lookup(HookScope.MODEL, HookPoint.BEFORE_MODEL_CALL)
        if hook is not None:
            await self.run(
                hook_key(HookScope.MODEL, HookPoint.BEFORE_MODEL_CALL),
                lambda: hook(state),
            )

    async def after_model_call(self, response: Message, state: TurnState) -> None:
        """Observe the raw model response."""
        hook = self.config.lookup(HookScope.MODEL, HookPoint.AFTER_MODEL_CALL)
        if hook is not None:
            await self.run(
                hook_key(HookScope.MODEL, HookPoint.AFTER_MODEL_CALL),
                lambda: hook(response, state),
            )

    async def before_tool_call(self, call: ToolCall, state: TurnState) -> None:
        await self._tool_stage(HookScope.GLOBAL, HookPoint.BEFORE_TOOL_CALL, call, (call, state))

    async def before_specific_tool_call(self, call: ToolCall, state: TurnState) -> None:
        await self._tool_stage(HookScope.TOOL, HookPoint.BEFORE_TOOL_CALL, call, (call, state))

    async def after_tool_call(self, result: Any, call: ToolCall, state: TurnState) -> None:
        await self._tool_stage(
            HookScope.GLOBAL, HookPoint.AFTER_TOOL_CALL, call, (result, call, state)
        )

    async def after_specific_tool_call(self, result: Any, call: ToolCall, state: TurnState) -> None:
        await self._tool_stage(
            HookScope.TOOL, HookPoint.AFTER_TOOL_CALL, call, (result, call, state)
        )

    async def _tool_stage(
        self,
        scope: HookScope,
        point: HookPoint,
        call: ToolCall,
        args: tuple,
    ) -> None:
        tool_name = call.name if scope is HookScope.TOOL else None
        hook = self.config.lookup(scope, point, tool_name)
        if hook is not None:
            await self.run(hook_key(scope, point, call), lambda: hook(*args))

    async def cleanup(self, max_wait: float = 2.0) -> None:
        """Wait up to ``max_wait`` seconds for running breakpoints, then cancel the rest."""
        tasks = set(self._active.values()) | self._detached
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=max_wait)
            if pending:
                logger.warning(f"Cancelling {len(pending)} breakpoint tasks still running")
                for task in pending:
                    token = self._tokens.get(task)
                    if token is not None:
                        token.cancel()
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        self._active.clear()
        self._detached.clear()
        self._tokens.clear()
        logger.debug("Breakpoint pipeline cleaned up")

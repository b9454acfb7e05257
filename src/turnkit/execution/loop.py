"""Turn orchestrator: the model -> tools -> model loop.

The loop is a three-state machine. It starts in MODEL; after a model call
it moves to TOOLS when the response requests tool calls and to END
otherwise; TOOLS always returns to MODEL. Model calls within one run are
strictly sequential.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from turnkit.config import AgentConfig
from turnkit.core.errors import (
    AgentError,
    ConfigurationError,
    ErrorClassifier,
    ErrorKind,
    ErrorSeverity,
)
from turnkit.core.ids import generate_id
from turnkit.hooks.breakpoints import BreakpointPipeline
from turnkit.hooks.interceptors import InterceptorPipeline
from turnkit.hooks.types import BreakpointConfig, InterceptorConfig
from turnkit.llm.base import Message, MessageRole, ModelInvoker
from turnkit.observability.logging import bind_run_context
from turnkit.observability.telemetry import TelemetryRecorder
from turnkit.tools.base import BaseTool, FunctionTool
from turnkit.tools.executor import ExecutionConfig, ToolExecutionEngine
from turnkit.tools.registry import ToolLike, ToolRegistry

from .checkpoint import Checkpointer
from .state import LoopPhase, TurnState

logger = logging.getLogger(__name__)


@dataclass
class ConcurrencyStatus:
    """Point-in-time view of the orchestrator's concurrent work."""

    active_interceptor_tasks: int
    active_breakpoint_tasks: int
    registry_size: int


class TurnOrchestrator:
    """Drives the model -> tools loop with hooks around every stage.

    Example:
        orchestrator = TurnOrchestrator(
            AgentConfig(name="calc", system_prompt="You are a calculator."),
            model=my_model,
            tools=[calculator],
            checkpointer=InMemoryCheckpointer(),
        )
        state = await orchestrator.run("Calculate 2 + 2", thread_id="t-1")
        if state is not None:
            print(state.last_message.content)
    """

    def __init__(
        self,
        config: Union[AgentConfig, Mapping[str, Any]],
        model: ModelInvoker,
        tools: Optional[Union[ToolRegistry, Sequence[ToolLike]]] = None,
        interceptors: Optional[InterceptorConfig] = None,
        breakpoints: Optional[BreakpointConfig] = None,
        checkpointer: Optional[Checkpointer] = None,
        telemetry: Optional[TelemetryRecorder] = None,
        errors: Optional[ErrorClassifier] = None,
        execution: Optional[ExecutionConfig] = None,
    ):
        """Initialize the orchestrator.

        Args:
            config: Agent configuration, as a model or a mapping.
            model: Model invocation service.
            tools: A registry to share, or tools to register.
            interceptors: Interceptor hooks. None means no interceptors.
            breakpoints: Breakpoint hooks. None means no breakpoints.
            checkpointer: State persistence between runs of a thread.
            telemetry: Recorder to use. A private one is created if omitted.
            errors: Classifier to use. A private one is created if omitted.
            execution: Tool execution settings; defaults take the tool
                timeout from ``config``.

        Raises:
            ConfigurationError: If the configuration or the model is missing
                or invalid.
        """
        self.config = AgentConfig.parse(config)
        if model is None or not callable(getattr(model, "invoke", None)):
            raise ConfigurationError(
                "A model with an async invoke(messages, tools) method is required",
                context={"component": "TurnOrchestrator", "operation": "init"},
            )
        self.model = model

        self.telemetry = telemetry or TelemetryRecorder()
        self.errors = errors or ErrorClassifier(telemetry=self.telemetry)

        if isinstance(tools, ToolRegistry):
            self.registry = tools
        else:
            self.registry = ToolRegistry(telemetry=self.telemetry)
            if tools:
                self.registry.set_all(list(tools))

        self.interceptors = InterceptorPipeline(
            interceptors if interceptors is not None else InterceptorConfig(),
            self.errors,
            concurrency_limit=self.config.concurrency.interceptors,
            max_slot_wait=self.config.interceptor_slot_wait,
        )
        self.breakpoints = BreakpointPipeline(
            breakpoints if breakpoints is not None else BreakpointConfig(),
            self.errors,
            max_concurrent=self.config.concurrency.breakpoints,
            timeout=self.config.breakpoint_timeout,
        )
        self.engine = ToolExecutionEngine(
            self.registry,
            self.interceptors,
            self.breakpoints,
            self.telemetry,
            self.errors,
            config=execution or ExecutionConfig(timeout=self.config.tool_timeout),
            agent_name=self.config.name,
        )

        self.checkpointer = checkpointer if self.config.memory else None
        if checkpointer is not None and not self.config.memory:
            logger.info(f"Agent '{self.config.name}' has memory disabled, ignoring checkpointer")

        self._runs = 0

    @property
    def name(self) -> str:
        return self.config.name

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    async def run(
        self,
        user_input: Union[str, Message],
        thread_id: Optional[str] = None,
    ) -> Optional[TurnState]:
        """Run one turn to completion.

        Args:
            user_input: The user's message.
            thread_id: Thread to load prior state from and save to.

        Returns:
            The final turn state, or None when the run did not reach a
            terminal state (model failure or iteration cap).
        """
        run_id = generate_id("run")
        self._runs += 1

        if self.config.monitor_memory and not self.telemetry.is_monitoring:
            self.telemetry.start_monitoring(self.config.memory_sample_interval)

        with bind_run_context(run_id=run_id, thread_id=thread_id, agent=self.config.name):
            logger.info(f"Agent '{self.config.name}' starting run {run_id}")
            self.telemetry.increment("agent.runs")

            with self.telemetry.timer("agent.run"):
                state = await self._initial_state(user_input, thread_id)
                final = await self._loop(state)

            if final is None:
                self.telemetry.increment("agent.run.failure")
                self.telemetry.record_error("agent.run.no_final_state")
                logger.error(f"Run {run_id} finished without a final state")
                return None

            await self._save(thread_id, final)

            final = await self.interceptors.after_agent_complete(final)
            await self.breakpoints.after_agent_complete(final)

            self.telemetry.increment("agent.run.success")
            logger.info(f"Run {run_id} completed with {len(final.messages)} messages")
            return final

    async def _initial_state(
        self,
        user_input: Union[str, Message],
        thread_id: Optional[str],
    ) -> TurnState:
        message = user_input if isinstance(user_input, Message) else Message.user(str(user_input))
        prior = await self._load(thread_id)
        if prior is None:
            prior = TurnState(thread_id=thread_id)
        return prior.merge([message])

    async def _loop(self, state: TurnState) -> Optional[TurnState]:
        phase = LoopPhase.MODEL
        iterations = 0
        max_iterations = self.config.max_iterations

        while phase is not LoopPhase.END:
            if phase is LoopPhase.MODEL:
                if max_iterations is not None and iterations >= max_iterations:
                    logger.warning(f"Stopping after reaching max_iterations={max_iterations}")
                    return None
                iterations += 1

                try:
                    response = await self._call_model(state)
                except Exception as e:
                    self.errors.handle(
                        e,
                        {
                            "component": "TurnOrchestrator",
                            "operation": "invoke_model",
                            "agent": self.config.name,
                            "iteration": iterations,
                        },
                    )
                    return None

                state = state.merge([response])
                phase = LoopPhase.TOOLS if state.pending_tool_calls else LoopPhase.END
                logger.debug(f"Iteration {iterations}: model -> {phase.value}")
            else:
                results = await self.engine.execute(state.pending_tool_calls, state)
                state = state.merge(results)
                phase = LoopPhase.MODEL

        return state

    async def _call_model(self, state: TurnState) -> Message:
        await self.breakpoints.before_model_call(state)

        messages = list(state.messages)
        if self.config.system_prompt and not any(
            m.role == MessageRole.SYSTEM for m in messages
        ):
            messages.insert(0, Message.system(self.config.system_prompt))

        messages = await self.interceptors.before_model_invoke(messages, state)
        await self.breakpoints.before_model_invoke(messages, state)

        tools = self.registry.to_definitions() or None
        self.telemetry.increment("agent.model.calls")
        with self.telemetry.timer("agent.model"):
            response = await self.model.invoke(messages, tools)

        if not isinstance(response, Message):
            raise AgentError(
                f"Model returned {type(response).__name__}, expected Message",
                kind=ErrorKind.VALIDATION,
                severity=ErrorSeverity.HIGH,
                context={"component": "TurnOrchestrator", "operation": "invoke_model"},
            )

        await self.breakpoints.after_model_call(response, state)
        return self._with_call_ids(response)

    @staticmethod
    def _with_call_ids(response: Message) -> Message:
        # Ids are assigned once, before any hook sees the calls
        if not response.tool_calls or all(call.id for call in response.tool_calls):
            return response
        calls = [call if call.id else call.with_id(generate_id("call")) for call in response.tool_calls]
        return Message(
            role=response.role,
            content=response.content,
            name=response.name,
            tool_calls=calls,
            tool_call_id=response.tool_call_id,
            is_error=response.is_error,
        )

    async def _load(self, thread_id: Optional[str]) -> Optional[TurnState]:
        if self.checkpointer is None or thread_id is None:
            return None
        try:
            return await self.checkpointer.load(thread_id)
        except Exception as e:
            self.errors.handle(
                e,
                {"component": "TurnOrchestrator", "operation": "load_checkpoint", "thread_id": thread_id},
            )
            return None

    async def _save(self, thread_id: Optional[str], state: TurnState) -> None:
        if self.checkpointer is None or thread_id is None:
            return
        try:
            await self.checkpointer.save(thread_id, state)
        except Exception as e:
            self.errors.handle(
                e,
                {"component": "TurnOrchestrator", "operation": "save_checkpoint", "thread_id": thread_id},
            )

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    def add_tool(self, tool: ToolLike) -> BaseTool:
        """Add a tool; visible to every later lookup, including in-flight batches."""
        return self.registry.add(tool)

    def get_tool(self, name: Optional[str] = None) -> Union[BaseTool, List[BaseTool], None]:
        """Return the named tool, or every tool when no name is given."""
        if name is None:
            return self.registry.get_all()
        return self.registry.get(name)

    def set_tools(self, tools: Sequence[ToolLike]) -> None:
        """Replace the whole tool set."""
        self.registry.set_all(list(tools))

    def as_tool(self, name: Optional[str] = None, description: Optional[str] = None) -> FunctionTool:
        """Expose this orchestrator as a tool taking a ``prompt``.

        Each invocation is an independent run without thread memory.
        """

        async def ask(prompt: str) -> str:
            """Delegate a task to the agent.

            Args:
                prompt: Task for the agent.
            """
            state = await self.run(prompt)
            if state is None or state.last_message is None:
                raise AgentError(
                    f"Agent '{self.config.name}' did not produce a result",
                    kind=ErrorKind.RUNTIME,
                    severity=ErrorSeverity.MEDIUM,
                    context={"component": "TurnOrchestrator", "operation": "as_tool"},
                )
            return state.last_message.content

        return FunctionTool(
            ask,
            name=name or self.config.name,
            description=description or f"Delegate a task to the {self.config.name} agent",
        )

    # ------------------------------------------------------------------
    # Status and lifecycle
    # ------------------------------------------------------------------

    def get_concurrency_status(self) -> ConcurrencyStatus:
        return ConcurrencyStatus(
            active_interceptor_tasks=self.interceptors.active_task_count,
            active_breakpoint_tasks=self.breakpoints.active_count,
            registry_size=len(self.registry),
        )

    def get_performance_report(self) -> Dict[str, Any]:
        """Telemetry report plus an ``agent`` section for this orchestrator."""
        report = self.telemetry.get_report()
        report["agent"] = {
            "name": self.config.name,
            "runs": self._runs,
            "tools": self.registry.names(),
            "concurrency": asdict(self.get_concurrency_status()),
            "skipped_breakpoints": self.breakpoints.skipped_count,
            "detached_breakpoints": self.breakpoints.detached_count,
            "error_stats": self.errors.get_error_stats(),
        }
        return report

    def reset_performance_stats(self) -> None:
        self.telemetry.reset()
        self.errors.clear_error_stats()
        self._runs = 0

    async def cleanup(self) -> None:
        """Release hook tasks, stop memory monitoring and clear the tool registry."""
        await self.interceptors.cleanup()
        await self.breakpoints.cleanup()
        await self.telemetry.stop_monitoring()
        self.registry.clear()
        logger.info(f"Agent '{self.config.name}' cleaned up")

    def __repr__(self) -> str:
        return f"TurnOrchestrator(name={self.config.name!r}, tools={self.registry.names()})"

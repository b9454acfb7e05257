"""turnkit - the control plane of an agent's model/tools turn loop.

This package provides:
- A turn orchestrator alternating model calls and tool execution
- Interceptor hooks that may rewrite data or short-circuit tool calls
- Breakpoint hooks that observe without blocking the turn
- Concurrent tool execution with per-call isolation
- Typed, deduplicated errors with retry helpers
- In-process telemetry

Example:
    from turnkit import AgentConfig, Message, TurnOrchestrator, tool

    @tool()
    def calculator(expression: str) -> str:
        '''Evaluate an arithmetic expression.

        Args:
            expression: Expression such as "2 + 2".
        '''
        ...

    class MyModel:
        async def invoke(self, messages, tools=None) -> Message:
            ...

    orchestrator = TurnOrchestrator(AgentConfig(name="calc"), MyModel(), tools=[calculator])
    state = await orchestrator.run("Calculate 2 + 2")
"""

__version__ = "0.1.0"

# Re-export main components for convenience
from .config import (
    AgentConfig,
    ConcurrencyConfig,
)
from .core import (
    AgentError,
    ConfigurationError,
    ErrorClassifier,
    ErrorClassifierConfig,
    ErrorKind,
    ErrorSeverity,
)
from .execution import (
    Checkpointer,
    ConcurrencyStatus,
    FileCheckpointer,
    InMemoryCheckpointer,
    LoopPhase,
    TurnOrchestrator,
    TurnState,
)
from .hooks import (
    BreakpointConfig,
    BreakpointPipeline,
    Continue,
    HookPoint,
    HookScope,
    InterceptorConfig,
    InterceptorPipeline,
    ShortCircuit,
    current_cancellation_token,
)
from .llm import (
    Message,
    MessageRole,
    ModelInvoker,
    ToolCall,
    ToolDefinition,
)
from .observability import (
    LogConfig,
    TelemetryRecorder,
    bind_run_context,
    configure_logging,
)
from .tools import (
    BaseTool,
    ExecutionConfig,
    FunctionTool,
    ToolExecutionEngine,
    ToolRegistry,
    tool,
)

__all__ = [
    "__version__",
    # Config
    "AgentConfig",
    "ConcurrencyConfig",
    # Errors
    "AgentError",
    "ConfigurationError",
    "ErrorClassifier",
    "ErrorClassifierConfig",
    "ErrorKind",
    "ErrorSeverity",
    # Execution
    "TurnOrchestrator",
    "TurnState",
    "LoopPhase",
    "ConcurrencyStatus",
    "Checkpointer",
    "InMemoryCheckpointer",
    "FileCheckpointer",
    # Hooks
    "HookScope",
    "HookPoint",
    "InterceptorConfig",
    "BreakpointConfig",
    "InterceptorPipeline",
    "BreakpointPipeline",
    "ShortCircuit",
    "Continue",
    "current_cancellation_token",
    # LLM
    "Message",
    "MessageRole",
    "ModelInvoker",
    "ToolCall",
    "ToolDefinition",
    # Observability
    "LogConfig",
    "TelemetryRecorder",
    "configure_logging",
    "bind_run_context",
    # Tools
    "BaseTool",
    "FunctionTool",
    "ToolRegistry",
    "ToolExecutionEngine",
    "ExecutionConfig",
    "tool",
]

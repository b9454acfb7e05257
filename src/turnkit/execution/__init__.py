"""Turn execution: state, checkpoints and the orchestrator.

This package provides the loop that alternates model calls and tool
execution, including:
- TurnOrchestrator driving the MODEL -> TOOLS -> MODEL state machine
- TurnState, the append-only message history of a thread
- Checkpointers restoring state between runs of a thread

Example:
    from turnkit.execution import InMemoryCheckpointer, TurnOrchestrator

    orchestrator = TurnOrchestrator(
        {"name": "assistant"},
        model=my_model,
        tools=[search],
        checkpointer=InMemoryCheckpointer(),
    )
    state = await orchestrator.run("What is the weather?", thread_id="t-1")
"""

from .checkpoint import (
    Checkpointer,
    FileCheckpointer,
    InMemoryCheckpointer,
)
from .loop import (
    ConcurrencyStatus,
    TurnOrchestrator,
)
from .state import (
    LoopPhase,
    TurnState,
)

__all__ = [
    # Loop
    "TurnOrchestrator",
    "ConcurrencyStatus",
    "LoopPhase",
    # State
    "TurnState",
    # Checkpoints
    "Checkpointer",
    "InMemoryCheckpointer",
    "FileCheckpointer",
]

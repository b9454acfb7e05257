"""Agent configuration models."""

from __future__ import annotations

from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from turnkit.core.errors import ConfigurationError


class ConcurrencyConfig(BaseModel):
    """Concurrency limits of the hook pipelines."""

    interceptors: int = Field(default=10, ge=1, description="Advisory limit of active interceptors")
    breakpoints: int = Field(default=5, ge=1, description="Active breakpoints before new ones are skipped")


class AgentConfig(BaseModel):
    """Configuration for a turn orchestrator.

    Attributes:
        name: Agent name, used in logs and error context.
        system_prompt: Prepended to every model call when no system message is present.
        memory: Whether state is loaded from and saved to the checkpointer.
        max_iterations: Optional cap on model calls per run.
        concurrency: Hook pipeline limits.
        breakpoint_timeout: Seconds to wait for a single breakpoint.
        interceptor_slot_wait: Seconds to wait for a free interceptor slot.
        tool_timeout: Seconds allowed for a single tool invocation.
        monitor_memory: Whether to sample process memory while running.
        memory_sample_interval: Seconds between memory samples.
    """

    name: str = Field(min_length=1)
    system_prompt: Optional[str] = None
    memory: bool = True
    max_iterations: Optional[int] = Field(default=None, ge=1)
    concurrency: ConcurrencyConfig = Field(default_factory=ConcurrencyConfig)
    breakpoint_timeout: float = Field(default=2.0, gt=0)
    interceptor_slot_wait: float = Field(default=5.0, ge=0)
    tool_timeout: Optional[float] = Field(default=None, gt=0)
    monitor_memory: bool = False
    memory_sample_interval: float = Field(default=5.0, gt=0)

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name must not be blank")
        return value

    @classmethod
    def parse(cls, config: Union["AgentConfig", Mapping[str, Any], None]) -> "AgentConfig":
        """Validate a config object or mapping.

        Raises:
            ConfigurationError: If the configuration is missing or invalid.
        """
        if isinstance(config, cls):
            return config
        if config is None:
            raise ConfigurationError(
                "Agent configuration is required",
                context={"component": "AgentConfig", "operation": "parse"},
            )
        try:
            return cls.model_validate(dict(config))
        except (ValidationError, TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid agent configuration: {_summarize(e)}",
                context={"component": "AgentConfig", "operation": "parse"},
            ) from e


def _summarize(error: Exception) -> str:
    if isinstance(error, ValidationError):
        return "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in error.errors()
        )
    return str(error)

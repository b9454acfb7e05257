"""Tests for agent configuration."""

from __future__ import annotations

import pytest

from turnkit.config import AgentConfig, ConcurrencyConfig
from turnkit.core.errors import ConfigurationError, ErrorKind


class TestAgentConfig:
    """Tests for AgentConfig."""

    def test_defaults(self):
        config = AgentConfig(name="agent")

        assert config.memory is True
        assert config.max_iterations is None
        assert config.breakpoint_timeout == 2.0
        assert config.interceptor_slot_wait == 5.0
        assert config.concurrency == ConcurrencyConfig(interceptors=10, breakpoints=5)

    def test_parse_returns_instance_unchanged(self):
        config = AgentConfig(name="agent")

        assert AgentConfig.parse(config) is config

    def test_parse_mapping(self):
        config = AgentConfig.parse({"name": "agent", "concurrency": {"breakpoints": 1}})

        assert config.concurrency.breakpoints == 1
        assert config.concurrency.interceptors == 10

    def test_parse_none(self):
        with pytest.raises(ConfigurationError) as exc_info:
            AgentConfig.parse(None)

        assert exc_info.value.kind == ErrorKind.CONFIGURATION
        assert exc_info.value.message == "Agent configuration is required"

    @pytest.mark.parametrize(
        "data,field",
        [
            ({}, "name"),
            ({"name": ""}, "name"),
            ({"name": "   "}, "name"),
            ({"name": "a", "max_iterations": 0}, "max_iterations"),
            ({"name": "a", "breakpoint_timeout": 0}, "breakpoint_timeout"),
            ({"name": "a", "tool_timeout": -1}, "tool_timeout"),
            ({"name": "a", "concurrency": {"interceptors": 0}}, "concurrency.interceptors"),
        ],
    )
    def test_parse_invalid(self, data, field):
        """Test that invalid fields surface as ConfigurationError naming the field."""
        with pytest.raises(ConfigurationError) as exc_info:
            AgentConfig.parse(data)

        assert exc_info.value.message.startswith("Invalid agent configuration:")
        assert field in exc_info.value.message

    def test_parse_non_mapping(self):
        with pytest.raises(ConfigurationError):
            AgentConfig.parse(42)  # type: ignore[arg-type]

"""Errors and identifiers shared by every component."""

from .errors import (
    AgentError,
    ConfigurationError,
    ErrorClassifier,
    ErrorClassifierConfig,
    ErrorKind,
    ErrorSeverity,
)
from .ids import generate_id

__all__ = [
    "AgentError",
    "ConfigurationError",
    "ErrorClassifier",
    "ErrorClassifierConfig",
    "ErrorKind",
    "ErrorSeverity",
    "generate_id",
]

"""Core types and errors shared by every toolgate component."""

from toolgate.core.errors import (
    AccessDenied,
    CommandNotAllowed,
    GatewayError,
    HarmfulPatternDetected,
    InvalidInput,
    ProcessSpawnFailure,
    ProcessTimeout,
    ResolutionError,
    StartupValidationError,
    UnknownTool,
)
from toolgate.core.types import (
    CommandDecision,
    CommandSpec,
    ConfinementDecision,
    ProcessResult,
    TextContent,
    ToolResponse,
)

__all__ = [
    "AccessDenied",
    "CommandDecision",
    "CommandNotAllowed",
    "CommandSpec",
    "ConfinementDecision",
    "GatewayError",
    "HarmfulPatternDetected",
    "InvalidInput",
    "ProcessResult",
    "ProcessSpawnFailure",
    "ProcessTimeout",
    "ResolutionError",
    "StartupValidationError",
    "TextContent",
    "ToolResponse",
    "UnknownTool",
]

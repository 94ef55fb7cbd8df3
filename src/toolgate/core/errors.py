"""Error taxonomy for the toolgate access-control gateway.

Every error raised by the core carries a short ``category`` slug so the
gateway boundary can render a consistent, human-readable denial without
exposing tracebacks to the caller.
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base exception for recoverable gateway failures."""

    category = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def describe(self) -> str:
        """Return the caller-facing rendering of this error."""
        return f"Error: {self.message}"


class AccessDenied(GatewayError):
    """Raised when a path resolves outside every allowed root."""

    category = "access-denied"

    def __init__(
        self, path: str, reason: str | None = None, *, message: str | None = None
    ) -> None:
        if message is None:
            message = f"Access denied - {path} is outside allowed directories"
            if reason:
                message = f"{message} ({reason})"
        super().__init__(message)
        self.path = path
        self.reason = reason


class CommandNotAllowed(GatewayError):
    """Raised when a command verb or secondary token is not permitted."""

    category = "command-not-allowed"

    def __init__(self, token: str, message: str) -> None:
        super().__init__(message)
        self.token = token


class HarmfulPatternDetected(GatewayError):
    """Raised when a command matches a deny pattern."""

    category = "harmful-pattern"

    def __init__(self, pattern: str, description: str, *, message: str | None = None) -> None:
        super().__init__(message or f"Potentially harmful command detected ({description})")
        self.pattern = pattern
        self.description = description


class ResolutionError(GatewayError):
    """Raised when a path cannot be canonicalized."""

    category = "resolution-error"


class ProcessTimeout(GatewayError):
    """Raised when a spawned command exceeds its wall-clock budget."""

    category = "timeout"

    def __init__(self, timeout_ms: int, *, stdout: str = "", stderr: str = "") -> None:
        super().__init__(f"Command timed out after {timeout_ms} ms")
        self.timeout_ms = timeout_ms
        self.stdout = stdout
        self.stderr = stderr

    def describe(self) -> str:
        parts = [super().describe()]
        if self.stdout:
            parts.append(f"Partial output:\n{self.stdout}")
        if self.stderr:
            parts.append(f"Partial error output:\n{self.stderr}")
        return "\n".join(parts)


class ProcessSpawnFailure(GatewayError):
    """Raised when the execution shell cannot be started."""

    category = "spawn-failed"


class InvalidInput(GatewayError):
    """Raised when tool arguments are missing or malformed."""

    category = "invalid-input"


class UnknownTool(GatewayError):
    """Raised when a caller requests a tool that is not registered."""

    category = "unknown-tool"

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class StartupValidationError(GatewayError):
    """Raised when a configured root directory fails validation.

    This is the only fatal error class: the server refuses to start without a
    valid confinement set.
    """

    category = "startup"


__all__ = [
    "AccessDenied",
    "CommandNotAllowed",
    "GatewayError",
    "HarmfulPatternDetected",
    "InvalidInput",
    "ProcessSpawnFailure",
    "ProcessTimeout",
    "ResolutionError",
    "StartupValidationError",
    "UnknownTool",
]

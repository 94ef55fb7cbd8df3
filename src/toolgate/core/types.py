"""Core decision and result types for toolgate.

This module defines the data structures that flow between the gateway
components:
- ConfinementDecision: outcome of checking a path against the allowed roots
- CommandSpec: a caller-supplied command line plus execution options
- CommandDecision: outcome of running a CommandSpec through the command gate
- ProcessResult: captured output and terminal status of a spawned command
- ToolResponse: the structured payload returned across the tool-call boundary
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

DenialStage = Literal[
    "deny-pattern",
    "allow-list",
    "secondary-token",
    "path-argument",
    "working-directory",
]

ProcessStatus = Literal["completed", "timed-out", "spawn-failed"]


class ConfinementDecision(BaseModel):
    """Result of checking a single path against the allowed root set.

    Decisions are pure values; producing one never touches the filesystem
    beyond the read-only probing done during canonicalization.
    """

    model_config = ConfigDict(frozen=True)

    allowed: bool = Field(..., description="Whether the path lies inside an allowed root")
    requested: str = Field(..., description="Raw path as supplied by the caller")
    canonical: str | None = Field(
        default=None, description="Canonical path, when resolution succeeded"
    )
    matched_root: str | None = Field(
        default=None, description="Allowed root containing the canonical path"
    )
    reason: str | None = Field(default=None, description="Why the path was denied")


class CommandSpec(BaseModel):
    """A command line submitted for gated execution."""

    model_config = ConfigDict(frozen=True)

    command: str = Field(..., description="Raw command line")
    working_dir: str | None = Field(
        default=None, description="Explicit working directory override"
    )
    timeout_ms: int | None = Field(
        default=None, description="Wall-clock timeout in milliseconds", gt=0
    )
    env: dict[str, str] = Field(
        default_factory=dict, description="Environment overrides for the child process"
    )


class CommandDecision(BaseModel):
    """Outcome of evaluating a CommandSpec through the command gate."""

    model_config = ConfigDict(frozen=True)

    permitted: bool
    stage: DenialStage | None = Field(
        default=None, description="Pipeline stage that rejected the command"
    )
    offending: str | None = Field(
        default=None, description="Token, path or pattern that caused the denial"
    )
    reason: str | None = Field(default=None, description="Human-readable denial reason")
    main_verb: str | None = Field(default=None, description="First token of the command")
    working_dir: str | None = Field(
        default=None, description="Canonical effective working directory"
    )

    @classmethod
    def deny(
        cls,
        stage: DenialStage,
        offending: str,
        reason: str,
        *,
        main_verb: str | None = None,
    ) -> CommandDecision:
        return cls(
            permitted=False,
            stage=stage,
            offending=offending,
            reason=reason,
            main_verb=main_verb,
        )


class ProcessResult(BaseModel):
    """Captured output of a spawned command."""

    model_config = ConfigDict(frozen=True)

    status: ProcessStatus
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    truncated: bool = Field(
        default=False, description="Whether any stream exceeded the output cap"
    )
    duration_ms: float = 0.0
    error: str | None = Field(default=None, description="Spawn failure detail")

    @property
    def ok(self) -> bool:
        return self.status == "completed" and self.exit_code == 0


class TextContent(BaseModel):
    """Single text segment of a tool response."""

    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ToolResponse(BaseModel):
    """Payload returned across the tool-call boundary."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    content: list[TextContent] = Field(default_factory=list)
    is_error: bool = Field(default=False, alias="isError")

    @classmethod
    def text(cls, *segments: str, is_error: bool = False) -> ToolResponse:
        return cls(
            content=[TextContent(text=segment) for segment in segments],
            is_error=is_error,
        )

    @classmethod
    def error(cls, message: str) -> ToolResponse:
        return cls.text(message, is_error=True)

    @property
    def joined_text(self) -> str:
        return "\n".join(segment.text for segment in self.content)

    def to_payload(self) -> dict[str, Any]:
        """Return the wire representation (``content`` plus ``isError``)."""
        return self.model_dump(by_alias=True)


__all__ = [
    "CommandDecision",
    "CommandSpec",
    "ConfinementDecision",
    "DenialStage",
    "ProcessResult",
    "ProcessStatus",
    "TextContent",
    "ToolResponse",
]

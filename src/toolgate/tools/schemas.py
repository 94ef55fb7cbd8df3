"""Argument models for every tool exposed at the tool-call boundary.

Field aliases carry the camelCase names used on the wire; Python code works
with the snake_case attributes.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ToolArguments(BaseModel):
    """Base class for tool argument models."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")


class NoArguments(ToolArguments):
    pass


class ChangeDirectoryArguments(ToolArguments):
    path: str = Field(..., min_length=1, description="Directory to change to.")


class ShellArguments(ToolArguments):
    command: str = Field(..., min_length=1, description="The shell command to execute.")
    working_dir: str | None = Field(
        default=None,
        alias="workingDir",
        description="Directory where the command runs. Must be within allowed directories.",
    )
    timeout: int | None = Field(
        default=None,
        gt=0,
        description="Maximum execution time in milliseconds (default: 30000).",
    )
    env: dict[str, str] = Field(
        default_factory=dict, description="Custom environment variables for the command."
    )


class ReadFileArguments(ToolArguments):
    file_path: str = Field(..., alias="filePath", description="The path to the file to read.")


class ReadMultipleFilesArguments(ToolArguments):
    file_paths: list[str] = Field(
        ..., alias="filePaths", min_length=1, description="The paths to the files to read."
    )


class WriteFileArguments(ToolArguments):
    file_path: str = Field(..., alias="filePath", description="The path to the file to write.")
    content: str = Field(..., description="The content to write to the file.")
    create_directories: bool = Field(
        default=False,
        alias="createDirectories",
        description="Whether to create parent directories if they don't exist.",
    )


class ListDirectoryArguments(ToolArguments):
    directory_path: str = Field(
        ..., alias="directoryPath", description="The path to the directory to list."
    )


class TouchArguments(ToolArguments):
    file_path: str = Field(..., alias="filePath", description="The file to create or update.")
    create_directories: bool = Field(
        default=False,
        alias="createDirectories",
        description="Whether to create parent directories if they don't exist.",
    )


class CatArguments(ToolArguments):
    file_path: str = Field(..., alias="filePath", description="The file to display.")
    show_line_numbers: bool = Field(
        default=False, alias="showLineNumbers", description="Prefix each line with its number."
    )
    start_line: int = Field(
        default=1, alias="startLine", ge=1, description="First line to display (1-based)."
    )
    end_line: int | None = Field(
        default=None, alias="endLine", ge=1, description="Last line to display (inclusive)."
    )
    encoding: Literal["utf8", "base64"] = Field(
        default="utf8", description="Return the file as UTF-8 text or base64-encoded bytes."
    )

    @model_validator(mode="after")
    def check_range(self) -> "CatArguments":
        if self.end_line is not None and self.end_line < self.start_line:
            raise ValueError("endLine must be greater than or equal to startLine")
        return self


class GrepArguments(ToolArguments):
    query: str = Field(..., min_length=1, description="Regular expression to search for.")
    file_paths: list[str] = Field(
        ...,
        alias="filePaths",
        min_length=1,
        description="Files or directories to search; directories are searched recursively.",
    )


class SedArguments(ToolArguments):
    file_path: str = Field(..., alias="filePath", description="The file to edit in place.")
    pattern: str = Field(..., min_length=1, description="Regular expression to replace.")
    replacement: str = Field(
        ..., description="Replacement text; \\1 and \\g<name> refer to groups."
    )
    replace_all: bool = Field(
        default=True, alias="replaceAll", description="Replace every match instead of the first."
    )
    ignore_case: bool = Field(
        default=False, alias="ignoreCase", description="Match case-insensitively."
    )
    backup: bool = Field(
        default=False, description="Keep the original content in <filePath>.bak."
    )


__all__ = [
    "CatArguments",
    "ChangeDirectoryArguments",
    "GrepArguments",
    "ListDirectoryArguments",
    "NoArguments",
    "ReadFileArguments",
    "ReadMultipleFilesArguments",
    "SedArguments",
    "ShellArguments",
    "ToolArguments",
    "TouchArguments",
    "WriteFileArguments",
]

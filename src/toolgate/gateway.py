"""Tool-call boundary: registry, argument validation and error rendering."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from toolgate.core.errors import GatewayError, InvalidInput, UnknownTool
from toolgate.core.types import ToolResponse
from toolgate.observability.metrics import get_metrics_registry
from toolgate.runtime.executor import ExecutorConfig, ProcessExecutor
from toolgate.runtime.workdir import WorkingDirectoryState
from toolgate.security.commands import CommandGate
from toolgate.security.command_policy import ALLOWED_COMMANDS_BY_CATEGORY
from toolgate.security.confinement import AllowedRootSet, ConfinementChecker
from toolgate.settings import GatewaySettings, get_gateway_settings
from toolgate.tools import schemas
from toolgate.tools.filesystem import FileSystemTools, PathResolver
from toolgate.tools.shell import ShellTools
from toolgate.tools.text import TextTools

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Any], Awaitable[ToolResponse]]


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    """A named tool with its argument model and handler."""

    name: str
    description: str
    arguments: type[schemas.ToolArguments]
    handler: ToolHandler


def _shell_description() -> str:
    lines = [
        "Executes a command line inside the allowed directories.",
        "Allowed commands by category:",
    ]
    for category, verbs in ALLOWED_COMMANDS_BY_CATEGORY.items():
        lines.append(f"- {category}: {', '.join(sorted(verbs))}")
    lines.append(
        "Nested shells, interpreters, privilege escalation and known destructive "
        "patterns are rejected; path arguments must stay inside the allowed directories."
    )
    return "\n".join(lines)


def _format_validation_error(name: str, exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "arguments"
        problems.append(f"{location}: {error.get('msg', 'invalid value')}")
    return f"Invalid arguments for {name}: " + "; ".join(problems)


class ToolGateway:
    """Own the confinement components and dispatch tool calls.

    ``call_tool`` never raises for caller mistakes or denials: every
    :class:`GatewayError` becomes an ``isError`` response, and unexpected
    exceptions are logged with their traceback and reported generically.
    """

    def __init__(self, roots: AllowedRootSet, settings: GatewaySettings | None = None) -> None:
        self.settings = settings or get_gateway_settings()
        self.roots = roots
        self.checker = ConfinementChecker(roots)
        self.gate = CommandGate(self.checker)
        self.workdir = WorkingDirectoryState.from_roots(roots, self.checker)
        self.executor = ProcessExecutor(ExecutorConfig.from_settings(self.settings))

        resolver = PathResolver(self.checker, self.workdir)
        self.files = FileSystemTools(roots, resolver)
        self.text = TextTools(resolver)
        self.shell = ShellTools(self.gate, self.workdir, self.executor)

        self._tools: dict[str, ToolDefinition] = {}
        self._register_tools()

    def _register(
        self,
        name: str,
        description: str,
        arguments: type[schemas.ToolArguments],
        handler: ToolHandler,
    ) -> None:
        self._tools[name] = ToolDefinition(name, description, arguments, handler)

    def _register_tools(self) -> None:
        self._register(
            "list_allowed_directories",
            "Returns the list of directories this server is allowed to access.",
            schemas.NoArguments,
            self.files.list_allowed_directories,
        )
        self._register(
            "cd",
            "Changes the working directory used by subsequent shell commands.",
            schemas.ChangeDirectoryArguments,
            self.shell.change_directory,
        )
        self._register("shell", _shell_description(), schemas.ShellArguments, self.shell.shell)
        self._register(
            "read_file",
            "Reads the complete contents of a UTF-8 text file.",
            schemas.ReadFileArguments,
            self.files.read_file,
        )
        self._register(
            "read_multiple_files",
            "Reads several files at once; failures are reported per file.",
            schemas.ReadMultipleFilesArguments,
            self.files.read_multiple_files,
        )
        self._register(
            "write_file",
            "Creates or overwrites a file with the given UTF-8 content.",
            schemas.WriteFileArguments,
            self.files.write_file,
        )
        self._register(
            "list_directory",
            "Lists the entries of a directory as JSON (name, type, path).",
            schemas.ListDirectoryArguments,
            self.files.list_directory,
        )
        self._register(
            "touch",
            "Creates an empty file, or updates the timestamp of an existing one.",
            schemas.TouchArguments,
            self.files.touch,
        )
        self._register(
            "cat",
            "Displays a file with optional line numbers and line range, as text or base64.",
            schemas.CatArguments,
            self.files.cat,
        )
        self._register(
            "grep",
            "Searches files and directories (recursively) for a regular expression.",
            schemas.GrepArguments,
            self.text.grep,
        )
        self._register(
            "sed",
            "Replaces regular-expression matches in a file in place.",
            schemas.SedArguments,
            self.text.sed,
        )

    @property
    def tools(self) -> Mapping[str, ToolDefinition]:
        return dict(self._tools)

    def get_tool(self, name: str) -> ToolDefinition:
        try:
            return self._tools[name]
        except KeyError:
            raise UnknownTool(name) from None

    async def call_tool(
        self, name: str, arguments: Mapping[str, Any] | None = None
    ) -> ToolResponse:
        """Validate ``arguments``, run the named tool and render the outcome."""
        started = time.perf_counter()
        category: str | None = None
        try:
            definition = self.get_tool(name)
            try:
                parsed = definition.arguments.model_validate(dict(arguments or {}))
            except ValidationError as exc:
                raise InvalidInput(_format_validation_error(name, exc)) from exc
            response = await definition.handler(parsed)
        except GatewayError as exc:
            logger.warning("Tool %s failed [%s]: %s", name, exc.category, exc.message)
            category = exc.category
            response = ToolResponse.error(exc.describe())
        except Exception:  # noqa: BLE001 - the boundary never leaks tracebacks
            logger.exception("Unexpected failure while running tool %s", name)
            category = "internal"
            response = ToolResponse.error(f"Error: Internal error while running {name}")

        duration_ms = (time.perf_counter() - started) * 1000
        get_metrics_registry().record_call(
            name, is_error=response.is_error, duration_ms=duration_ms, category=category
        )
        return response


__all__ = ["ToolDefinition", "ToolGateway"]

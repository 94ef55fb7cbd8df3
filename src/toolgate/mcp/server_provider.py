"""MCP server provider exposing the toolgate tools over stdio.

Each tool is registered with FastMCP through an explicit wrapper so the
published input schema keeps the camelCase argument names callers expect.
Wrappers forward to :meth:`ToolGateway.call_tool` and return a
``CallToolResult`` so denials reach the client as ``isError`` results with
the gateway's own wording.
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from mcp.server.fastmcp import FastMCP
from mcp.types import CallToolResult, TextContent

from toolgate.core.types import ToolResponse
from toolgate.gateway import ToolGateway
from toolgate.security.confinement import AllowedRootSet
from toolgate.settings import GatewaySettings

logger = logging.getLogger(__name__)


def to_call_tool_result(response: ToolResponse) -> CallToolResult:
    return CallToolResult(
        content=[TextContent(type="text", text=segment.text) for segment in response.content],
        isError=response.is_error,
    )


class ToolgateMCPServer:
    """MCP server that exposes the confined file and shell tools."""

    def __init__(self, gateway: ToolGateway) -> None:
        self.gateway = gateway
        self.mcp = FastMCP(
            name="toolgate",
            instructions=(
                "File and shell tools confined to the allowed directories. "
                "Call list_allowed_directories first to see where you may work."
            ),
        )
        self._register_tools()

    async def _dispatch(self, name: str, arguments: dict[str, Any]) -> CallToolResult:
        # Omitted optional arguments fall back to the gateway's defaults.
        payload = {key: value for key, value in arguments.items() if value is not None}
        response = await self.gateway.call_tool(name, payload)
        return to_call_tool_result(response)

    def _add(self, fn: Any, name: str) -> None:
        definition = self.gateway.get_tool(name)
        self.mcp.add_tool(fn, name=name, description=definition.description)

    def _register_tools(self) -> None:
        dispatch = self._dispatch

        async def list_allowed_directories() -> CallToolResult:
            return await dispatch("list_allowed_directories", {})

        async def cd(path: str) -> CallToolResult:
            return await dispatch("cd", {"path": path})

        async def shell(
            command: str,
            workingDir: str | None = None,  # noqa: N803
            timeout: int | None = None,
            env: dict[str, str] | None = None,
        ) -> CallToolResult:
            return await dispatch(
                "shell",
                {"command": command, "workingDir": workingDir, "timeout": timeout, "env": env},
            )

        async def read_file(filePath: str) -> CallToolResult:  # noqa: N803
            return await dispatch("read_file", {"filePath": filePath})

        async def read_multiple_files(filePaths: list[str]) -> CallToolResult:  # noqa: N803
            return await dispatch("read_multiple_files", {"filePaths": filePaths})

        async def write_file(
            filePath: str,  # noqa: N803
            content: str,
            createDirectories: bool = False,  # noqa: N803
        ) -> CallToolResult:
            return await dispatch(
                "write_file",
                {"filePath": filePath, "content": content, "createDirectories": createDirectories},
            )

        async def list_directory(directoryPath: str) -> CallToolResult:  # noqa: N803
            return await dispatch("list_directory", {"directoryPath": directoryPath})

        async def touch(
            filePath: str,  # noqa: N803
            createDirectories: bool = False,  # noqa: N803
        ) -> CallToolResult:
            return await dispatch(
                "touch", {"filePath": filePath, "createDirectories": createDirectories}
            )

        async def cat(
            filePath: str,  # noqa: N803
            showLineNumbers: bool = False,  # noqa: N803
            startLine: int = 1,  # noqa: N803
            endLine: int | None = None,  # noqa: N803
            encoding: Literal["utf8", "base64"] = "utf8",
        ) -> CallToolResult:
            return await dispatch(
                "cat",
                {
                    "filePath": filePath,
                    "showLineNumbers": showLineNumbers,
                    "startLine": startLine,
                    "endLine": endLine,
                    "encoding": encoding,
                },
            )

        async def grep(query: str, filePaths: list[str]) -> CallToolResult:  # noqa: N803
            return await dispatch("grep", {"query": query, "filePaths": filePaths})

        async def sed(
            filePath: str,  # noqa: N803
            pattern: str,
            replacement: str,
            replaceAll: bool = True,  # noqa: N803
            ignoreCase: bool = False,  # noqa: N803
            backup: bool = False,
        ) -> CallToolResult:
            return await dispatch(
                "sed",
                {
                    "filePath": filePath,
                    "pattern": pattern,
                    "replacement": replacement,
                    "replaceAll": replaceAll,
                    "ignoreCase": ignoreCase,
                    "backup": backup,
                },
            )

        for fn in (
            list_allowed_directories,
            cd,
            shell,
            read_file,
            read_multiple_files,
            write_file,
            list_directory,
            touch,
            cat,
            grep,
            sed,
        ):
            self._add(fn, fn.__name__)
            logger.debug("Registered tool: %s", fn.__name__)

    def run(self, transport: Literal["stdio", "sse", "streamable-http"] = "stdio") -> None:
        """Run the MCP server (blocking)."""
        logger.info("Starting toolgate MCP server")
        logger.info("Allowed directories: %s", ", ".join(self.gateway.roots))
        self.mcp.run(transport=transport)


def create_server(
    roots: AllowedRootSet, settings: GatewaySettings | None = None
) -> ToolgateMCPServer:
    """Create a toolgate MCP server for an already validated root set."""
    return ToolgateMCPServer(ToolGateway(roots, settings))


__all__ = ["ToolgateMCPServer", "create_server", "to_call_tool_result"]

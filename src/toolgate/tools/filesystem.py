"""Native file tools: every path is confined before it is touched."""

from __future__ import annotations

import base64
import json
import logging
import os

import anyio

from toolgate.core.errors import AccessDenied, GatewayError
from toolgate.core.types import ToolResponse
from toolgate.runtime.workdir import WorkingDirectoryState
from toolgate.security.confinement import AllowedRootSet, ConfinementChecker
from toolgate.tools.schemas import (
    CatArguments,
    ListDirectoryArguments,
    NoArguments,
    ReadFileArguments,
    ReadMultipleFilesArguments,
    TouchArguments,
    WriteFileArguments,
)

logger = logging.getLogger(__name__)


def _os_reason(exc: OSError) -> str:
    return exc.strerror or str(exc)


async def read_text(path: str) -> str:
    """Read ``path`` as UTF-8 without newline translation."""
    data = await anyio.Path(path).read_bytes()
    return data.decode("utf-8")


async def write_text(path: str, text: str) -> int:
    data = text.encode("utf-8")
    await anyio.Path(path).write_bytes(data)
    return len(data)


class PathResolver:
    """Resolves caller paths against the working directory and the roots."""

    def __init__(self, checker: ConfinementChecker, workdir: WorkingDirectoryState) -> None:
        self.checker = checker
        self.workdir = workdir

    async def require(self, raw: str) -> str:
        return await self.checker.require(raw, base=self.workdir.current)

    async def require_parent(self, canonical: str) -> str:
        parent = os.path.dirname(canonical)
        decision = await self.checker.check(parent)
        if not decision.allowed or decision.canonical is None:
            message = f"Access denied - parent directory {parent} is outside allowed directories"
            raise AccessDenied(parent, message=message)
        return decision.canonical


class FileSystemTools:
    """Read, write and list files inside the allowed roots."""

    def __init__(self, roots: AllowedRootSet, resolver: PathResolver) -> None:
        self.roots = roots
        self.resolver = resolver

    async def list_allowed_directories(self, _: NoArguments) -> ToolResponse:
        return ToolResponse.text(f"Allowed directories:\n{self.roots.as_text()}")

    async def read_file(self, args: ReadFileArguments) -> ToolResponse:
        path = await self.resolver.require(args.file_path)
        try:
            return ToolResponse.text(await read_text(path))
        except OSError as exc:
            raise GatewayError(f"Failed to read file {path}: {_os_reason(exc)}") from exc
        except UnicodeDecodeError as exc:
            raise GatewayError(f"Failed to read file {path}: not valid UTF-8 text") from exc

    async def read_multiple_files(self, args: ReadMultipleFilesArguments) -> ToolResponse:
        """Read each file independently; one failure never hides the others."""
        segments: list[str] = []
        successes = 0
        for raw in args.file_paths:
            try:
                response = await self.read_file(ReadFileArguments(filePath=raw))
            except GatewayError as exc:
                logger.info("Skipping %s in read_multiple_files: %s", raw, exc.message)
                segments.append(f"File: {raw}\n{exc.describe()}")
                continue
            successes += 1
            segments.append(f"File: {raw}\nContent: {response.joined_text}")
        return ToolResponse.text(*segments, is_error=successes == 0)

    async def write_file(self, args: WriteFileArguments) -> ToolResponse:
        path = await self.resolver.require(args.file_path)
        try:
            if args.create_directories:
                parent = await self.resolver.require_parent(path)
                await anyio.Path(parent).mkdir(parents=True, exist_ok=True)
            written = await write_text(path, args.content)
        except OSError as exc:
            raise GatewayError(f"Failed to write file {path}: {_os_reason(exc)}") from exc
        logger.info("Wrote %d bytes to %s", written, path)
        return ToolResponse.text(f"Successfully wrote {written} bytes to {path}")

    async def list_directory(self, args: ListDirectoryArguments) -> ToolResponse:
        path = await self.resolver.require(args.directory_path)
        entries: list[dict[str, str]] = []
        try:
            async for entry in anyio.Path(path).iterdir():
                entries.append(
                    {
                        "name": entry.name,
                        "type": "directory" if await entry.is_dir() else "file",
                        "path": os.path.join(path, entry.name),
                    }
                )
        except OSError as exc:
            raise GatewayError(f"Failed to list directory {path}: {_os_reason(exc)}") from exc
        entries.sort(key=lambda item: item["name"])
        return ToolResponse.text(json.dumps(entries, indent=2))

    async def touch(self, args: TouchArguments) -> ToolResponse:
        path = await self.resolver.require(args.file_path)
        target = anyio.Path(path)
        try:
            if args.create_directories:
                parent = await self.resolver.require_parent(path)
                await anyio.Path(parent).mkdir(parents=True, exist_ok=True)
            existed = await target.exists()
            await target.touch(exist_ok=True)
        except OSError as exc:
            raise GatewayError(f"Failed to touch {path}: {_os_reason(exc)}") from exc
        if existed:
            return ToolResponse.text(f"Updated timestamp for {path}")
        return ToolResponse.text(f"Created new file: {path}")

    async def cat(self, args: CatArguments) -> ToolResponse:
        """Display a line range of a file, optionally numbered."""
        path = await self.resolver.require(args.file_path)
        try:
            data = await anyio.Path(path).read_bytes()
        except OSError as exc:
            raise GatewayError(f"Failed to read file {path}: {_os_reason(exc)}") from exc

        if args.encoding == "base64":
            text = base64.b64encode(data).decode("ascii")
        else:
            text = data.decode("utf-8", errors="replace")

        lines = text.split("\n")
        selected = lines[args.start_line - 1 : args.end_line]
        if args.show_line_numbers:
            selected = [
                f"{args.start_line + offset}\t{line}" for offset, line in enumerate(selected)
            ]
        return ToolResponse.text("\n".join(selected))


__all__ = ["FileSystemTools", "PathResolver", "read_text", "write_text"]

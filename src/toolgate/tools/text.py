"""Regex search and substitution over confined files, in pure Python."""

from __future__ import annotations

import logging
import os
import re

import anyio

from toolgate.core.errors import GatewayError, InvalidInput
from toolgate.core.types import ToolResponse
from toolgate.tools.filesystem import PathResolver, read_text, write_text
from toolgate.tools.schemas import GrepArguments, SedArguments

logger = logging.getLogger(__name__)

# Files whose first block holds a NUL byte are treated as binary and skipped.
_BINARY_SNIFF_BYTES = 8192


def _walk_files(root: str) -> list[str]:
    if not os.path.isdir(root):
        return [root]
    found: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for name in sorted(filenames):
            found.append(os.path.join(dirpath, name))
    return found


def _scan_file(path: str, pattern: re.Pattern[str]) -> list[str]:
    """Return ``path:line:text`` for each matching line, reading line by line."""
    matches: list[str] = []
    with open(path, "rb") as handle:
        if b"\x00" in handle.read(_BINARY_SNIFF_BYTES):
            return matches
        handle.seek(0)
        for number, raw in enumerate(handle, start=1):
            line = raw.rstrip(b"\r\n").decode("utf-8", errors="replace")
            if pattern.search(line):
                matches.append(f"{path}:{number}:{line}")
    return matches


def _compile(expression: str, flags: int = 0) -> re.Pattern[str]:
    try:
        return re.compile(expression, flags)
    except re.error as exc:
        raise InvalidInput(f"Invalid regular expression {expression!r}: {exc}") from exc


class TextTools:
    """``grep`` and ``sed`` equivalents that never spawn a process."""

    def __init__(self, resolver: PathResolver) -> None:
        self.resolver = resolver

    async def grep(self, args: GrepArguments) -> ToolResponse:
        pattern = _compile(args.query)
        targets = [await self.resolver.require(raw) for raw in args.file_paths]

        matches: list[str] = []
        for target in targets:
            if not await anyio.Path(target).exists():
                raise GatewayError(f"No such file or directory: {target}")
            for path in await anyio.to_thread.run_sync(_walk_files, target):
                # Symlinks found while walking may point outside the roots.
                decision = await self.resolver.checker.check(path)
                if not decision.allowed or decision.canonical is None:
                    logger.warning("Skipping %s during grep: outside allowed directories", path)
                    continue
                try:
                    found = await anyio.to_thread.run_sync(_scan_file, decision.canonical, pattern)
                except OSError as exc:
                    logger.info("Skipping unreadable file %s: %s", path, exc)
                    continue
                matches.extend(found)

        if not matches:
            return ToolResponse.text("No matches found")
        return ToolResponse.text("\n".join(matches))

    async def sed(self, args: SedArguments) -> ToolResponse:
        """Substitute ``pattern`` in place, optionally keeping a ``.bak`` copy."""
        path = await self.resolver.require(args.file_path)
        flags = re.IGNORECASE if args.ignore_case else 0
        pattern = _compile(args.pattern, flags)

        try:
            content = await read_text(path)
        except OSError as exc:
            raise GatewayError(f"Failed to read file {path}: {exc.strerror or exc}") from exc
        except UnicodeDecodeError as exc:
            raise GatewayError(f"Failed to read file {path}: not valid UTF-8 text") from exc

        try:
            updated, count = pattern.subn(
                args.replacement, content, count=0 if args.replace_all else 1
            )
        except re.error as exc:
            raise InvalidInput(f"Invalid replacement {args.replacement!r}: {exc}") from exc

        if count == 0 or updated == content:
            return ToolResponse.text(f"No replacements made in {path}")

        try:
            if args.backup:
                backup_path = await self.resolver.require(f"{path}.bak")
                await write_text(backup_path, content)
            await write_text(path, updated)
        except OSError as exc:
            raise GatewayError(f"Failed to write file {path}: {exc.strerror or exc}") from exc

        logger.info("Made %d replacement(s) in %s", count, path)
        suffix = " (backup created)" if args.backup else ""
        return ToolResponse.text(f"Made {count} replacement(s) in {path}{suffix}")


__all__ = ["TextTools"]

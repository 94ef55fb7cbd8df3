"""Process-wide working directory shared by shell-style tools."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import anyio

from toolgate.core.errors import InvalidInput
from toolgate.security.confinement import AllowedRootSet, ConfinementChecker

logger = logging.getLogger(__name__)


class WorkingDirectoryState:
    """Single canonical directory guarded by an ``asyncio.Lock``.

    The value starts at the first allowed root and only changes through
    :meth:`change`, after the target passes confinement. Readers that go on
    to spawn a process must do so inside :meth:`hold` so a concurrent
    ``change`` cannot slip between validation and spawn.
    """

    def __init__(self, initial: str, checker: ConfinementChecker) -> None:
        self._current = initial
        self._checker = checker
        self._lock = asyncio.Lock()

    @classmethod
    def from_roots(
        cls, roots: AllowedRootSet, checker: ConfinementChecker
    ) -> WorkingDirectoryState:
        return cls(roots.primary, checker)

    @property
    def current(self) -> str:
        """Unlocked snapshot, suitable as a base for path resolution."""
        return self._current

    async def get(self) -> str:
        async with self._lock:
            return self._current

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[str]:
        """Hold the state mutex and yield the current directory."""
        async with self._lock:
            yield self._current

    async def change(self, target: str) -> str:
        """Move to ``target`` (resolved against the current directory).

        Raises:
            AccessDenied: if the target resolves outside every allowed root.
            InvalidInput: if the target does not exist or is not a directory.
        """
        async with self._lock:
            resolved = await self._checker.require(target, base=self._current)
            candidate = anyio.Path(resolved)
            if not await candidate.exists():
                raise InvalidInput(f"Directory does not exist: {target}")
            if not await candidate.is_dir():
                raise InvalidInput(f"Not a directory: {target}")
            previous, self._current = self._current, resolved
            logger.info("Working directory changed from %s to %s", previous, resolved)
            return resolved


__all__ = ["WorkingDirectoryState"]

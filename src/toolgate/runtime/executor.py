"""Bounded execution of gate-approved command lines."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
import time
from collections.abc import Mapping
from dataclasses import dataclass, field

from toolgate.core.errors import ProcessSpawnFailure
from toolgate.core.types import ProcessResult
from toolgate.security.command_policy import is_protected_env
from toolgate.settings import GatewaySettings

logger = logging.getLogger(__name__)

_READ_CHUNK = 64 * 1024
# Background grandchildren may keep the pipes open after the shell exits.
_PIPE_GRACE_SECONDS = 0.5
_KILL_GRACE_SECONDS = 5.0

IS_WINDOWS = os.name == "nt"


@dataclass(slots=True)
class ExecutorConfig:
    """Configuration for spawning command lines."""

    default_timeout_ms: int = 30_000
    max_timeout_ms: int = 600_000
    max_output_bytes: int = 1024 * 1024
    shell: str | None = None

    @classmethod
    def from_settings(cls, settings: GatewaySettings) -> ExecutorConfig:
        return cls(
            default_timeout_ms=settings.DEFAULT_TIMEOUT_MS,
            max_timeout_ms=settings.MAX_TIMEOUT_MS,
            max_output_bytes=settings.MAX_OUTPUT_BYTES,
            shell=settings.SHELL,
        )


@dataclass(slots=True)
class OutputBuffer:
    """Byte accumulator that keeps at most ``limit`` bytes."""

    limit: int
    chunks: list[bytes] = field(default_factory=list)
    size: int = 0
    truncated: bool = False

    def feed(self, data: bytes) -> None:
        remaining = self.limit - self.size
        if len(data) > remaining:
            self.truncated = True
            data = data[: max(remaining, 0)]
        if data:
            self.chunks.append(data)
            self.size += len(data)

    def text(self) -> str:
        return b"".join(self.chunks).decode("utf-8", errors="replace")


@dataclass(slots=True)
class RunningProcess:
    """A spawned command together with its capture buffers."""

    process: asyncio.subprocess.Process
    command: str
    started: float
    stdout: OutputBuffer
    stderr: OutputBuffer
    readers: list[asyncio.Task[None]] = field(default_factory=list)


async def _drain(stream: asyncio.StreamReader | None, buffer: OutputBuffer) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            return
        # Keep reading past the cap so the child never blocks on a full pipe.
        buffer.feed(chunk)


def _kill_tree(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        if IS_WINDOWS:
            process.kill()
        else:
            os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    except OSError as exc:
        logger.warning("Failed to kill process group %s: %s", process.pid, exc)
        with contextlib.suppress(ProcessLookupError):
            process.kill()


class ProcessExecutor:
    """Spawn command lines through a fixed shell with time and output bounds."""

    def __init__(self, config: ExecutorConfig | None = None) -> None:
        self.config = config or ExecutorConfig()

    def shell_argv(self, command: str) -> list[str]:
        if IS_WINDOWS:
            return [os.environ.get("COMSPEC", "cmd.exe"), "/d", "/s", "/c", command]
        return [self.config.shell or "/bin/sh", "-c", command]

    def build_env(self, overrides: Mapping[str, str] | None = None) -> dict[str, str]:
        """Merge caller overrides into the inherited environment.

        Protected variables (``PATH``, loader and git configuration hooks) keep
        their inherited values so an override cannot make an allow-listed
        verb load or run another program.
        """
        env = dict(os.environ)
        for key, value in (overrides or {}).items():
            if is_protected_env(key):
                logger.warning("Ignoring override of protected variable %s", key)
                continue
            env[key] = value
        return env

    def resolve_timeout(self, timeout_ms: int | None) -> int:
        if timeout_ms is None or timeout_ms <= 0:
            return self.config.default_timeout_ms
        return min(timeout_ms, self.config.max_timeout_ms)

    async def spawn(
        self,
        command: str,
        *,
        cwd: str,
        env: Mapping[str, str] | None = None,
    ) -> RunningProcess:
        """Start ``command`` and begin draining its output.

        Raises:
            ProcessSpawnFailure: if the shell cannot be started.
        """
        argv = self.shell_argv(command)
        started = time.perf_counter()
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=self.build_env(env),
                start_new_session=not IS_WINDOWS,
            )
        except (OSError, ValueError) as exc:
            logger.error("Failed to spawn %r in %s: %s", command, cwd, exc)
            raise ProcessSpawnFailure(f"Failed to start command: {exc}") from exc

        limit = self.config.max_output_bytes
        running = RunningProcess(
            process=process,
            command=command,
            started=started,
            stdout=OutputBuffer(limit),
            stderr=OutputBuffer(limit),
        )
        running.readers = [
            asyncio.create_task(_drain(process.stdout, running.stdout)),
            asyncio.create_task(_drain(process.stderr, running.stderr)),
        ]
        logger.info("Spawned pid %s: %s (cwd=%s)", process.pid, command, cwd)
        return running

    async def collect(
        self, running: RunningProcess, timeout_ms: int | None = None
    ) -> ProcessResult:
        """Wait for ``running`` to finish, killing its process group on timeout."""
        budget_ms = self.resolve_timeout(timeout_ms)
        process = running.process
        timed_out = False
        try:
            try:
                await asyncio.wait_for(process.wait(), timeout=budget_ms / 1000)
            except asyncio.TimeoutError:
                timed_out = True
                logger.warning("Command timed out after %s ms: %s", budget_ms, running.command)
                _kill_tree(process)
                with contextlib.suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(process.wait(), timeout=_KILL_GRACE_SECONDS)
            await asyncio.wait(running.readers, timeout=_PIPE_GRACE_SECONDS)
        except asyncio.CancelledError:
            _kill_tree(process)
            raise
        finally:
            for reader in running.readers:
                if not reader.done():
                    reader.cancel()
            await asyncio.gather(*running.readers, return_exceptions=True)

        duration_ms = (time.perf_counter() - running.started) * 1000
        return ProcessResult(
            status="timed-out" if timed_out else "completed",
            stdout=running.stdout.text(),
            stderr=running.stderr.text(),
            exit_code=process.returncode,
            truncated=running.stdout.truncated or running.stderr.truncated,
            duration_ms=duration_ms,
        )

    async def run(
        self,
        command: str,
        *,
        cwd: str,
        env: Mapping[str, str] | None = None,
        timeout_ms: int | None = None,
    ) -> ProcessResult:
        """Spawn and collect in one step; spawn errors become a result."""
        try:
            running = await self.spawn(command, cwd=cwd, env=env)
        except ProcessSpawnFailure as exc:
            return ProcessResult(status="spawn-failed", error=exc.message)
        return await self.collect(running, timeout_ms)


__all__ = ["ExecutorConfig", "OutputBuffer", "ProcessExecutor", "RunningProcess"]

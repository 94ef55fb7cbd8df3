"""Shell and directory-change tools built on the command gate."""

from __future__ import annotations

import logging

from toolgate.core.errors import ProcessSpawnFailure, ProcessTimeout
from toolgate.core.types import CommandSpec, ProcessResult, ToolResponse
from toolgate.observability.metrics import get_metrics_registry
from toolgate.runtime.executor import ProcessExecutor
from toolgate.runtime.workdir import WorkingDirectoryState
from toolgate.security.commands import CommandGate
from toolgate.tools.schemas import ChangeDirectoryArguments, ShellArguments

logger = logging.getLogger(__name__)

STDERR_PREFIX = "Warning: Command produced error output:\n"
NO_OUTPUT_MESSAGE = "Command executed successfully with no output"


def render_process_result(result: ProcessResult, *, output_limit: int) -> ToolResponse:
    """Turn a completed ProcessResult into response segments.

    A non-zero exit status is reported as content, not as an error.
    """
    segments: list[str] = []
    if result.stdout:
        segments.append(result.stdout)
    if result.stderr:
        segments.append(f"{STDERR_PREFIX}{result.stderr}")
    if result.exit_code not in (0, None):
        segments.append(f"Command exited with status {result.exit_code}")
    elif not segments:
        segments.append(NO_OUTPUT_MESSAGE)
    if result.truncated:
        segments.append(f"Output truncated to {output_limit} bytes per stream")
    return ToolResponse.text(*segments)


class ShellTools:
    """Gate, spawn and render caller command lines."""

    def __init__(
        self,
        gate: CommandGate,
        workdir: WorkingDirectoryState,
        executor: ProcessExecutor,
    ) -> None:
        self.gate = gate
        self.workdir = workdir
        self.executor = executor

    async def shell(self, args: ShellArguments) -> ToolResponse:
        spec = CommandSpec(
            command=args.command,
            working_dir=args.working_dir,
            timeout_ms=args.timeout,
            env=args.env,
        )
        # Validation and spawn share one critical section; the wait does not.
        async with self.workdir.hold() as current:
            decision = await self.gate.enforce(spec, current)
            cwd = decision.working_dir or current
            try:
                running = await self.executor.spawn(spec.command, cwd=cwd, env=spec.env)
            except ProcessSpawnFailure:
                get_metrics_registry().record_process("spawn-failed")
                raise

        result = await self.executor.collect(running, spec.timeout_ms)
        get_metrics_registry().record_process(result.status)
        logger.info(
            "Command finished with status %s (exit=%s, %.0f ms): %s",
            result.status,
            result.exit_code,
            result.duration_ms,
            spec.command,
        )
        if result.status == "timed-out":
            raise ProcessTimeout(
                self.executor.resolve_timeout(spec.timeout_ms),
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return render_process_result(result, output_limit=self.executor.config.max_output_bytes)

    async def change_directory(self, args: ChangeDirectoryArguments) -> ToolResponse:
        new_dir = await self.workdir.change(args.path)
        return ToolResponse.text(f"Working directory changed to {new_dir}")


__all__ = ["NO_OUTPUT_MESSAGE", "STDERR_PREFIX", "ShellTools", "render_process_result"]

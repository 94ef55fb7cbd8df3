"""Mutable runtime state and process execution."""

from toolgate.runtime.executor import ExecutorConfig, ProcessExecutor
from toolgate.runtime.workdir import WorkingDirectoryState

__all__ = ["ExecutorConfig", "ProcessExecutor", "WorkingDirectoryState"]

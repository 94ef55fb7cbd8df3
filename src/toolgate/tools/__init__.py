"""Tool implementations exposed by the gateway."""

from toolgate.tools.filesystem import FileSystemTools, PathResolver
from toolgate.tools.shell import ShellTools, render_process_result
from toolgate.tools.text import TextTools

__all__ = ["FileSystemTools", "PathResolver", "ShellTools", "TextTools", "render_process_result"]

"""Versioned command policy tables consumed by the command gate.

Bump ``POLICY_VERSION`` whenever any table below changes so that diagnostics
(``toolgate policy``) and tests can pin the exact contents in force.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

POLICY_VERSION = "2025.2"


ALLOWED_COMMANDS_BY_CATEGORY: Mapping[str, frozenset[str]] = MappingProxyType(
    {
        "file-viewing": frozenset({"cat", "less", "head", "tail", "file", "stat"}),
        "text-processing": frozenset(
            {"grep", "sort", "uniq", "cut", "tr", "wc", "diff", "comm", "nl"}
        ),
        "filesystem": frozenset(
            {"ls", "find", "mkdir", "cp", "mv", "touch", "chmod", "pwd", "cd", "tree", "du"}
        ),
        "system-introspection": frozenset({"ps", "date", "whoami", "env", "uname", "df"}),
        "development": frozenset({"git", "npm", "node", "echo"}),
        "network-diagnostics": frozenset({"ping", "nslookup", "dig", "host"}),
    }
)

ALLOWED_COMMANDS: frozenset[str] = frozenset().union(*ALLOWED_COMMANDS_BY_CATEGORY.values())

# Tokens that may never appear after the main verb. Shells and interpreters
# would let an allowed verb spawn arbitrary code; escalation verbs are listed
# again here so an argument position cannot smuggle them in.
SECONDARY_DENIED_TOKENS: frozenset[str] = frozenset(
    {
        "sh",
        "bash",
        "zsh",
        "dash",
        "ksh",
        "csh",
        "tcsh",
        "fish",
        "ash",
        "pwsh",
        "powershell",
        "cmd",
        "cmd.exe",
        "python",
        "python3",
        "perl",
        "ruby",
        "php",
        "lua",
        "node",
        "osascript",
        "eval",
        "exec",
        "source",
        "sudo",
        "su",
        "doas",
        "pkexec",
        "runas",
    }
)

# Verbs whose non-flag arguments are treated as filesystem paths. Arguments of
# other verbs are confined only when they look like paths.
FILESYSTEM_VERBS: frozenset[str] = frozenset(
    {
        "cat",
        "less",
        "head",
        "tail",
        "file",
        "stat",
        "grep",
        "sort",
        "uniq",
        "cut",
        "wc",
        "diff",
        "comm",
        "nl",
        "ls",
        "find",
        "mkdir",
        "cp",
        "mv",
        "touch",
        "chmod",
        "cd",
        "tree",
        "du",
        "date",
        "df",
        "git",
        "npm",
        "node",
        "dig",
        "host",
        "nslookup",
    }
)

# Verbs that run another program named by their first plain argument. The
# nested verb must itself be allow-listed.
WRAPPER_VERBS: frozenset[str] = frozenset({"env"})

# Options that make a wrapper or an allowed verb run programs the allow-list
# never sees.
ENV_SPLIT_OPTION = "--split-string"
FIND_EXEC_ACTIONS: frozenset[str] = frozenset({"-exec", "-execdir", "-ok", "-okdir"})
GIT_DENIED_OPTIONS: frozenset[str] = frozenset({"-c", "--config-env", "--exec-path"})
# Global git options whose value is the following word.
GIT_VALUE_OPTIONS: frozenset[str] = frozenset(
    {"-C", "-c", "--git-dir", "--work-tree", "--namespace", "--config-env"}
)

# Environment variables a caller may not set: each one can load code or
# redirect an allowed verb to another program.
PROTECTED_ENV_NAMES: frozenset[str] = frozenset(
    {
        "PATH",
        "ENV",
        "BASH_ENV",
        "IFS",
        "NODE_OPTIONS",
        "GIT_EXEC_PATH",
        "GIT_SSH",
        "GIT_SSH_COMMAND",
        "GIT_EDITOR",
        "GIT_PAGER",
        "GIT_ASKPASS",
        "PAGER",
        "EDITOR",
        "VISUAL",
        "LESSOPEN",
        "LESSCLOSE",
    }
)
PROTECTED_ENV_PREFIXES: tuple[str, ...] = ("LD_", "DYLD_", "GIT_CONFIG")


@dataclass(frozen=True)
class DenyPattern:
    """A regular expression matching a known-dangerous command shape."""

    name: str
    pattern: re.Pattern[str]
    description: str


def _deny(name: str, expression: str, description: str) -> DenyPattern:
    return DenyPattern(name, re.compile(expression, re.IGNORECASE), description)


_CMD_START = r"(?:^\s*|[;&|(`]\s*|\$\(\s*)"

DENY_PATTERNS: tuple[DenyPattern, ...] = (
    _deny(
        "recursive-delete-root",
        r"\brm\s+(?:-\S+\s+)*(?:-[a-z]*r[a-z]*|--recursive)\s+(?:-\S+\s+)*[\"']?/",
        "recursive delete from an absolute path",
    ),
    _deny("named-pipe", r"\bmk(?:fifo|nod)\b", "named pipe or device node creation"),
    _deny("dev-socket", r"/dev/(?:tcp|udp)\b", "network redirection through /dev/tcp or /dev/udp"),
    _deny(
        "download-to-interpreter",
        r"\b(?:curl|wget)\b.*\|\s*(?:sudo\s+)?(?:\S*/)?(?:ba|z|da|k|c|tc|fi)?sh\b"
        r"|\b(?:curl|wget)\b.*\|\s*(?:\S*/)?(?:python3?|perl|ruby|node)\b",
        "network download piped into an interpreter",
    ),
    _deny(
        "force-push",
        r"\bgit\s+push\b.*(?:--force\b|--force-with-lease\b|\s-f\b)",
        "git force push",
    ),
    _deny("git-clean", r"\bgit\s+clean\s+(?:-\S*\s+)*-[a-z]*[fdx]", "destructive git clean"),
    _deny(
        "privilege-escalation",
        _CMD_START + r"(?:sudo|su|doas|pkexec|runas)\b",
        "privilege escalation",
    ),
    _deny(
        "force-kill",
        r"\bkill\s+(?:-\S+\s+)*-(?:9|kill|sigkill)\b|\b(?:pkill|killall)\b",
        "forced process termination",
    ),
    _deny("fork-bomb", r":\s*\(\s*\)\s*\{", "fork bomb"),
    _deny("filesystem-format", r"\bmkfs(?:\.\w+)?\b|\bdd\b.*\bof=/dev/", "filesystem formatting"),
)


def is_protected_env(name: str) -> bool:
    """Return True when ``name`` may not be overridden by a caller."""
    upper = name.upper()
    return upper in PROTECTED_ENV_NAMES or upper.startswith(PROTECTED_ENV_PREFIXES)


def category_for(verb: str) -> str | None:
    """Return the allow-list category containing ``verb``."""
    for category, verbs in ALLOWED_COMMANDS_BY_CATEGORY.items():
        if verb in verbs:
            return category
    return None


__all__ = [
    "ALLOWED_COMMANDS",
    "ALLOWED_COMMANDS_BY_CATEGORY",
    "DENY_PATTERNS",
    "DenyPattern",
    "ENV_SPLIT_OPTION",
    "FIND_EXEC_ACTIONS",
    "FILESYSTEM_VERBS",
    "GIT_DENIED_OPTIONS",
    "GIT_VALUE_OPTIONS",
    "POLICY_VERSION",
    "PROTECTED_ENV_NAMES",
    "PROTECTED_ENV_PREFIXES",
    "SECONDARY_DENIED_TOKENS",
    "WRAPPER_VERBS",
    "category_for",
    "is_protected_env",
]

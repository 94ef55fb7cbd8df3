"""Canonicalization of caller-supplied paths.

Canonical paths are absolute, symlink-resolved and normalized. Targets that do
not exist yet are tolerated: the nearest existing ancestor is resolved and the
missing components are re-appended literally, so callers can authorize writes
to files that have not been created.
"""

from __future__ import annotations

import os
from pathlib import Path

import anyio

from toolgate.core.errors import ResolutionError

# Matches the usual SYMLOOP_MAX on Linux.
MAX_SYMLINK_HOPS = 40

_SEPARATORS = "/\\" if os.name == "nt" else "/"


def expand_home(raw: str) -> str:
    """Expand a leading ``~`` to the current user's home directory.

    ``~username`` forms are rejected rather than resolved.
    """
    if raw == "~" or (len(raw) > 1 and raw[0] == "~" and raw[1] in _SEPARATORS):
        return str(Path.home()) + raw[1:]
    if raw.startswith("~"):
        raise ResolutionError(
            f"Accessing other users' home directories is not supported: {raw}"
        )
    return raw


def absolute_path(raw: str, base: str | None = None) -> str:
    """Return ``raw`` made absolute against ``base`` (or the process cwd).

    ``..`` segments are left in place; collapsing them before symlinks are
    resolved would disagree with how the kernel walks the path.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise ResolutionError("Path cannot be empty")
    if "\x00" in raw:
        raise ResolutionError("Path contains a NUL byte")

    expanded = expand_home(raw)
    if os.path.isabs(expanded):
        return expanded
    if base is None:
        try:
            base = os.getcwd()
        except OSError as exc:
            raise ResolutionError(f"Cannot determine current directory: {exc}") from exc
    return os.path.join(base, expanded)


def lexical_path(raw: str, base: str | None = None) -> str:
    """Symlink-unaware canonical form used by diagnostic checks."""
    return os.path.normpath(absolute_path(raw, base))


def _strip_trailing_separators(path: str) -> str:
    stripped = path.rstrip(_SEPARATORS)
    if not stripped or stripped.endswith(":"):
        # Filesystem root (or a bare Windows drive).
        return path
    return stripped


def resolve_existing(path: str, _hops: int = 0) -> str:
    """Resolve an absolute path, following symlinks, tolerating missing tails.

    Raises:
        ResolutionError: on permission errors, symlink loops or any other I/O
            failure that is not a plain "does not exist".
    """
    path = _strip_trailing_separators(path)
    try:
        return str(Path(path).resolve(strict=True))
    except (FileNotFoundError, NotADirectoryError):
        pass
    except RuntimeError as exc:
        # Symlink loops surface as RuntimeError before Python 3.13.
        raise ResolutionError(f"Cannot resolve {path}: {exc}") from exc
    except OSError as exc:
        raise ResolutionError(f"Cannot resolve {path}: {exc.strerror or exc}") from exc

    if os.path.islink(path):
        # Dangling link: the missing object is the link's target, not the link.
        if _hops >= MAX_SYMLINK_HOPS:
            raise ResolutionError(f"Too many levels of symbolic links: {path}")
        try:
            target = os.readlink(path)
        except OSError as exc:
            raise ResolutionError(f"Cannot read link {path}: {exc.strerror or exc}") from exc
        if not os.path.isabs(target):
            target = os.path.join(os.path.dirname(path), target)
        return resolve_existing(target, _hops + 1)

    parent, name = os.path.split(path)
    if not name or parent == path:
        return os.path.normpath(path)
    return os.path.normpath(os.path.join(resolve_existing(parent, _hops), name))


def canonicalize_sync(raw: str, base: str | None = None) -> str:
    """Blocking canonicalization, for startup and CLI diagnostics."""
    return resolve_existing(absolute_path(raw, base))


async def canonicalize(raw: str, base: str | None = None) -> str:
    """Canonicalize ``raw`` with filesystem probing moved off the event loop."""
    absolute = absolute_path(raw, base)
    return await anyio.to_thread.run_sync(resolve_existing, absolute)


__all__ = [
    "MAX_SYMLINK_HOPS",
    "absolute_path",
    "canonicalize",
    "canonicalize_sync",
    "expand_home",
    "lexical_path",
    "resolve_existing",
]

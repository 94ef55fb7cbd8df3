"""Confinement of paths to the configured set of allowed roots."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path

from toolgate.core.errors import AccessDenied, ResolutionError, StartupValidationError
from toolgate.core.types import ConfinementDecision
from toolgate.security.paths import canonicalize, canonicalize_sync, expand_home, lexical_path

logger = logging.getLogger(__name__)


def _comparable(path: str) -> str:
    return os.path.normcase(path)


def is_within(candidate: str, root: str) -> bool:
    """Return True when ``candidate`` equals ``root`` or lies beneath it.

    A bare string prefix is not enough: ``/data`` must not admit
    ``/data-archive``.
    """
    candidate = _comparable(candidate)
    root = _comparable(root)
    if candidate == root:
        return True
    prefix = root if root.endswith(os.sep) else root + os.sep
    return candidate.startswith(prefix)


@dataclass(frozen=True)
class AllowedRootSet:
    """Ordered, immutable set of canonical root directories."""

    roots: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.roots:
            raise StartupValidationError("At least one allowed directory is required")

    @classmethod
    def from_arguments(cls, raw_dirs: Sequence[str]) -> AllowedRootSet:
        """Validate startup directories and build the root set.

        Each directory must exist, be a directory, and be readable and
        writable. Duplicates are collapsed after canonicalization.

        Raises:
            StartupValidationError: if any directory fails validation.
        """
        if not raw_dirs:
            raise StartupValidationError(
                "Usage: toolgate serve <allowed-directory> [additional-directories...]"
            )

        roots: list[str] = []
        for raw in raw_dirs:
            try:
                expanded = expand_home(raw)
                resolved = Path(expanded).resolve(strict=True)
            except (OSError, RuntimeError, ResolutionError) as exc:
                raise StartupValidationError(f"Error accessing directory {raw}: {exc}") from exc
            if not resolved.is_dir():
                raise StartupValidationError(f"Error: {raw} is not a directory")
            if not os.access(resolved, os.R_OK | os.W_OK | os.X_OK):
                raise StartupValidationError(
                    f"Error: {raw} is not readable and writable by this process"
                )
            canonical = str(resolved)
            if canonical not in roots:
                roots.append(canonical)
        return cls(roots=tuple(roots))

    @property
    def primary(self) -> str:
        return self.roots[0]

    def match(self, canonical: str) -> str | None:
        """Return the first root containing ``canonical``, if any."""
        for root in self.roots:
            if is_within(canonical, root):
                return root
        return None

    def as_text(self) -> str:
        return "\n".join(self.roots)

    def __iter__(self) -> Iterator[str]:
        return iter(self.roots)

    def __len__(self) -> int:
        return len(self.roots)


class ConfinementChecker:
    """Decide whether caller paths fall inside the allowed roots.

    The full check resolves symlinks through :func:`canonicalize`; the lexical
    check skips symlink resolution and exists for diagnostics only. Both
    share :meth:`AllowedRootSet.match`. Every internal failure denies.
    """

    def __init__(self, roots: AllowedRootSet) -> None:
        self.roots = roots

    def _decide(self, raw: str, canonical: str) -> ConfinementDecision:
        matched = self.roots.match(canonical)
        if matched is None:
            return ConfinementDecision(
                allowed=False,
                requested=raw,
                canonical=canonical,
                reason="outside allowed directories",
            )
        return ConfinementDecision(
            allowed=True, requested=raw, canonical=canonical, matched_root=matched
        )

    async def check(self, raw: str, *, base: str | None = None) -> ConfinementDecision:
        try:
            canonical = await canonicalize(raw, base)
        except ResolutionError as exc:
            return ConfinementDecision(allowed=False, requested=raw, reason=exc.message)
        except Exception as exc:  # noqa: BLE001 - confinement fails closed
            logger.warning("Path resolution failed for %r: %s", raw, exc)
            return ConfinementDecision(allowed=False, requested=raw, reason=str(exc))
        return self._decide(raw, canonical)

    def check_sync(self, raw: str, *, base: str | None = None) -> ConfinementDecision:
        """Blocking full check, for CLI diagnostics outside an event loop."""
        try:
            canonical = canonicalize_sync(raw, base)
        except ResolutionError as exc:
            return ConfinementDecision(allowed=False, requested=raw, reason=exc.message)
        except Exception as exc:  # noqa: BLE001 - confinement fails closed
            return ConfinementDecision(allowed=False, requested=raw, reason=str(exc))
        return self._decide(raw, canonical)

    def check_lexical(self, raw: str, *, base: str | None = None) -> ConfinementDecision:
        try:
            candidate = lexical_path(raw, base)
        except ResolutionError as exc:
            return ConfinementDecision(allowed=False, requested=raw, reason=exc.message)
        return self._decide(raw, candidate)

    async def is_allowed(self, raw: str, *, base: str | None = None) -> bool:
        return (await self.check(raw, base=base)).allowed

    def is_allowed_lexical(self, raw: str, *, base: str | None = None) -> bool:
        return self.check_lexical(raw, base=base).allowed

    async def require(self, raw: str, *, base: str | None = None) -> str:
        """Return the canonical form of ``raw`` or raise :class:`AccessDenied`."""
        decision = await self.check(raw, base=base)
        if not decision.allowed or decision.canonical is None:
            reason = decision.reason if decision.canonical is None else None
            logger.warning("Access denied for path %r: %s", raw, decision.reason)
            raise AccessDenied(raw, reason)
        return decision.canonical


__all__ = ["AllowedRootSet", "ConfinementChecker", "is_within"]

from __future__ import annotations

import os
from pathlib import Path

import pytest

from toolgate.core.errors import AccessDenied, StartupValidationError
from toolgate.security.confinement import AllowedRootSet, ConfinementChecker, is_within

posix_only = pytest.mark.skipif(os.name == "nt", reason="symlink semantics are POSIX-specific")


def test_is_within_requires_a_separator_boundary() -> None:
    root = os.path.join(os.sep, "data")

    assert is_within(root, root)
    assert is_within(os.path.join(root, "x"), root)
    assert not is_within(os.path.join(os.sep, "data-archive", "x"), root)
    assert not is_within(os.path.join(os.sep, "dat"), root)


def test_root_set_validates_and_deduplicates(root_dir: Path) -> None:
    roots = AllowedRootSet.from_arguments([str(root_dir), str(root_dir / "."), str(root_dir)])

    assert roots.roots == (str(root_dir),)
    assert roots.primary == str(root_dir)
    assert roots.as_text() == str(root_dir)


def test_root_set_rejects_missing_directory(tmp_path: Path) -> None:
    with pytest.raises(StartupValidationError, match="Error accessing directory"):
        AllowedRootSet.from_arguments([str(tmp_path / "missing")])


def test_root_set_rejects_regular_file(tmp_path: Path) -> None:
    file_path = tmp_path / "file.txt"
    file_path.write_text("x")

    with pytest.raises(StartupValidationError, match="not a directory"):
        AllowedRootSet.from_arguments([str(file_path)])


def test_root_set_requires_at_least_one_directory() -> None:
    with pytest.raises(StartupValidationError, match="Usage"):
        AllowedRootSet.from_arguments([])


@pytest.mark.asyncio
async def test_paths_inside_root_are_allowed(checker: ConfinementChecker, root_dir: Path) -> None:
    decision = await checker.check(str(root_dir / "notes.txt"))

    assert decision.allowed
    assert decision.canonical == str(root_dir / "notes.txt")
    assert decision.matched_root == str(root_dir)


@pytest.mark.asyncio
async def test_prefix_sibling_is_denied(tmp_path: Path) -> None:
    data = tmp_path / "data"
    archive = tmp_path / "data-archive"
    data.mkdir()
    archive.mkdir()
    checker = ConfinementChecker(AllowedRootSet.from_arguments([str(data)]))

    assert not await checker.is_allowed(str(archive / "x"))
    assert not checker.is_allowed_lexical(str(archive / "x"))


@pytest.mark.asyncio
async def test_parent_traversal_is_denied(checker: ConfinementChecker, root_dir: Path) -> None:
    assert not await checker.is_allowed("../escape.txt", base=str(root_dir))


@pytest.mark.asyncio
async def test_nonexistent_target_with_parent_inside_is_allowed(
    checker: ConfinementChecker, root_dir: Path
) -> None:
    assert await checker.is_allowed(str(root_dir / "later" / "created.txt"))


@posix_only
@pytest.mark.asyncio
async def test_symlink_pointing_outside_is_denied(
    checker: ConfinementChecker, root_dir: Path, outside_dir: Path
) -> None:
    (outside_dir / "secret.txt").write_text("secret")
    (root_dir / "escape").symlink_to(outside_dir / "secret.txt")

    decision = await checker.check(str(root_dir / "escape"))

    assert not decision.allowed
    assert decision.canonical == str(outside_dir / "secret.txt")
    # The lexical mode cannot see the link and is for diagnostics only.
    assert checker.is_allowed_lexical(str(root_dir / "escape"))


@posix_only
@pytest.mark.asyncio
async def test_dangling_symlink_pointing_outside_is_denied(
    checker: ConfinementChecker, root_dir: Path, outside_dir: Path
) -> None:
    (root_dir / "planted").symlink_to(outside_dir / "future.txt")

    assert not await checker.is_allowed(str(root_dir / "planted"))


@posix_only
@pytest.mark.asyncio
async def test_resolution_failure_fails_closed(checker: ConfinementChecker, root_dir: Path) -> None:
    (root_dir / "loop").symlink_to(root_dir / "loop")

    decision = await checker.check(str(root_dir / "loop" / "x"))

    assert not decision.allowed
    assert decision.canonical is None
    assert decision.reason


@pytest.mark.asyncio
async def test_require_raises_access_denied_naming_the_path(
    checker: ConfinementChecker, outside_dir: Path
) -> None:
    target = str(outside_dir / "x.txt")

    with pytest.raises(AccessDenied) as excinfo:
        await checker.require(target)

    assert target in excinfo.value.message
    assert excinfo.value.category == "access-denied"

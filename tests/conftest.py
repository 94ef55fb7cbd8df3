"""Pytest configuration helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest

from toolgate.security.confinement import AllowedRootSet, ConfinementChecker


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Iterator[None]:
    """Clear cached gateway settings between tests."""
    from toolgate import settings

    settings.get_gateway_settings.cache_clear()
    try:
        yield
    finally:
        settings.get_gateway_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_observability_metrics() -> Iterator[None]:
    from toolgate.observability.metrics import reset_metrics

    reset_metrics()
    try:
        yield
    finally:
        reset_metrics()


@pytest.fixture
def root_dir(tmp_path: Path) -> Path:
    """An allowed root; resolved so tests compare canonical paths."""
    root = tmp_path / "root"
    root.mkdir()
    return root.resolve()


@pytest.fixture
def outside_dir(tmp_path: Path) -> Path:
    outside = tmp_path / "outside"
    outside.mkdir()
    return outside.resolve()


@pytest.fixture
def roots(root_dir: Path) -> AllowedRootSet:
    return AllowedRootSet.from_arguments([str(root_dir)])


@pytest.fixture
def checker(roots: AllowedRootSet) -> ConfinementChecker:
    return ConfinementChecker(roots)

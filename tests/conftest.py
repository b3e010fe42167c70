"""Shared fixtures for agentpack tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from agentpack.config import Settings


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated under the test's temp directory."""
    home = tmp_path / "home"
    return Settings(home=home, cache_dir=home / "cache", default_platforms=["claude"])


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """An empty workspace directory."""
    ws = tmp_path / "workspace"
    ws.mkdir()
    return ws


@pytest.fixture
def packages_dir(tmp_path: Path) -> Path:
    """Directory holding local test packages."""
    pkgs = tmp_path / "packages"
    pkgs.mkdir()
    return pkgs


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep user config and caches out of tests."""
    monkeypatch.setenv("AGENTPACK_HOME", str(tmp_path / "home"))
    for var in ("AGENTPACK_CACHE_DIR", "AGENTPACK_REGISTRY_URL", "AGENTPACK_CONCURRENCY"):
        monkeypatch.delenv(var, raising=False)

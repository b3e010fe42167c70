"""Shared fixtures for CLI tests.

Provides a workspace whose ``agentpack.yml`` declares a local ``team``
package that depends on a local ``base`` package.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from tests.helpers import write_package, write_workspace_manifest


@pytest.fixture
def project(packages_dir: Path, workspace: Path) -> Path:
    """Create the two-package project and return the workspace directory."""
    write_package(packages_dir, "base", {
        "rules/base.md": "Base rule\n",
        "mcp.json": json.dumps({"servers": {"local": {"command": "local"}}}),
    })
    write_package(packages_dir, "team", {
        "rules/style.md": "Team style\n",
        "AGENTS.md": "Team instructions\n",
    }, dependencies=["../base"])
    write_workspace_manifest(workspace, ["../packages/team"])
    return workspace

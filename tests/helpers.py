"""Package and workspace builders shared across test modules."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


def write_package(
    root: Path,
    name: str,
    files: dict[str, str] | None = None,
    dependencies: list[Any] | None = None,
    version: str | None = "1.0.0",
) -> Path:
    """Create a package directory ``root/name`` with a manifest and files.

    Args:
        root: Parent directory.
        name: Package (and directory) name.
        files: Package-relative path -> content.
        dependencies: Raw ``dependencies`` entries for the manifest.
        version: Manifest version; None omits it.

    Returns:
        The package directory.
    """
    pkg = root / name
    pkg.mkdir(parents=True, exist_ok=True)
    manifest: dict[str, Any] = {"name": name}
    if version:
        manifest["version"] = version
    if dependencies:
        manifest["dependencies"] = dependencies
    (pkg / "agentpack.yml").write_text(yaml.safe_dump(manifest, sort_keys=False))
    for rel, content in (files or {}).items():
        path = pkg / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return pkg


def write_workspace_manifest(workspace: Path, dependencies: list[Any]) -> Path:
    """Write a workspace ``agentpack.yml`` declaring *dependencies*."""
    workspace.mkdir(parents=True, exist_ok=True)
    path = workspace / "agentpack.yml"
    path.write_text(yaml.safe_dump({"name": "workspace", "dependencies": dependencies}))
    return path

"""Workspace index operations: deserialization, validation and diffing.

These are attached to ``WorkspaceIndex`` at import time (in
``__init__.py``) to keep each source file focused while presenting a single
API to callers.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from agentpack.core.index.models import (
    MERGE_POLICIES,
    FileRecord,
    OwnerRecord,
    PackageRecord,
    _INTEGRITY_RE,
)
from agentpack.exceptions import WorkspaceIndexError


def _from_dict(cls: type, data: dict[str, Any]) -> Any:
    """Deserialize an index from the dict produced by ``to_dict()``.

    Missing sections default to empty.

    Raises:
        WorkspaceIndexError: If a section has the wrong shape.
    """
    index = cls()
    packages = data.get("packages") or {}
    files = data.get("files") or {}
    if not isinstance(packages, dict) or not isinstance(files, dict):
        raise WorkspaceIndexError("Index 'packages' and 'files' must be mappings")

    for name, entry in packages.items():
        entry = entry or {}
        index.add_package(PackageRecord(
            name=str(name),
            version=entry.get("version"),
            source_type=entry.get("source_type", ""),
            source=entry.get("source", ""),
            dependencies=list(entry.get("dependencies") or []),
        ))

    for path, entry in files.items():
        if not isinstance(entry, dict):
            raise WorkspaceIndexError(f"Index entry for {path!r} must be a mapping")
        owners: dict[str, OwnerRecord] = {}
        for pkg, owner in (entry.get("owners") or {}).items():
            owner = owner or {}
            owners[str(pkg)] = OwnerRecord(
                priority=int(owner.get("priority", 0)),
                keys=[str(k) for k in owner.get("keys") or []],
                integrity=owner.get("integrity"),
            )
        index.set_file(FileRecord(path=str(path), merge=entry.get("merge", "replace"), owners=owners))
    return index


def _from_yaml(cls: type, text: str) -> Any:
    """Deserialize from YAML text.

    Raises:
        WorkspaceIndexError: If the text is not valid YAML or not a mapping.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise WorkspaceIndexError(f"Corrupted workspace index: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise WorkspaceIndexError("Workspace index must contain a mapping")
    return cls.from_dict(data)


def _read(cls: type, path: Path) -> Any:
    """Read the index at *path*; a missing file yields an empty index."""
    if not path.is_file():
        return cls()
    return cls.from_yaml(path.read_text(encoding="utf-8"))


def _validate(self: Any) -> list[str]:
    """Check the index for internal consistency.

    1. Every file owner is a known package.
    2. Merge policies are known.
    3. Replace files have exactly one owner.
    4. Integrity hashes are well-formed.
    5. Deep-merge owners list their keys.

    Returns:
        Validation error messages; empty means valid.
    """
    errors: list[str] = []
    known = set(self._packages)
    for path, record in sorted(self._files.items()):
        for owner in sorted(record.owners):
            if owner not in known:
                errors.append(f"File {path!r} is owned by unknown package {owner!r}")
        if record.merge not in MERGE_POLICIES:
            errors.append(f"File {path!r} has unknown merge policy {record.merge!r}")
        if record.merge == "replace" and len(record.owners) != 1:
            errors.append(
                f"Replace file {path!r} has {len(record.owners)} owners, expected 1"
            )
        for owner, rec in sorted(record.owners.items()):
            if rec.integrity and not _INTEGRITY_RE.match(rec.integrity):
                errors.append(f"File {path!r} has invalid integrity for {owner!r}")
            if record.merge == "deep" and not rec.keys:
                errors.append(f"Deep-merged file {path!r} lists no keys for {owner!r}")
    return errors


def _diff(self: Any, other: Any) -> dict[str, Any]:
    """Compare two indexes (typically before and after an install).

    Returns:
        Dict with ``added`` / ``removed`` / ``changed`` packages and
        ``files_added`` / ``files_removed``.
    """
    old_names = set(self._packages)
    new_names = set(other._packages)
    changed: list[dict[str, Any]] = []
    for name in sorted(old_names & new_names):
        old = self._packages[name]
        new = other._packages[name]
        if old.version != new.version:
            changed.append({"name": name, "field": "version", "old": old.version, "new": new.version})
        if old.source != new.source:
            changed.append({"name": name, "field": "source", "old": old.source, "new": new.source})
    return {
        "added": sorted(new_names - old_names),
        "removed": sorted(old_names - new_names),
        "changed": changed,
        "files_added": sorted(set(other._files) - set(self._files)),
        "files_removed": sorted(set(self._files) - set(other._files)),
    }

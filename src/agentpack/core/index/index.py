"""Workspace index: which package installed which file (and which keys).

The index lives at ``<workspace>/.agentpack/agentpack.index.yml`` and is the
only state carried between runs. It is file-centric::

    packages:
      team-rules:
        version: 1.2.0
        source_type: path
        source: ../team-rules
        dependencies: [base-rules]
    files:
      .mcp.json:
        merge: deep
        owners:
          team-rules:
            priority: 100
            keys: [/mcpServers/github]

Determinism guarantee: ``to_yaml()`` sorts packages, files, owners and keys
and carries no timestamp, so an unchanged install produces byte-identical
output and ``write()`` leaves the file untouched.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Any

import yaml

from agentpack.core.index.models import FileRecord, OwnerRecord, PackageRecord

logger = logging.getLogger(__name__)

INDEX_FILENAME = "agentpack.index.yml"


class WorkspaceIndex:
    """File-centric record of installed packages and their files.

    Example::

        index = WorkspaceIndex.read(WorkspaceIndex.path_for(cwd))
        index.add_package(PackageRecord(name="team-rules", version="1.2.0"))
        index.set_file(FileRecord(path=".claude/rules/style.md", owners={...}))
        index.write(WorkspaceIndex.path_for(cwd))
    """

    INDEX_VERSION: int = 1

    def __init__(self) -> None:
        self._packages: dict[str, PackageRecord] = {}
        self._files: dict[str, FileRecord] = {}

    @staticmethod
    def path_for(target_dir: Path) -> Path:
        """Return the index location for a workspace."""
        return target_dir / ".agentpack" / INDEX_FILENAME

    # -- Packages -----------------------------------------------------------

    def add_package(self, record: PackageRecord) -> None:
        self._packages[record.name] = record

    def get_package(self, name: str) -> PackageRecord | None:
        return self._packages.get(name)

    def remove_package(self, name: str) -> PackageRecord | None:
        return self._packages.pop(name, None)

    @property
    def package_names(self) -> list[str]:
        return sorted(self._packages)

    # -- Files --------------------------------------------------------------

    def set_file(self, record: FileRecord) -> None:
        if record.owners:
            self._files[record.path] = record
        else:
            self._files.pop(record.path, None)

    def get_file(self, path: str) -> FileRecord | None:
        return self._files.get(path)

    def remove_file(self, path: str) -> FileRecord | None:
        return self._files.pop(path, None)

    @property
    def file_paths(self) -> list[str]:
        return sorted(self._files)

    def owners_of(self, path: str) -> list[str]:
        record = self._files.get(path)
        return sorted(record.owners) if record else []

    def files_owned_by(self, package: str) -> list[FileRecord]:
        """Return every file *package* contributes to, sorted by path."""
        return [self._files[p] for p in sorted(self._files) if package in self._files[p].owners]

    def drop_owner(self, path: str, package: str) -> None:
        """Remove *package* from a file's owners; drop the file when none remain."""
        record = self._files.get(path)
        if record is None:
            return
        record.owners.pop(package, None)
        if not record.owners:
            del self._files[path]

    # -- Integrity ----------------------------------------------------------

    @staticmethod
    def compute_integrity(content: str | bytes) -> str:
        """Return ``sha256:<hex>`` for file content."""
        if isinstance(content, str):
            content = content.encode("utf-8")
        return f"sha256:{hashlib.sha256(content).hexdigest()}"

    # -- Serialization ------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a deterministic dict (everything sorted)."""
        packages: dict[str, Any] = {}
        for name in sorted(self._packages):
            rec = self._packages[name]
            entry: dict[str, Any] = {}
            if rec.version:
                entry["version"] = rec.version
            if rec.source_type:
                entry["source_type"] = rec.source_type
            if rec.source:
                entry["source"] = rec.source
            if rec.dependencies:
                entry["dependencies"] = sorted(rec.dependencies)
            packages[name] = entry

        files: dict[str, Any] = {}
        for path in sorted(self._files):
            rec = self._files[path]
            owners: dict[str, Any] = {}
            for pkg in sorted(rec.owners):
                owner = rec.owners[pkg]
                owner_entry: dict[str, Any] = {"priority": owner.priority}
                if owner.keys:
                    owner_entry["keys"] = sorted(owner.keys)
                if owner.integrity:
                    owner_entry["integrity"] = owner.integrity
                owners[pkg] = owner_entry
            files[path] = {"merge": rec.merge, "owners": owners}

        return {
            "index_version": self.INDEX_VERSION,
            "packages": packages,
            "files": files,
        }

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=True, default_flow_style=False)

    def write(self, path: Path) -> bool:
        """Write the index to *path* unless its content is unchanged.

        Returns:
            True if the file was written.
        """
        text = self.to_yaml()
        if path.is_file() and path.read_text(encoding="utf-8") == text:
            logger.debug("Index %s unchanged", path)
            return False
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        logger.debug("Wrote index %s", path)
        return True

"""Workspace index records.

Pure data holders (dataclasses) with no business logic, safe to import
from anywhere.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Integrity hash format: "sha256:<64-hex-characters>"
# ---------------------------------------------------------------------------

_INTEGRITY_RE = re.compile(r"^sha256:[0-9a-f]{64}$")

MERGE_POLICIES = ("replace", "deep", "composite")


@dataclass
class PackageRecord:
    """An installed package.

    Attributes:
        name: Package name.
        version: Resolved version, if known.
        source_type: ``path``, ``git`` or ``registry``.
        source: Declared path, URL or ``name@constraint``.
        dependencies: Names of direct dependencies.
    """

    name: str
    version: str | None = None
    source_type: str = ""
    source: str = ""
    dependencies: list[str] = field(default_factory=list)


@dataclass
class OwnerRecord:
    """One package's share of an installed file.

    ``keys`` lists the JSON Pointers a package owns in a deep-merged file;
    ``integrity`` is the content hash of a replace-policy file.
    """

    priority: int = 0
    keys: list[str] = field(default_factory=list)
    integrity: str | None = None


@dataclass
class FileRecord:
    """An installed file and every package contributing to it."""

    path: str
    merge: str = "replace"
    owners: dict[str, OwnerRecord] = field(default_factory=dict)

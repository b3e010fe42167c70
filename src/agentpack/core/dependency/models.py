"""Data types for dependency declarations, identities and resolved sources.

These are pure data holders with no business logic, so they can be
imported anywhere without circular-dependency concerns.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class SourceType(str, Enum):
    """Kind of location a dependency is fetched from."""

    GIT = "git"
    PATH = "path"
    REGISTRY = "registry"


class Mutability(str, Enum):
    """Whether a resolved content root may change between runs."""

    MUTABLE = "mutable"
    IMMUTABLE = "immutable"


# ---------------------------------------------------------------------------
# DependencyDeclaration: one entry of a manifest, as written
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DependencyDeclaration:
    """A dependency as declared in a manifest (or on the command line).

    Attributes:
        name: Package name. May be empty for git declarations, whose name
            is then derived from the repository.
        version: Version constraint for registry packages.
        path: Local path (path sources) or resource path inside a git
            repository (git sources).
        url: Git URL, optionally with a ``#ref&subdirectory=...`` fragment.
        ref: Git branch, tag or commit.
        base: Sub-directory of the fetched tree to use as content root.
        is_dev: Declared under ``dev-dependencies``.
        declared_in: Manifest file the declaration came from.
        depth: Distance from the workspace root (0 = top-level).
    """

    name: str
    version: str | None = None
    path: str | None = None
    url: str | None = None
    ref: str | None = None
    base: str | None = None
    is_dev: bool = False
    declared_in: Path | None = None
    depth: int = 0

    @property
    def source_type(self) -> SourceType:
        if self.url:
            return SourceType.GIT
        if self.path:
            return SourceType.PATH
        return SourceType.REGISTRY

    @property
    def declared_in_dir(self) -> Path | None:
        """Directory containing the declaring manifest, if known."""
        if self.declared_in is None:
            return None
        # Manifests may live in <root>/.agentpack/agentpack.yml; relative
        # paths are anchored at the package root either way.
        parent = self.declared_in.parent
        if parent.name == ".agentpack":
            return parent.parent
        return parent


@dataclass(frozen=True)
class DependencyId:
    """Canonical identity of a dependency.

    Two declarations of the same logical package always share ``key``.
    """

    key: str
    display_name: str
    source_type: SourceType


@dataclass(frozen=True)
class ResolvedPackageSource:
    """A declaration resolved to concrete content on disk.

    Attributes:
        package_name: Name the package is installed under.
        absolute_path: Content root (``base`` / subdirectory applied).
        declared_path: The path or URL as written in the declaration.
        mutability: Whether content may change between runs.
        source_type: Kind of source.
        version: Concrete version, when known.
        resolution_source: How a registry version was chosen
            (``local`` or ``remote``).
    """

    package_name: str
    absolute_path: Path
    declared_path: str
    mutability: Mutability
    source_type: SourceType
    version: str | None = None
    resolution_source: str | None = None


@dataclass
class DependencyGraphNode:
    """A resolved package in the dependency graph.

    ``dependencies`` holds the names of direct children, including edges to
    packages that were already visited (cycles and diamonds), for display.
    """

    name: str
    id: DependencyId
    source: ResolvedPackageSource
    depth: int
    version: str | None = None
    is_dev: bool = False
    dependencies: list[str] = field(default_factory=list)

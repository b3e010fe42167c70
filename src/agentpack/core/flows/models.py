"""Data types for flows, platforms and flow execution results."""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from agentpack.exceptions import ValidationError


class MergePolicy(str, Enum):
    """How contributions to one target file are combined."""

    REPLACE = "replace"
    DEEP = "deep"
    COMPOSITE = "composite"


# ---------------------------------------------------------------------------
# Flow: one source-pattern -> target-pattern transform rule
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FlowCondition:
    """Guard deciding whether a flow applies.

    Attributes:
        exists: Workspace-relative path that must exist.
        not_exists: Workspace-relative path that must not exist.
        packages: Package-name globs; the flow applies to matching packages only.
    """

    exists: str | None = None
    not_exists: str | None = None
    packages: tuple[str, ...] = ()

    def holds(self, package_name: str, target_dir: Path) -> bool:
        if self.exists and not (target_dir / self.exists).exists():
            return False
        if self.not_exists and (target_dir / self.not_exists).exists():
            return False
        if self.packages and not any(fnmatch.fnmatchcase(package_name, p) for p in self.packages):
            return False
        return True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FlowCondition:
        packages = data.get("packages") or ()
        if isinstance(packages, str):
            packages = (packages,)
        return cls(
            exists=data.get("exists"),
            not_exists=data.get("not_exists"),
            packages=tuple(str(p) for p in packages),
        )


@dataclass(frozen=True)
class Flow:
    """A rule mapping package files onto a platform layout.

    Attributes:
        from_pattern: Glob over package-relative paths (``rules/**/*.md``).
        to_pattern: Target path template (``{rootDir}/rules/{dir}{name}.mdc``).
        merge: Merge policy for the target.
        condition: Optional guard.
        map_ops: ``$rename`` / ``$set`` / ``$unset`` operations applied to
            structured payloads before merging.
    """

    from_pattern: str
    to_pattern: str
    merge: MergePolicy = MergePolicy.REPLACE
    condition: FlowCondition | None = None
    map_ops: tuple[dict[str, Any], ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Flow:
        """Build a flow from ``{from, to, merge, when, map}``.

        Raises:
            ValidationError: If required keys are missing or values invalid.
        """
        if not isinstance(data, dict) or "from" not in data or "to" not in data:
            raise ValidationError(f"Flow needs 'from' and 'to': {data!r}")
        try:
            merge = MergePolicy(str(data.get("merge", "replace")).lower())
        except ValueError as exc:
            raise ValidationError(f"Unknown merge policy in flow {data!r}") from exc
        when = data.get("when")
        ops = data.get("map") or ()
        if isinstance(ops, dict):
            ops = [{k: v} for k, v in ops.items()]
        return cls(
            from_pattern=str(data["from"]),
            to_pattern=str(data["to"]),
            merge=merge,
            condition=FlowCondition.from_dict(when) if isinstance(when, dict) else None,
            map_ops=tuple(dict(op) for op in ops),
        )

    def describe(self) -> str:
        return f"{self.from_pattern} -> {self.to_pattern}"


@dataclass(frozen=True)
class PlatformDefinition:
    """A target tool layout.

    Attributes:
        id: Short identifier (``claude``).
        name: Display name.
        root_dir: Platform directory in the workspace (``.claude``).
        root_file: Root instructions file (``CLAUDE.md``), if any.
        subdirs: Resource sub-directories, informational.
        export_flows: Flows from package to workspace.
        import_flows: Flows from workspace back to a package (data only).
        aliases: Alternative ids accepted on the command line.
        enabled: Disabled platforms are never installed to.
    """

    id: str
    name: str
    root_dir: str
    root_file: str | None = None
    subdirs: tuple[str, ...] = ()
    export_flows: tuple[Flow, ...] = ()
    import_flows: tuple[Flow, ...] = ()
    aliases: tuple[str, ...] = ()
    enabled: bool = True

    @classmethod
    def from_dict(cls, platform_id: str, data: dict[str, Any]) -> PlatformDefinition:
        if not data.get("root_dir"):
            raise ValidationError(f"Platform {platform_id!r} has no root_dir")
        return cls(
            id=platform_id,
            name=str(data.get("name", platform_id)),
            root_dir=str(data["root_dir"]),
            root_file=data.get("root_file"),
            subdirs=tuple(data.get("subdirs") or ()),
            export_flows=tuple(Flow.from_dict(f) for f in data.get("export") or ()),
            import_flows=tuple(Flow.from_dict(f) for f in data.get("import") or ()),
            aliases=tuple(data.get("aliases") or ()),
            enabled=bool(data.get("enabled", True)),
        )

    def matches(self, name: str) -> bool:
        return name == self.id or name in self.aliases


# ---------------------------------------------------------------------------
# Engine input and output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FlowPackage:
    """A package as the flow engine sees it.

    Attributes:
        name: Package name.
        root: Content root directory.
        version: Package version, if known.
        priority: Higher wins contested keys and paths.
        rank: Breadth-first position; lower is closer to the root.
        file_filter: Package-relative globs restricting which files install.
    """

    name: str
    root: Path
    version: str | None = None
    priority: int = 100
    rank: int = 0
    file_filter: tuple[str, ...] = ()

    def accepts(self, rel_path: str) -> bool:
        if not self.file_filter:
            return True
        return any(
            fnmatch.fnmatchcase(rel_path, pat) or rel_path.startswith(pat.rstrip("/") + "/")
            for pat in self.file_filter
        )


@dataclass
class FlowFailure:
    """A flow that failed for one source file."""

    package: str
    flow: str
    source_path: str
    error: str
    message: str


@dataclass
class FlowConflict:
    """A contested target path and how it was settled."""

    target_path: str
    winner: str | None
    losers: list[str]
    message: str


@dataclass
class FileOwnership:
    """One package's share of a target file."""

    priority: int
    keys: list[str] = field(default_factory=list)
    integrity: str | None = None


@dataclass
class FileMapping:
    """Who owns a written target file, and under which merge policy."""

    merge: MergePolicy
    owners: dict[str, FileOwnership] = field(default_factory=dict)


@dataclass
class RelocatedFile:
    """A file moved into a package-namespaced path on collision."""

    from_path: str
    to_path: str
    package: str


@dataclass
class FlowApplyResult:
    """Outcome of applying flows for a set of packages.

    Paths are workspace-relative POSIX strings.
    """

    files_processed: int = 0
    files_written: int = 0
    conflicts: list[FlowConflict] = field(default_factory=list)
    errors: list[FlowFailure] = field(default_factory=list)
    target_paths: list[str] = field(default_factory=list)
    written_paths: list[str] = field(default_factory=list)
    unchanged_paths: list[str] = field(default_factory=list)
    relocated_files: list[RelocatedFile] = field(default_factory=list)
    file_mapping: dict[str, FileMapping] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.errors

    def paths_owned_by(self, package: str) -> list[str]:
        return sorted(p for p, m in self.file_mapping.items() if package in m.owners)

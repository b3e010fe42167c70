"""Installation options, plan units and per-run context."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from agentpack.core.dependency.graph import GraphResolution
from agentpack.core.dependency.models import DependencyDeclaration, ResolvedPackageSource
from agentpack.core.flows.models import FlowApplyResult, FlowPackage, PlatformDefinition

ROOT_PRIORITY = 100
PRIORITY_STEP = 10

SINGLE = "single"
BULK = "bulk"


def priority_for_depth(depth: int) -> int:
    """Priority of a package at *depth*: 100 at the root, minus 10 per level."""
    return max(0, ROOT_PRIORITY - PRIORITY_STEP * depth)


@dataclass
class InstallOptions:
    """User-facing switches for one install run.

    Attributes:
        platforms: Platform ids; empty means detect (then config default).
        include_dev: Install top-level dev dependencies too.
        dry_run: Resolve and compose, but write nothing.
        fail_fast: Stop resolving after the first failure.
        concurrency: Resolver worker count; None uses the configured value.
        conflict_strategy: ``namespace``, ``overwrite`` or ``skip``; None
            uses the configured value.
        resource_filter: Package-relative globs limiting which files of the
            root package install (``rules/*.md``, ``skills/pdf``).
    """

    platforms: list[str] = field(default_factory=list)
    include_dev: bool = False
    dry_run: bool = False
    fail_fast: bool = False
    concurrency: int | None = None
    conflict_strategy: str | None = None
    resource_filter: list[str] = field(default_factory=list)


@dataclass
class ResolvedPackage:
    """A resolved graph node scheduled for installation."""

    name: str
    source: ResolvedPackageSource
    depth: int
    rank: int
    priority: int
    version: str | None = None
    dependencies: list[str] = field(default_factory=list)
    is_root: bool = False
    is_dev: bool = False

    def to_flow_package(self, file_filter: tuple[str, ...] = ()) -> FlowPackage:
        return FlowPackage(
            name=self.name,
            root=self.source.absolute_path,
            version=self.version,
            priority=self.priority,
            rank=self.rank,
            file_filter=file_filter,
        )


@dataclass
class InstallationContext:
    """State of one install unit (the whole run, or one bulk sub-target)."""

    source: DependencyDeclaration
    mode: str
    options: InstallOptions
    platforms: list[PlatformDefinition]
    cwd: Path
    target_dir: Path
    resolved_packages: list[ResolvedPackage] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    missing_packages: list[str] = field(default_factory=list)
    cancelled: list[str] = field(default_factory=list)
    graph: GraphResolution | None = None
    result: FlowApplyResult | None = None
    removed_files: list[str] = field(default_factory=list)
    hard_failure: bool = False

    @property
    def package_names(self) -> list[str]:
        return [p.name for p in self.resolved_packages]

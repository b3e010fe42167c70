"""Install and uninstall reports."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from agentpack.core.install.context import InstallationContext


@dataclass
class InstallReport:
    """Aggregated outcome of an install run."""

    contexts: list[InstallationContext] = field(default_factory=list)
    dry_run: bool = False
    index_written: bool = False

    @property
    def success(self) -> bool:
        return not any(ctx.hard_failure for ctx in self.contexts)

    @property
    def files_written(self) -> int:
        return sum(ctx.result.files_written for ctx in self.contexts if ctx.result)

    @property
    def errors(self) -> list[str]:
        return [e for ctx in self.contexts for e in ctx.errors]

    @property
    def warnings(self) -> list[str]:
        return [w for ctx in self.contexts for w in ctx.warnings]

    def to_dict(self) -> dict[str, Any]:
        """Serialize for ``--json`` output. Keys are stable."""
        return {
            "success": self.success,
            "dry_run": self.dry_run,
            "files_written": self.files_written,
            "index_written": self.index_written,
            "contexts": [_context_dict(ctx) for ctx in self.contexts],
        }


@dataclass
class UninstallReport:
    """Outcome of removing one package."""

    package: str
    deleted: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    kept: list[str] = field(default_factory=list)
    dry_run: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "package": self.package,
            "deleted": self.deleted,
            "updated": self.updated,
            "kept": self.kept,
            "dry_run": self.dry_run,
        }


def _context_dict(ctx: InstallationContext) -> dict[str, Any]:
    result = ctx.result
    return {
        "source": ctx.source.name,
        "mode": ctx.mode,
        "target_dir": str(ctx.target_dir),
        "platforms": [p.id for p in ctx.platforms],
        "packages": [
            {
                "name": p.name,
                "version": p.version,
                "depth": p.depth,
                "priority": p.priority,
                "source_type": p.source.source_type.value,
                "path": str(p.source.absolute_path),
            }
            for p in ctx.resolved_packages
        ],
        "files_processed": result.files_processed if result else 0,
        "files_written": result.files_written if result else 0,
        "written_paths": list(result.written_paths) if result else [],
        "unchanged_paths": list(result.unchanged_paths) if result else [],
        "relocated_files": [
            {"from": r.from_path, "to": r.to_path, "package": r.package}
            for r in (result.relocated_files if result else [])
        ],
        "conflicts": [c.message for c in (result.conflicts if result else [])],
        "removed_files": list(ctx.removed_files),
        "errors": list(ctx.errors),
        "warnings": list(ctx.warnings),
        "missing_packages": list(ctx.missing_packages),
        "cancelled": list(ctx.cancelled),
        "hard_failure": ctx.hard_failure,
    }

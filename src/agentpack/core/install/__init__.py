"""Installation pipeline: plan, execute, persist and report.

``InstallOrchestrator`` is the entry point; the CLI and tests drive
everything through it.
"""

from agentpack.core.install.cleanup import prune_empty_dirs, remove_contribution
from agentpack.core.install.context import (
    BULK,
    SINGLE,
    InstallationContext,
    InstallOptions,
    ResolvedPackage,
    priority_for_depth,
)
from agentpack.core.install.orchestrator import InstallOrchestrator, build_source_resolver
from agentpack.core.install.reporting import InstallReport, UninstallReport

__all__ = [
    "BULK",
    "InstallOptions",
    "InstallOrchestrator",
    "InstallReport",
    "InstallationContext",
    "ResolvedPackage",
    "SINGLE",
    "UninstallReport",
    "build_source_resolver",
    "priority_for_depth",
    "prune_empty_dirs",
    "remove_contribution",
]

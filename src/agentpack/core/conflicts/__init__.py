"""Conflict and namespace resolution for contested target paths."""

from agentpack.core.conflicts.resolver import (
    RELOCATE,
    SKIP,
    WRITE,
    Claim,
    ConflictResolution,
    ConflictResolver,
    ConflictStrategy,
    PathDecision,
    namespaced_path,
    package_slug,
)

__all__ = [
    "Claim",
    "ConflictResolution",
    "ConflictResolver",
    "ConflictStrategy",
    "PathDecision",
    "RELOCATE",
    "SKIP",
    "WRITE",
    "namespaced_path",
    "package_slug",
]

"""Dependency declarations, canonical identity and graph resolution.

All public names are re-exported here so callers can use
``from agentpack.core.dependency import WaveResolver``.
"""

from agentpack.core.dependency.constraints import (
    VersionConstraint,
    is_version,
    parse_version_tuple,
    select_best,
)
from agentpack.core.dependency.graph import DependencyGraph, GraphResolution
from agentpack.core.dependency.identity import (
    NO_REF_SENTINEL,
    compute_dependency_id,
    normalize_git_url,
    resolve_declared_path,
    split_git_url,
)
from agentpack.core.dependency.models import (
    DependencyDeclaration,
    DependencyGraphNode,
    DependencyId,
    Mutability,
    ResolvedPackageSource,
    SourceType,
)
from agentpack.core.dependency.resolver import WaveResolver

__all__ = [
    "DependencyDeclaration",
    "DependencyGraph",
    "DependencyGraphNode",
    "DependencyId",
    "GraphResolution",
    "Mutability",
    "NO_REF_SENTINEL",
    "ResolvedPackageSource",
    "SourceType",
    "VersionConstraint",
    "WaveResolver",
    "compute_dependency_id",
    "is_version",
    "normalize_git_url",
    "parse_version_tuple",
    "resolve_declared_path",
    "select_best",
    "split_git_url",
]

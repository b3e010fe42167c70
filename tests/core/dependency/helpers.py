"""Graph node factories shared by dependency tests."""

from __future__ import annotations

from pathlib import Path

from agentpack.core.dependency.identity import compute_dependency_id
from agentpack.core.dependency.models import (
    DependencyDeclaration,
    DependencyGraphNode,
    Mutability,
    ResolvedPackageSource,
    SourceType,
)


def make_node(
    name: str,
    dependencies: list[str] | None = None,
    depth: int = 0,
    version: str | None = None,
    is_dev: bool = False,
) -> DependencyGraphNode:
    """Build a graph node for a registry package named *name*."""
    decl = DependencyDeclaration(name=name, depth=depth)
    return DependencyGraphNode(
        name=name,
        id=compute_dependency_id(decl),
        source=ResolvedPackageSource(
            package_name=name,
            absolute_path=Path("/tmp") / name,
            declared_path=name,
            mutability=Mutability.IMMUTABLE,
            source_type=SourceType.REGISTRY,
        ),
        depth=depth,
        version=version,
        is_dev=is_dev,
        dependencies=dependencies or [],
    )

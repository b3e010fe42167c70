"""Source resolution: declaration -> concrete content root on disk.

One resolver coroutine per ``SourceType``, selected through an explicit
dispatch table. Blocking work (filesystem checks, git subprocesses) runs in
worker threads so the graph resolver can keep several resolutions in flight.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

from agentpack.core.dependency.constraints import VersionConstraint
from agentpack.core.dependency.identity import resolve_declared_path, split_git_url
from agentpack.core.dependency.models import (
    DependencyDeclaration,
    Mutability,
    ResolvedPackageSource,
    SourceType,
)
from agentpack.core.sources.git import GitCloner
from agentpack.core.sources.registry import RegistryResolver
from agentpack.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class SourceResolver:
    """Resolves declarations of every source kind.

    Args:
        cache_dir: The agentpack cache root. Content under it is immutable.
        git: Git cloner; defaults to one rooted at *cache_dir*.
        registry: Registry resolver; defaults to cache-only resolution.
    """

    def __init__(
        self,
        cache_dir: Path,
        git: GitCloner | None = None,
        registry: RegistryResolver | None = None,
    ) -> None:
        self.cache_dir = cache_dir
        self.git = git or GitCloner(cache_dir)
        self.registry = registry or RegistryResolver(cache_dir)
        self._dispatch: dict[
            SourceType, Callable[[DependencyDeclaration], Awaitable[ResolvedPackageSource]]
        ] = {
            SourceType.PATH: self._resolve_path,
            SourceType.GIT: self._resolve_git,
            SourceType.REGISTRY: self._resolve_registry,
        }

    async def resolve(self, declaration: DependencyDeclaration) -> ResolvedPackageSource:
        """Resolve *declaration* to its content root.

        Raises:
            NotFoundError: If the content cannot be located.
            ValidationError: If the declaration is malformed.
            GitCommandError: If cloning fails.
            httpx.HTTPError: If the registry cannot be reached.
            ValueError: If the registry response is not valid JSON.
        """
        return await self._dispatch[declaration.source_type](declaration)

    # -- per-kind resolvers -------------------------------------------------

    async def _resolve_path(self, declaration: DependencyDeclaration) -> ResolvedPackageSource:
        root = resolve_declared_path(declaration.path or "", declaration.declared_in_dir)
        content_root = _apply_base(root, declaration.base)
        if not await asyncio.to_thread(content_root.is_dir):
            raise NotFoundError(
                f"Path for {declaration.name!r} does not exist: {content_root}"
            )
        return ResolvedPackageSource(
            package_name=declaration.name,
            absolute_path=content_root,
            declared_path=declaration.path or "",
            mutability=self._mutability(content_root),
            source_type=SourceType.PATH,
            version=None,
        )

    async def _resolve_git(self, declaration: DependencyDeclaration) -> ResolvedPackageSource:
        url, fragment = split_git_url(declaration.url or "")
        if not url:
            raise ValidationError(f"Dependency {declaration.name!r} has an empty git url")
        ref = fragment.ref or declaration.ref
        subdirectory = declaration.path or fragment.subdirectory
        checkout = await asyncio.to_thread(self.git.clone, url, ref, subdirectory)
        content_root = _apply_base(checkout, declaration.base)
        if declaration.base and not content_root.is_dir():
            raise NotFoundError(
                f"Base {declaration.base!r} does not exist in {declaration.url}"
            )
        return ResolvedPackageSource(
            package_name=declaration.name,
            absolute_path=content_root,
            declared_path=declaration.url or "",
            mutability=Mutability.IMMUTABLE,
            source_type=SourceType.GIT,
            version=None,
        )

    async def _resolve_registry(self, declaration: DependencyDeclaration) -> ResolvedPackageSource:
        if not declaration.name:
            raise ValidationError("Registry dependency has no name")
        try:
            VersionConstraint((declaration.version or "").strip() or "latest").validate()
        except ValueError as exc:
            raise ValidationError(
                f"Invalid version constraint for {declaration.name!r}: {exc}"
            ) from exc
        resolution = await self.registry.resolve_version(declaration.name, declaration.version)
        content_root = _apply_base(resolution.absolute_path, declaration.base)
        return ResolvedPackageSource(
            package_name=declaration.name,
            absolute_path=content_root,
            declared_path=f"{declaration.name}@{declaration.version or 'latest'}",
            mutability=Mutability.IMMUTABLE,
            source_type=SourceType.REGISTRY,
            version=resolution.version,
            resolution_source=resolution.resolution_source,
        )

    def _mutability(self, path: Path) -> Mutability:
        try:
            path.resolve().relative_to(self.cache_dir.resolve())
        except ValueError:
            return Mutability.MUTABLE
        return Mutability.IMMUTABLE


def _apply_base(root: Path, base: str | None) -> Path:
    if not base:
        return root
    return root / base.strip("/")

"""Installation orchestrator: resolve -> plan -> execute -> persist -> report.

``install`` runs in one of two modes:

- **single**: one package spec from the command line becomes the root.
- **bulk**: every top-level declaration of the workspace manifest becomes
  its own ``InstallationContext``.

Contexts are resolved concurrently, but executed one at a time in manifest
order because execution reads and writes target files and the shared
workspace index. The index is read once before execution and written once
at the end.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from agentpack.config import Settings
from agentpack.core.conflicts import ConflictResolver
from agentpack.core.dependency.graph import GraphResolution
from agentpack.core.dependency.resolver import WaveResolver
from agentpack.core.flows.engine import FlowEngine
from agentpack.core.flows.models import PlatformDefinition
from agentpack.core.flows.platforms import detect_platforms, load_platforms, select_platforms
from agentpack.core.index import FileRecord, OwnerRecord, PackageRecord, WorkspaceIndex
from agentpack.core.install.cleanup import DELETED, KEPT, UPDATED, remove_contribution
from agentpack.core.install.context import (
    BULK,
    SINGLE,
    InstallationContext,
    InstallOptions,
    ResolvedPackage,
    priority_for_depth,
)
from agentpack.core.install.reporting import InstallReport, UninstallReport
from agentpack.core.manifest import MANIFEST_FILENAME, manifest_path_at, parse_package_spec
from agentpack.core.sources import RegistryResolver, RemoteRegistry, SourceResolver
from agentpack.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def build_source_resolver(settings: Settings) -> SourceResolver:
    """Create a source resolver wired to the configured cache and registry."""
    cache_dir = settings.cache_dir or settings.home / "cache"
    remote = (
        RemoteRegistry(settings.registry_url, timeout=settings.http_timeout)
        if settings.registry_url
        else None
    )
    return SourceResolver(cache_dir, registry=RegistryResolver(cache_dir, remote))


class InstallOrchestrator:
    """Sequences dependency resolution, flow execution and index updates.

    Args:
        settings: Runtime settings; loaded from the workspace when omitted.
        sources: Source resolver; built from *settings* when omitted.
        platforms: Platform definitions; loaded with overrides when omitted.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        sources: SourceResolver | None = None,
        platforms: dict[str, PlatformDefinition] | None = None,
    ) -> None:
        self.settings = settings
        self.sources = sources
        self.platforms = platforms

    # -- public API ---------------------------------------------------------

    def install(
        self,
        cwd: Path,
        package: str | None = None,
        options: InstallOptions | None = None,
    ) -> InstallReport:
        """Install *package* (or the whole workspace manifest) into *cwd*.

        Raises:
            NotFoundError: In bulk mode, if the workspace has no manifest.
            ValidationError: On an invalid package spec or platform name.
        """
        return asyncio.run(self.install_async(cwd, package, options))

    async def install_async(
        self,
        cwd: Path,
        package: str | None = None,
        options: InstallOptions | None = None,
    ) -> InstallReport:
        options = options or InstallOptions()
        cwd = cwd.resolve()
        settings = self._settings(cwd)
        platforms = self._select_platforms(cwd, options, settings)

        contexts = self._plan_contexts(cwd, package, options, platforms)
        report = InstallReport(dry_run=options.dry_run)
        if not contexts:
            return report

        resolver = WaveResolver(
            self.sources or build_source_resolver(settings),
            concurrency=options.concurrency or settings.concurrency,
            fail_fast=options.fail_fast,
        )
        await asyncio.gather(*(self._resolve_context(resolver, ctx) for ctx in contexts))

        index_path = WorkspaceIndex.path_for(cwd)
        index = WorkspaceIndex.read(index_path)
        strategy = options.conflict_strategy or settings.conflict_strategy
        engine = FlowEngine(ConflictResolver(strategy), dry_run=options.dry_run)
        for ctx in contexts:
            self._execute(ctx, engine, index)
            report.contexts.append(ctx)

        if not options.dry_run:
            report.index_written = index.write(index_path)
        return report

    def resolve_tree(self, cwd: Path, include_dev: bool = False) -> GraphResolution:
        """Resolve the workspace manifest's dependency graph without installing.

        Raises:
            NotFoundError: If the workspace has no manifest.
        """
        cwd = cwd.resolve()
        settings = self._settings(cwd)
        manifest = manifest_path_at(cwd)
        if manifest is None:
            raise NotFoundError(f"No {MANIFEST_FILENAME} found in {cwd}")
        resolver = WaveResolver(
            self.sources or build_source_resolver(settings),
            concurrency=settings.concurrency,
        )
        return resolver.resolve(WaveResolver.root_declarations(manifest, include_dev))

    def uninstall(self, cwd: Path, name: str, *, dry_run: bool = False) -> UninstallReport:
        """Remove exactly *name*'s contribution from the workspace.

        Raises:
            NotFoundError: If *name* is not installed.
        """
        cwd = cwd.resolve()
        index_path = WorkspaceIndex.path_for(cwd)
        index = WorkspaceIndex.read(index_path)
        records = index.files_owned_by(name)
        if index.get_package(name) is None and not records:
            raise NotFoundError(f"Package {name!r} is not installed in {cwd}")

        report = UninstallReport(package=name, dry_run=dry_run)
        for record in records:
            outcome = remove_contribution(cwd, record, name, dry_run=dry_run)
            if outcome == DELETED:
                report.deleted.append(record.path)
            elif outcome == UPDATED:
                report.updated.append(record.path)
            elif outcome == KEPT:
                report.kept.append(record.path)
            index.drop_owner(record.path, name)
        index.remove_package(name)

        if not dry_run:
            index.write(index_path)
        logger.info("Uninstalled %s (%d files removed)", name, len(report.deleted))
        return report

    # -- planning -----------------------------------------------------------

    def _settings(self, cwd: Path) -> Settings:
        if self.settings is None:
            self.settings = Settings.load(cwd)
        return self.settings

    def _select_platforms(
        self, cwd: Path, options: InstallOptions, settings: Settings
    ) -> list[PlatformDefinition]:
        definitions = self.platforms or load_platforms(cwd, settings.home)
        if options.platforms:
            return select_platforms(options.platforms, definitions)
        detected = detect_platforms(cwd, definitions)
        if detected:
            return detected
        return [p for p in select_platforms(settings.default_platforms, definitions) if p.enabled]

    def _plan_contexts(
        self,
        cwd: Path,
        package: str | None,
        options: InstallOptions,
        platforms: list[PlatformDefinition],
    ) -> list[InstallationContext]:
        manifest = manifest_path_at(cwd)
        if package:
            declared_in = manifest or cwd / MANIFEST_FILENAME
            decl = parse_package_spec(package, declared_in=declared_in, depth=0)
            if decl is None:
                raise ValidationError("Empty package spec")
            roots = [decl]
            mode = SINGLE
        else:
            if manifest is None:
                raise NotFoundError(f"No {MANIFEST_FILENAME} found in {cwd}")
            roots = WaveResolver.root_declarations(manifest, options.include_dev)
            mode = BULK

        return [
            InstallationContext(
                source=root,
                mode=mode,
                options=options,
                platforms=platforms,
                cwd=cwd,
                target_dir=cwd,
            )
            for root in roots
        ]

    async def _resolve_context(self, resolver: WaveResolver, ctx: InstallationContext) -> None:
        graph = await resolver.resolve_async([ctx.source])
        ctx.graph = graph
        ctx.warnings.extend(graph.warnings)
        ctx.missing_packages.extend(graph.missing_packages)
        ctx.cancelled.extend(graph.cancelled)
        if not graph.nodes:
            ctx.errors.append(f"Could not resolve {ctx.source.name}")
            return

        first_key: dict[str, str] = {}
        for rank, node in enumerate(graph.nodes):
            if node.name in first_key:
                ctx.warnings.append(
                    f"Package name {node.name!r} resolved from both {first_key[node.name]} "
                    f"and {node.id.key}; keeping the first"
                )
                continue
            first_key[node.name] = node.id.key
            ctx.resolved_packages.append(ResolvedPackage(
                name=node.name,
                source=node.source,
                depth=node.depth,
                rank=rank,
                priority=priority_for_depth(node.depth),
                version=node.version,
                dependencies=list(node.dependencies),
                is_root=node.depth == 0,
                is_dev=node.is_dev,
            ))

    # -- execution ----------------------------------------------------------

    def _execute(self, ctx: InstallationContext, engine: FlowEngine, index: WorkspaceIndex) -> None:
        if not ctx.resolved_packages:
            ctx.hard_failure = bool(ctx.errors)
            return

        root_filter = tuple(ctx.options.resource_filter)
        flow_packages = [
            p.to_flow_package(root_filter if p.is_root else ()) for p in ctx.resolved_packages
        ]
        result = engine.apply_flows(flow_packages, ctx.platforms, ctx.target_dir, index=index)
        ctx.result = result
        ctx.errors.extend(f.message for f in result.errors)
        for conflict in result.conflicts:
            ctx.warnings.append(conflict.message)

        failed = {f.package for f in result.errors}
        self._remove_stale(ctx, index, result.file_mapping, failed)

        for path, mapping in result.file_mapping.items():
            index.set_file(FileRecord(
                path=path,
                merge=mapping.merge.value,
                owners={
                    pkg: OwnerRecord(priority=o.priority, keys=list(o.keys), integrity=o.integrity)
                    for pkg, o in mapping.owners.items()
                },
            ))
        for pkg in ctx.resolved_packages:
            index.add_package(PackageRecord(
                name=pkg.name,
                version=pkg.version,
                source_type=pkg.source.source_type.value,
                source=pkg.source.declared_path,
                dependencies=pkg.dependencies,
            ))

        ctx.hard_failure = not result.target_paths and bool(ctx.errors)
        logger.info(
            "Installed %s: %d written, %d unchanged, %d errors",
            ctx.source.name, result.files_written, len(result.unchanged_paths), len(ctx.errors),
        )

    def _remove_stale(
        self,
        ctx: InstallationContext,
        index: WorkspaceIndex,
        mapping: dict,
        failed: set[str],
    ) -> None:
        """Drop files a reinstalled package owned before but no longer produces."""
        for pkg in ctx.package_names:
            if pkg in failed:
                continue
            for record in index.files_owned_by(pkg):
                if record.path in mapping:
                    continue
                outcome = remove_contribution(
                    ctx.target_dir, record, pkg, dry_run=ctx.options.dry_run
                )
                if outcome == DELETED:
                    ctx.removed_files.append(record.path)
                index.drop_owner(record.path, pkg)

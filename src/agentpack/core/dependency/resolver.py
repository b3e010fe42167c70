"""Wave-based dependency graph resolution.

The graph is expanded breadth-first, one wave (depth level) at a time:

1. A single aggregation loop computes each declaration's canonical key in
   FIFO order. Keys already visited are skipped (first occurrence wins, so
   every package keeps its shallowest depth); fresh keys are marked
   visited before any work is dispatched.
2. Fresh declarations are resolved on a bounded worker pool. Workers are
   side-effect free: they resolve the source, read the package manifest and
   return the node plus its child declarations.
3. Results are folded back in declaration order, so node order is
   deterministic no matter how workers interleave.

Because the visited set is owned by one resolution run and only the
aggregation loop touches it, cycles terminate and no lock is needed.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from agentpack.core.dependency.graph import GraphResolution
from agentpack.core.dependency.identity import compute_dependency_id
from agentpack.core.dependency.models import (
    DependencyDeclaration,
    DependencyGraphNode,
    DependencyId,
)
from agentpack.core.manifest import extract_dependencies, manifest_path_at, read_manifest
from agentpack.core.sources.resolver import SourceResolver
from agentpack.exceptions import AgentPackError
from agentpack.utils.concurrency import CANCELLED, FULFILLED, run_with_concurrency

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 4


@dataclass
class _Resolved:
    node: DependencyGraphNode
    children: list[DependencyDeclaration]
    warnings: list[str]


@dataclass
class _WaveState:
    """Per-run resolver state. Only the aggregation loop mutates it."""

    wave: list[DependencyDeclaration]
    visited: set[str] = field(default_factory=set)
    result: GraphResolution = field(default_factory=GraphResolution)
    stopped: bool = False


class WaveResolver:
    """Resolves a dependency graph wave by wave.

    Args:
        sources: Resolver used to materialize each declaration.
        concurrency: Maximum number of declarations resolved at once.
        fail_fast: Stop after the first failed declaration; everything not
            yet resolved is reported as cancelled.
    """

    def __init__(
        self,
        sources: SourceResolver,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        fail_fast: bool = False,
    ) -> None:
        self.sources = sources
        self.concurrency = max(1, concurrency)
        self.fail_fast = fail_fast

    def resolve(self, roots: Sequence[DependencyDeclaration]) -> GraphResolution:
        """Synchronous wrapper around :meth:`resolve_async`."""
        return asyncio.run(self.resolve_async(roots))

    async def resolve_async(self, roots: Sequence[DependencyDeclaration]) -> GraphResolution:
        """Resolve the full graph reachable from *roots*.

        Per-declaration failures never abort other branches; they are
        reported through ``warnings`` and ``missing_packages``.

        Args:
            roots: Top-level declarations (depth 0).

        Returns:
            The ``GraphResolution``.
        """
        state = _WaveState(wave=list(roots))
        depth = 0
        while state.wave:
            if state.stopped:
                self._cancel_pending(state)
                break
            logger.debug("Resolving wave %d (%d declarations)", depth, len(state.wave))
            await self._run_wave(state)
            depth += 1

        for cycle in state.result.graph().detect_cycles():
            state.result.warnings.append(f"Circular dependency: {' -> '.join(cycle)}")
        return state.result

    @staticmethod
    def root_declarations(manifest_path: Path, include_dev: bool = False) -> list[DependencyDeclaration]:
        """Read the top-level declarations of a workspace manifest.

        Returns an empty list when the manifest does not exist.
        """
        manifest = read_manifest(manifest_path)
        if manifest is None:
            return []
        return extract_dependencies(manifest, manifest_path, 0, include_dev)

    # -- aggregation --------------------------------------------------------

    async def _run_wave(self, state: _WaveState) -> None:
        result = state.result
        fresh: list[tuple[DependencyDeclaration, DependencyId]] = []
        for decl in state.wave:
            try:
                dep_id = compute_dependency_id(decl)
            except AgentPackError as exc:
                self._record_failure(state, decl.name or "<unnamed>", exc)
                continue
            if dep_id.key in state.visited:
                logger.debug("Already visited %s", dep_id.key)
                continue
            state.visited.add(dep_id.key)
            fresh.append((decl, dep_id))

        if state.stopped:
            result.cancelled.extend(dep_id.display_name for _, dep_id in fresh)
            state.wave = []
            return

        tasks = [functools.partial(self._resolve_one, decl, dep_id) for decl, dep_id in fresh]
        outcomes = await run_with_concurrency(tasks, self.concurrency, fail_fast=self.fail_fast)

        next_wave: list[DependencyDeclaration] = []
        for (decl, dep_id), outcome in zip(fresh, outcomes.outcomes):
            if outcome.status == FULFILLED:
                resolved: _Resolved = outcome.value  # type: ignore[assignment]
                result.nodes.append(resolved.node)
                result.warnings.extend(resolved.warnings)
                next_wave.extend(resolved.children)
            elif outcome.status == CANCELLED:
                result.cancelled.append(dep_id.display_name)
            else:
                self._record_failure(state, dep_id.display_name, outcome.error)
        state.wave = next_wave

    def _record_failure(self, state: _WaveState, name: str, error: BaseException | None) -> None:
        message = f"Failed to resolve {name}: {error}"
        logger.warning("%s", message)
        state.result.warnings.append(message)
        if name not in state.result.missing_packages:
            state.result.missing_packages.append(name)
        if self.fail_fast:
            state.stopped = True

    def _cancel_pending(self, state: _WaveState) -> None:
        for decl in state.wave:
            try:
                dep_id = compute_dependency_id(decl)
            except AgentPackError:
                continue
            if dep_id.key not in state.visited:
                state.visited.add(dep_id.key)
                state.result.cancelled.append(dep_id.display_name)
        state.wave = []

    # -- worker -------------------------------------------------------------

    async def _resolve_one(self, decl: DependencyDeclaration, dep_id: DependencyId) -> _Resolved:
        source = await self.sources.resolve(decl)
        manifest_file = await asyncio.to_thread(manifest_path_at, source.absolute_path)
        manifest = (
            await asyncio.to_thread(read_manifest, manifest_file) if manifest_file else None
        )

        warnings: list[str] = []
        children: list[DependencyDeclaration] = []
        if manifest is not None and manifest_file is not None:
            for child in extract_dependencies(manifest, manifest_file, decl.depth + 1):
                if child.name == decl.name:
                    warnings.append(f"Ignoring self-reference in {decl.name}")
                    continue
                children.append(child)

        node = DependencyGraphNode(
            name=decl.name,
            id=dep_id,
            source=source,
            depth=decl.depth,
            version=source.version or (manifest.version if manifest else None),
            is_dev=decl.is_dev,
            dependencies=[c.name for c in children],
        )
        return _Resolved(node=node, children=children, warnings=warnings)

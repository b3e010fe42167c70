"""Flow execution: map package files onto platform layouts and merge them.

Execution happens in two phases:

1. **Collect.** For every package x enabled platform x export flow whose
   condition holds, discover matching source files, compute each target
   path and load the payload. A failing flow is recorded and skipped; the
   remaining flows still run.
2. **Compose.** Contributions are grouped by target and every target is
   composed exactly once with its merge policy. ``replace`` targets go
   through the conflict resolver, ``deep`` targets through key-ownership
   merging, ``composite`` targets through section composition.

A file is only written when its bytes change, so a repeated install with
unchanged inputs writes nothing.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from agentpack.core.conflicts import (
    RELOCATE,
    WRITE,
    Claim,
    ConflictResolver,
)
from agentpack.core.flows.codecs import dump_structured, is_structured, load_structured
from agentpack.core.flows.merge import (
    Contribution,
    PriorOwner,
    compose_sections,
    merge_contributions,
    section_names,
    strip_section,
)
from agentpack.core.flows.models import (
    FileMapping,
    FileOwnership,
    Flow,
    FlowApplyResult,
    FlowFailure,
    FlowPackage,
    MergePolicy,
    PlatformDefinition,
)
from agentpack.core.flows.patterns import compile_pattern, discover_sources, resolve_target
from agentpack.core.flows.transforms import apply_map
from agentpack.core.index import WorkspaceIndex
from agentpack.exceptions import ValidationError

logger = logging.getLogger(__name__)


@dataclass
class _Pending:
    """One package's payload for one target."""

    package: FlowPackage
    flow: Flow
    platform: str
    source: str
    payload: Any


class FlowEngine:
    """Applies platform export flows for a set of packages.

    Args:
        conflicts: Resolver for contested replace targets.
        dry_run: Compute everything but write nothing.
    """

    def __init__(self, conflicts: ConflictResolver | None = None, *, dry_run: bool = False) -> None:
        self.conflicts = conflicts or ConflictResolver()
        self.dry_run = dry_run

    def apply_flows(
        self,
        packages: Sequence[FlowPackage],
        platforms: Sequence[PlatformDefinition],
        target_dir: Path,
        *,
        index: WorkspaceIndex | None = None,
        run_packages: Iterable[str] | None = None,
    ) -> FlowApplyResult:
        """Install *packages* into *target_dir* for every enabled platform.

        Args:
            packages: Packages of this run, in plan order.
            platforms: Target platforms.
            target_dir: Workspace root.
            index: Ownership recorded by earlier runs. Not modified.
            run_packages: Names whose earlier ownership this run replaces.
                Defaults to the names in *packages*. A package whose flows
                fail keeps its earlier ownership of targets it did not
                reach in this run.

        Returns:
            The ``FlowApplyResult``; ``file_mapping`` describes every target
            this run composed.
        """
        index = index or WorkspaceIndex()
        run = set(run_packages) if run_packages is not None else {p.name for p in packages}
        result = FlowApplyResult()

        grouped = self._collect(packages, platforms, target_dir, result)
        run -= {f.package for f in result.errors}
        for target, pending in grouped.items():
            policies = {p.flow.merge for p in pending}
            if len(policies) > 1:
                names = ", ".join(sorted(p.value for p in policies))
                for item in pending:
                    self._fail(result, item, ValidationError(
                        f"Conflicting merge policies ({names}) for {target}"
                    ))
                continue

            policy = policies.pop()
            try:
                if policy is MergePolicy.REPLACE:
                    self._compose_replace(target, pending, target_dir, index, run, result)
                elif policy is MergePolicy.DEEP:
                    self._compose_deep(target, pending, target_dir, index, run, result)
                else:
                    self._compose_composite(target, pending, target_dir, index, run, result)
            except (OSError, ValidationError) as exc:
                for item in pending:
                    self._fail(result, item, exc)
        return result

    # -- collect ------------------------------------------------------------

    def _collect(
        self,
        packages: Sequence[FlowPackage],
        platforms: Sequence[PlatformDefinition],
        target_dir: Path,
        result: FlowApplyResult,
    ) -> dict[str, list[_Pending]]:
        grouped: dict[str, list[_Pending]] = {}
        seen: set[tuple[str, str]] = set()

        for package in packages:
            for platform in platforms:
                if not platform.enabled:
                    continue
                for flow in platform.export_flows:
                    if flow.condition and not flow.condition.holds(package.name, target_dir):
                        continue
                    try:
                        sources = discover_sources(package.root, flow.from_pattern)
                        compiled = compile_pattern(flow.from_pattern)
                    except (OSError, ValidationError) as exc:
                        self._fail(result, _Pending(package, flow, platform.id, "", None), exc)
                        continue

                    for rel in sources:
                        if not package.accepts(rel):
                            continue
                        item = _Pending(package, flow, platform.id, rel, None)
                        try:
                            variables = dict(compiled.match(rel) or {})
                            variables.update({
                                "rootDir": platform.root_dir,
                                "rootFile": platform.root_file,
                                "platform": platform.id,
                                "packageName": package.name,
                                "version": package.version or "",
                                "priority": str(package.priority),
                            })
                            target = resolve_target(flow.to_pattern, variables)
                            if (package.name, target) in seen:
                                continue
                            item.payload = self._load(package.root / rel, rel, target, flow)
                        except (OSError, UnicodeDecodeError, ValidationError) as exc:
                            self._fail(result, item, exc)
                            continue
                        seen.add((package.name, target))
                        result.files_processed += 1
                        grouped.setdefault(target, []).append(item)
        return grouped

    @staticmethod
    def _load(path: Path, rel: str, target: str, flow: Flow) -> Any:
        if flow.merge is MergePolicy.DEEP:
            data = load_structured(path.read_text(encoding="utf-8"), rel)
            return apply_map(data, flow.map_ops) if flow.map_ops else data
        if flow.merge is MergePolicy.COMPOSITE:
            return path.read_text(encoding="utf-8")
        raw = path.read_bytes()
        if flow.map_ops and is_structured(rel) and is_structured(target):
            data = apply_map(load_structured(raw.decode("utf-8"), rel), flow.map_ops)
            return dump_structured(data, target).encode("utf-8")
        return raw

    # -- compose ------------------------------------------------------------

    def _compose_replace(
        self,
        target: str,
        pending: list[_Pending],
        target_dir: Path,
        index: WorkspaceIndex,
        run: set[str],
        result: FlowApplyResult,
    ) -> None:
        by_package = {p.package.name: p for p in pending}
        claims = [
            Claim(p.package.name, p.package.priority, p.package.rank, p.payload) for p in pending
        ]
        resolution = self.conflicts.resolve(
            target,
            claims,
            index_owners=index.owners_of(target),
            run_packages=run,
            on_disk=_read_bytes(target_dir / target),
        )
        if resolution.conflict is not None:
            result.conflicts.append(resolution.conflict)
        result.relocated_files.extend(resolution.relocations)

        for decision in resolution.decisions:
            if decision.action not in (WRITE, RELOCATE):
                continue
            item = by_package[decision.package]
            content: bytes = item.payload
            self._write(target_dir, decision.target_path, content, result)
            result.file_mapping[decision.target_path] = FileMapping(
                merge=MergePolicy.REPLACE,
                owners={
                    decision.package: FileOwnership(
                        priority=item.package.priority,
                        integrity=WorkspaceIndex.compute_integrity(content),
                    )
                },
            )

    def _compose_deep(
        self,
        target: str,
        pending: list[_Pending],
        target_dir: Path,
        index: WorkspaceIndex,
        run: set[str],
        result: FlowApplyResult,
    ) -> None:
        on_disk = _read_bytes(target_dir / target)
        existing = load_structured(on_disk.decode("utf-8"), target) if on_disk is not None else None

        record = index.get_file(target)
        prior: dict[str, PriorOwner] = {}
        if record is not None and record.merge == MergePolicy.DEEP.value:
            prior = {
                pkg: PriorOwner(priority=o.priority, keys=list(o.keys))
                for pkg, o in record.owners.items()
            }

        merged = merge_contributions(
            existing,
            [
                Contribution(p.package.name, p.package.priority, p.package.rank, p.payload)
                for p in pending
            ],
            prior_owners=prior,
            run_packages=run,
        )
        content = dump_structured(merged.tree, target).encode("utf-8")
        self._write(target_dir, target, content, result)
        result.file_mapping[target] = FileMapping(
            merge=MergePolicy.DEEP,
            owners={
                pkg: FileOwnership(priority=merged.priorities[pkg], keys=keys)
                for pkg, keys in merged.owners.items()
            },
        )

    def _compose_composite(
        self,
        target: str,
        pending: list[_Pending],
        target_dir: Path,
        index: WorkspaceIndex,
        run: set[str],
        result: FlowApplyResult,
    ) -> None:
        on_disk = _read_bytes(target_dir / target)
        text = on_disk.decode("utf-8") if on_disk is not None else ""

        contributors = {p.package.name for p in pending}
        for stale in (set(section_names(text)) & run) - contributors:
            text = strip_section(text, stale)

        ordered = sorted(pending, key=lambda p: (-p.package.priority, p.package.rank))
        text = compose_sections(text, [(p.package.name, p.payload) for p in ordered])
        self._write(target_dir, target, text.encode("utf-8"), result)

        owners = {
            p.package.name: FileOwnership(priority=p.package.priority) for p in pending
        }
        record = index.get_file(target)
        present = set(section_names(text))
        if record is not None:
            for pkg, owner in record.owners.items():
                if pkg not in run and pkg in present:
                    owners[pkg] = FileOwnership(priority=owner.priority)
        result.file_mapping[target] = FileMapping(merge=MergePolicy.COMPOSITE, owners=owners)

    # -- helpers ------------------------------------------------------------

    def _write(self, target_dir: Path, rel: str, content: bytes, result: FlowApplyResult) -> None:
        if rel not in result.target_paths:
            result.target_paths.append(rel)
        path = target_dir / rel
        if _read_bytes(path) == content:
            result.unchanged_paths.append(rel)
            return
        if not self.dry_run:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
            logger.debug("Wrote %s", rel)
        result.written_paths.append(rel)
        result.files_written += 1

    @staticmethod
    def _fail(result: FlowApplyResult, item: _Pending, exc: BaseException) -> None:
        message = f"{item.package.name}: {item.flow.describe()} failed for {item.source or '<discovery>'}: {exc}"
        logger.warning("%s", message)
        result.errors.append(FlowFailure(
            package=item.package.name,
            flow=f"{item.platform}:{item.flow.describe()}",
            source_path=item.source,
            error=type(exc).__name__,
            message=message,
        ))


def _read_bytes(path: Path) -> bytes | None:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None

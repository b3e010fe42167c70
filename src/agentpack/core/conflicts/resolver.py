"""Conflict and namespace resolution for replace-policy targets.

When more than one package claims the same target path, or a package
claims a path that another package (or the user) already owns, one of
three strategies applies:

- ``namespace`` (default): the colliding claims are relocated to
  ``<parent>/<package-slug>/<file>`` and recorded as ``RelocatedFile``.
- ``overwrite``: the highest-priority claim writes; the others are skipped.
- ``skip``: colliding claims are skipped and the incumbent file is kept.

A package re-targeting a path it already owns is never a conflict.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath

from agentpack.core.flows.models import FlowConflict, RelocatedFile

logger = logging.getLogger(__name__)

WRITE = "write"
SKIP = "skip"
RELOCATE = "relocate"


class ConflictStrategy(str, Enum):
    NAMESPACE = "namespace"
    OVERWRITE = "overwrite"
    SKIP = "skip"


@dataclass(frozen=True)
class Claim:
    """A package's bid for a replace-policy target."""

    package: str
    priority: int
    rank: int
    content: bytes


@dataclass(frozen=True)
class PathDecision:
    """What to do with one claim."""

    package: str
    action: str
    target_path: str


@dataclass
class ConflictResolution:
    decisions: list[PathDecision] = field(default_factory=list)
    relocations: list[RelocatedFile] = field(default_factory=list)
    conflict: FlowConflict | None = None

    def decision_for(self, package: str) -> PathDecision | None:
        return next((d for d in self.decisions if d.package == package), None)


def package_slug(name: str) -> str:
    """Filesystem-safe directory name for a package (``@acme/rules`` -> ``acme-rules``)."""
    slug = re.sub(r"[^A-Za-z0-9._-]+", "-", name).strip("-.")
    return slug or "package"


def namespaced_path(target: str, package: str) -> str:
    """Return ``<parent>/<package-slug>/<file>`` for *target*."""
    path = PurePosixPath(target)
    parent = path.parent.as_posix()
    prefix = "" if parent == "." else parent + "/"
    return f"{prefix}{package_slug(package)}/{path.name}"


class ConflictResolver:
    """Decides write / skip / relocate for the claims on one target."""

    def __init__(self, strategy: ConflictStrategy | str = ConflictStrategy.NAMESPACE) -> None:
        self.strategy = ConflictStrategy(strategy)

    def resolve(
        self,
        target: str,
        claims: Sequence[Claim],
        *,
        index_owners: Iterable[str] = (),
        run_packages: Iterable[str] = (),
        on_disk: bytes | None = None,
    ) -> ConflictResolution:
        """Settle the claims on *target*.

        Args:
            target: Workspace-relative target path.
            claims: One claim per package.
            index_owners: Packages the workspace index records for *target*.
            run_packages: Every package taking part in this run.
            on_disk: Current file content, or None if the file is absent.

        Returns:
            One decision per claim, relocations and any recorded conflict.
        """
        resolution = ConflictResolution()
        if not claims:
            return resolution

        ordered = sorted(claims, key=lambda c: (-c.priority, c.rank, c.package))
        winner = ordered[0]
        owners = list(index_owners)
        in_run = set(run_packages) | {c.package for c in claims}
        foreign = [o for o in owners if o not in in_run]
        untracked = not owners and on_disk is not None and on_disk != winner.content

        if foreign or untracked:
            incumbent = foreign[0] if foreign else None
            self._settle_foreign(target, ordered, incumbent, resolution)
            return resolution

        resolution.decisions.append(PathDecision(winner.package, WRITE, target))
        losers = []
        for claim in ordered[1:]:
            if claim.content == winner.content:
                resolution.decisions.append(PathDecision(claim.package, SKIP, target))
                continue
            losers.append(claim)
        if not losers:
            return resolution

        if self.strategy is ConflictStrategy.NAMESPACE:
            for claim in losers:
                self._relocate(target, claim, resolution)
            message = f"{target}: kept {winner.package}, relocated {', '.join(c.package for c in losers)}"
        else:
            for claim in losers:
                resolution.decisions.append(PathDecision(claim.package, SKIP, target))
            message = f"{target}: kept {winner.package}, skipped {', '.join(c.package for c in losers)}"
        logger.info("%s", message)
        resolution.conflict = FlowConflict(
            target_path=target,
            winner=winner.package,
            losers=[c.package for c in losers],
            message=message,
        )
        return resolution

    def _settle_foreign(
        self,
        target: str,
        ordered: Sequence[Claim],
        incumbent: str | None,
        resolution: ConflictResolution,
    ) -> None:
        owner_label = incumbent or "an untracked file"
        packages = [c.package for c in ordered]
        if self.strategy is ConflictStrategy.NAMESPACE:
            for claim in ordered:
                self._relocate(target, claim, resolution)
            message = f"{target} is owned by {owner_label}; relocated {', '.join(packages)}"
            winner = incumbent
            losers = packages
        elif self.strategy is ConflictStrategy.OVERWRITE:
            resolution.decisions.append(PathDecision(ordered[0].package, WRITE, target))
            for claim in ordered[1:]:
                resolution.decisions.append(PathDecision(claim.package, SKIP, target))
            message = f"{target}: overwrote {owner_label} with {ordered[0].package}"
            winner = ordered[0].package
            losers = [incumbent] if incumbent else []
            losers += packages[1:]
        else:
            for claim in ordered:
                resolution.decisions.append(PathDecision(claim.package, SKIP, target))
            message = f"{target} is owned by {owner_label}; skipped {', '.join(packages)}"
            winner = incumbent
            losers = packages
        logger.info("%s", message)
        resolution.conflict = FlowConflict(
            target_path=target, winner=winner, losers=losers, message=message
        )

    @staticmethod
    def _relocate(target: str, claim: Claim, resolution: ConflictResolution) -> None:
        new_path = namespaced_path(target, claim.package)
        resolution.decisions.append(PathDecision(claim.package, RELOCATE, new_path))
        resolution.relocations.append(
            RelocatedFile(from_path=target, to_path=new_path, package=claim.package)
        )

"""Merge policies as pure transforms over plain values.

Deep merge works on key ownership. Every leaf a package contributes (a
scalar, a list or an empty mapping) is tracked by key path, so a package can
later be removed precisely and a key claimed by a higher-priority package
is never clobbered by a lower one. Lists are leaves: they are owned by
exactly one package and never concatenated.

Composite merge assembles a text file from package-attributed sections::

    <!-- agentpack:begin team-rules -->
    ...
    <!-- agentpack:end team-rules -->

Text outside the markers belongs to the user and is preserved.
"""

from __future__ import annotations

import copy
import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from agentpack.core.flows.transforms import (
    KeyPath,
    delete_nested,
    from_pointer,
    get_nested,
    set_nested,
    to_pointer,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Key extraction
# ---------------------------------------------------------------------------


def extract_all_keys(data: Any, prefix: KeyPath = ()) -> list[KeyPath]:
    """Return the leaf key paths of *data*.

    Lists and empty mappings count as leaves.

    Example::

        extract_all_keys({"mcp": {"a": {"cmd": "x"}, "b": {}}})
        # [("mcp", "a", "cmd"), ("mcp", "b")]
    """
    if not isinstance(data, dict):
        return [prefix] if prefix else []
    if not data:
        return [prefix] if prefix else []
    keys: list[KeyPath] = []
    for key, value in data.items():
        keys.extend(extract_all_keys(value, prefix + (str(key),)))
    return keys


def is_effectively_empty(data: Any) -> bool:
    """True for None, empty containers, and mappings of only empty values."""
    if data is None:
        return True
    if isinstance(data, list):
        return not data
    if isinstance(data, dict):
        return all(is_effectively_empty(v) for v in data.values())
    if isinstance(data, str):
        return not data.strip()
    return False


def paths_overlap(a: KeyPath, b: KeyPath) -> bool:
    """True if one key path is a prefix of (or equal to) the other."""
    n = min(len(a), len(b))
    return a[:n] == b[:n]


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return *base* recursively updated with *override* (override wins).

    Non-mapping values, lists included, replace wholesale.
    """
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


# ---------------------------------------------------------------------------
# Priority-ordered deep merge with key ownership
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Contribution:
    """One package's structured payload for a deep-merged target."""

    package: str
    priority: int
    rank: int
    data: dict[str, Any]


@dataclass
class PriorOwner:
    """Ownership of a target recorded by an earlier run."""

    priority: int
    keys: list[str] = field(default_factory=list)


@dataclass
class DeepMergeResult:
    """Merged tree plus the key pointers each package now owns."""

    tree: dict[str, Any]
    owners: dict[str, list[str]]
    priorities: dict[str, int]
    shadowed: list[tuple[str, str, str]] = field(default_factory=list)


def merge_contributions(
    existing: dict[str, Any] | None,
    contributions: Sequence[Contribution],
    *,
    prior_owners: dict[str, PriorOwner] | None = None,
    run_packages: Iterable[str] = (),
) -> DeepMergeResult:
    """Deep-merge *contributions* into *existing*.

    Contributions are applied lowest priority first (ties: farthest from the
    root first), so the highest-priority package wins a contested leaf.
    Owners recorded by earlier runs that are not part of this run keep any
    key they hold at a strictly higher priority. Keys that a package of
    this run owned before but no longer contributes are removed.

    The tree is edited in place on a copy of *existing*, so untouched keys
    keep their order and re-running with the same input yields the same
    document.

    Args:
        existing: Current document on disk, or None.
        contributions: Payloads of the packages in this run.
        prior_owners: Ownership from the workspace index, keyed by package.
        run_packages: Every package taking part in this run, contributing
            or not. Their prior ownership is replaced, not merged against.

    Returns:
        A ``DeepMergeResult``.
    """
    tree: dict[str, Any] = copy.deepcopy(existing) if isinstance(existing, dict) else {}
    prior_owners = prior_owners or {}
    in_run = set(run_packages) | {c.package for c in contributions}

    foreign: dict[str, tuple[int, list[KeyPath]]] = {
        pkg: (owner.priority, [from_pointer(k) for k in owner.keys])
        for pkg, owner in prior_owners.items()
        if pkg not in in_run
    }
    owned: dict[str, list[KeyPath]] = {}
    priorities: dict[str, int] = {pkg: prio for pkg, (prio, _) in foreign.items()}
    shadowed: list[tuple[str, str, str]] = []

    ordered = sorted(contributions, key=lambda c: (c.priority, -c.rank))
    for contrib in ordered:
        priorities[contrib.package] = contrib.priority
        mine = owned.setdefault(contrib.package, [])
        for path in extract_all_keys(contrib.data):
            blocker = _higher_foreign_owner(foreign, path, contrib.priority)
            if blocker is not None:
                logger.debug(
                    "Key %s of %s shadowed by %s", to_pointer(path), contrib.package, blocker
                )
                shadowed.append((contrib.package, to_pointer(path), blocker))
                continue

            value = get_nested(contrib.data, path)
            current = get_nested(tree, path)
            if not (value == {} and isinstance(current, dict)):
                set_nested(tree, path, copy.deepcopy(value))

            # The new value displaces every overlapping claim.
            for other, paths in owned.items():
                if other != contrib.package:
                    paths[:] = [p for p in paths if not paths_overlap(p, path)]
            for other, (prio, paths) in foreign.items():
                paths[:] = [p for p in paths if not paths_overlap(p, path)]
            mine[:] = [p for p in mine if not paths_overlap(p, path)]
            mine.append(path)

    # Drop keys this run's packages used to own but no longer contribute.
    live = [p for paths in owned.values() for p in paths]
    live.extend(p for _, paths in foreign.values() for p in paths)
    for pkg in in_run:
        previous = prior_owners.get(pkg)
        if previous is None:
            continue
        for pointer in previous.keys:
            stale = from_pointer(pointer)
            if not any(paths_overlap(stale, p) for p in live):
                delete_nested(tree, stale)

    owners: dict[str, list[str]] = {}
    for pkg, paths in list(owned.items()) + [(p, v[1]) for p, v in foreign.items()]:
        if paths:
            owners[pkg] = sorted(to_pointer(p) for p in paths)
    return DeepMergeResult(
        tree=tree,
        owners=owners,
        priorities={p: priorities[p] for p in owners},
        shadowed=shadowed,
    )


def remove_keys(tree: dict[str, Any], pointers: Iterable[str]) -> dict[str, Any]:
    """Return a copy of *tree* without the given key pointers."""
    result = copy.deepcopy(tree)
    for pointer in pointers:
        delete_nested(result, from_pointer(pointer))
    return result


def _higher_foreign_owner(
    foreign: dict[str, tuple[int, list[KeyPath]]],
    path: KeyPath,
    priority: int,
) -> str | None:
    for pkg, (prio, paths) in foreign.items():
        if prio > priority and any(paths_overlap(path, p) for p in paths):
            return pkg
    return None


# ---------------------------------------------------------------------------
# Composite sections
# ---------------------------------------------------------------------------

SECTION_BEGIN = "<!-- agentpack:begin {name} -->"
SECTION_END = "<!-- agentpack:end {name} -->"

_SECTION_NAME_RE = re.compile(r"<!-- agentpack:begin (\S+) -->")


def _section_re(name: str) -> re.Pattern[str]:
    begin = re.escape(SECTION_BEGIN.format(name=name))
    end = re.escape(SECTION_END.format(name=name))
    return re.compile(rf"{begin}.*?{end}", re.DOTALL)


def render_section(name: str, body: str) -> str:
    return f"{SECTION_BEGIN.format(name=name)}\n{body.strip()}\n{SECTION_END.format(name=name)}"


def section_names(text: str) -> list[str]:
    """Return package names with a section in *text*, in file order."""
    return _SECTION_NAME_RE.findall(text)


def compose_sections(existing: str, sections: Sequence[tuple[str, str]]) -> str:
    """Write package sections into *existing* text.

    Sections already present are replaced in place; new ones are appended
    in the given order.
    """
    text = existing
    for name, body in sections:
        block = render_section(name, body)
        pattern = _section_re(name)
        if pattern.search(text):
            text = pattern.sub(lambda _m: block, text, count=1)
        elif text.strip():
            text = text.rstrip("\n") + "\n\n" + block + "\n"
        else:
            text = block + "\n"
    return text


def strip_section(text: str, name: str) -> str:
    """Remove the section of *name*; returns "" if nothing else is left."""
    pattern = re.compile(r"\n*" + _section_re(name).pattern + r"\n?", re.DOTALL)
    stripped = pattern.sub("\n", text, count=1)
    if not stripped.strip():
        return ""
    return stripped.strip("\n") + "\n"

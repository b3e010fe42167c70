"""Removing one package's contribution from an installed file.

Shared by uninstall and by the stale-file pass after an install: replace
files are deleted, deep-merged files lose exactly the package's keys and
composite files lose the package's section. Files left empty are deleted
and empty parent directories pruned.
"""

from __future__ import annotations

import logging
from pathlib import Path

from agentpack.core.flows.codecs import dump_structured, load_structured
from agentpack.core.flows.merge import is_effectively_empty, remove_keys, strip_section
from agentpack.core.index import FileRecord, WorkspaceIndex
from agentpack.exceptions import ValidationError

logger = logging.getLogger(__name__)

DELETED = "deleted"
UPDATED = "updated"
KEPT = "kept"
MISSING = "missing"


def remove_contribution(
    target_dir: Path,
    record: FileRecord,
    package: str,
    *,
    dry_run: bool = False,
) -> str:
    """Remove *package*'s share of *record* from disk.

    Returns:
        ``deleted``, ``updated``, ``kept`` (user-modified replace file or
        unparseable structured file) or ``missing``.
    """
    path = target_dir / record.path
    if not path.is_file():
        return MISSING
    owner = record.owners.get(package)
    others = [o for o in record.owners if o != package]

    if record.merge == "deep":
        try:
            data = load_structured(path.read_text(encoding="utf-8"), record.path)
        except ValidationError as exc:
            logger.warning("Leaving %s in place: %s", record.path, exc)
            return KEPT
        data = remove_keys(data, owner.keys if owner else [])
        if not others and is_effectively_empty(data):
            return _delete(target_dir, path, dry_run)
        return _rewrite(path, dump_structured(data, record.path), dry_run)

    if record.merge == "composite":
        text = strip_section(path.read_text(encoding="utf-8"), package)
        if not text and not others:
            return _delete(target_dir, path, dry_run)
        return _rewrite(path, text, dry_run)

    if others:
        return KEPT
    if owner and owner.integrity:
        current = WorkspaceIndex.compute_integrity(path.read_bytes())
        if current != owner.integrity:
            logger.warning("Keeping %s: modified since it was installed", record.path)
            return KEPT
    return _delete(target_dir, path, dry_run)


def prune_empty_dirs(start: Path, stop: Path) -> None:
    """Remove empty directories from *start* upward, stopping at *stop*."""
    stop = stop.resolve()
    current = start.resolve()
    while current != stop and stop in current.parents:
        try:
            current.rmdir()
        except OSError:
            break
        current = current.parent


def _delete(target_dir: Path, path: Path, dry_run: bool) -> str:
    if not dry_run:
        path.unlink()
        prune_empty_dirs(path.parent, target_dir)
    logger.debug("Removed %s", path)
    return DELETED


def _rewrite(path: Path, text: str, dry_run: bool) -> str:
    if not dry_run and path.read_text(encoding="utf-8") != text:
        path.write_text(text, encoding="utf-8")
    return UPDATED

"""Canonical identity for dependency declarations.

The canonical key is what the graph resolver deduplicates on, so the same
logical package must produce the same key no matter which manifest declared
it, how deep it sits, or which URL spelling was used:

- git:      ``git:<normalized-url>#<ref-or-sentinel>:<resource-path>``
- path:     ``path:<absolute-path>``
- registry: ``registry:<name>:<constraint-or-*>``

All functions here are pure.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path

from agentpack.core.dependency.models import (
    DependencyDeclaration,
    DependencyId,
    SourceType,
)
from agentpack.exceptions import ValidationError

# Stands in for "default branch" in keys. ``~`` can never appear in a git
# ref name, so the sentinel cannot collide with a real branch or tag.
NO_REF_SENTINEL = "~default"

_SCP_LIKE_RE = re.compile(r"^(?:[\w.-]+@)?(?P<host>[\w.-]+):(?!//)(?P<path>.+)$")
_SSH_URL_RE = re.compile(r"^ssh://(?:[\w.-]+@)?(?P<host>[\w.-]+)(?::\d+)?/(?P<path>.+)$")


@dataclass(frozen=True)
class GitFragment:
    """Parsed ``#ref&subdirectory=path`` suffix of a git URL."""

    ref: str | None = None
    subdirectory: str | None = None


def split_git_url(url: str) -> tuple[str, GitFragment]:
    """Split a git URL into its bare URL and parsed fragment.

    Accepted fragment forms: ``#ref``, ``#subdirectory=path`` and
    ``#ref&subdirectory=path``.
    """
    bare, sep, fragment = url.strip().partition("#")
    if not sep or not fragment:
        return bare, GitFragment()

    ref: str | None = None
    subdirectory: str | None = None
    for part in fragment.split("&"):
        if not part:
            continue
        key, eq, value = part.partition("=")
        if eq and key == "subdirectory":
            subdirectory = value.strip("/") or None
        elif eq and key == "ref":
            ref = value or None
        elif not eq:
            ref = part
    return bare, GitFragment(ref=ref, subdirectory=subdirectory)


def normalize_git_url(url: str) -> str:
    """Normalize a git URL for stable canonical keys.

    SSH forms (``git@host:owner/repo`` and ``ssh://git@host/owner/repo``)
    become ``https://host/owner/repo``; the result is lowercased and loses
    any ``git+`` prefix, trailing slash and ``.git`` suffix.

    Args:
        url: Git URL without a ``#`` fragment.

    Returns:
        The normalized URL.
    """
    normalized = url.strip()
    if normalized.startswith("git+"):
        normalized = normalized[len("git+"):]

    m = _SSH_URL_RE.match(normalized)
    if m:
        normalized = f"https://{m.group('host')}/{m.group('path')}"
    elif "://" not in normalized:
        m = _SCP_LIKE_RE.match(normalized)
        if m:
            normalized = f"https://{m.group('host')}/{m.group('path')}"

    normalized = normalized.lower().rstrip("/")
    if normalized.endswith(".git"):
        normalized = normalized[: -len(".git")]
    return normalized


def resolve_declared_path(declared: str, declaring_dir: Path | None) -> Path:
    """Resolve a declared local path to an absolute path.

    ``~`` is expanded; relative paths are anchored at *declaring_dir* (the
    package root of the declaring manifest), else the process cwd.
    """
    expanded = Path(os.path.expanduser(declared))
    if not expanded.is_absolute():
        base = declaring_dir if declaring_dir is not None else Path.cwd()
        expanded = base / expanded
    return Path(os.path.normpath(expanded.absolute()))


def git_resource_path(declaration: DependencyDeclaration, fragment: GitFragment) -> str:
    """Return the resource path inside a git repository for *declaration*."""
    if declaration.path:
        return declaration.path.strip("/")
    if fragment.subdirectory:
        return fragment.subdirectory
    name = declaration.name.strip()
    if name.startswith("gh@"):
        parts = [p for p in name[3:].split("/") if p]
        if len(parts) > 2:
            return "/".join(parts[2:])
    return ""


def compute_dependency_id(
    declaration: DependencyDeclaration,
    declaring_dir: Path | None = None,
) -> DependencyId:
    """Compute the canonical identity of a declaration.

    Args:
        declaration: The declaration to identify.
        declaring_dir: Package root of the declaring manifest. Defaults to
            ``declaration.declared_in_dir``.

    Returns:
        The ``DependencyId``.

    Raises:
        ValidationError: If the declaration has neither a name nor a source.
    """
    name = (declaration.name or "").strip()
    if declaring_dir is None:
        declaring_dir = declaration.declared_in_dir

    source_type = declaration.source_type
    if source_type is SourceType.GIT:
        bare, fragment = split_git_url(declaration.url or "")
        if not bare:
            raise ValidationError(f"Dependency {name!r} has an empty git url")
        url = normalize_git_url(bare)
        ref = fragment.ref or declaration.ref or NO_REF_SENTINEL
        resource = git_resource_path(declaration, fragment)
        key = f"git:{url}#{ref}:{resource}"
        display = name or (f"git@{url}/{resource}" if resource else f"git@{url}")
        return DependencyId(key=key, display_name=display, source_type=source_type)

    if source_type is SourceType.PATH:
        absolute = resolve_declared_path(declaration.path or "", declaring_dir)
        return DependencyId(
            key=f"path:{absolute.as_posix()}",
            display_name=name or (declaration.path or ""),
            source_type=source_type,
        )

    if not name:
        raise ValidationError("Dependency declaration has no name, path or url")
    constraint = (declaration.version or "*").strip() or "*"
    return DependencyId(
        key=f"registry:{name}:{constraint}",
        display_name=name,
        source_type=source_type,
    )


def repository_name(url: str) -> str:
    """Derive a package name from a git URL (last path segment)."""
    bare, _ = split_git_url(url)
    normalized = normalize_git_url(bare)
    return normalized.rsplit("/", 1)[-1] or normalized

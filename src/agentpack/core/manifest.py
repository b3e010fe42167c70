"""Package manifest reading (``agentpack.yml``).

A package root carries its manifest either at ``<root>/agentpack.yml`` or,
for workspaces, at ``<root>/.agentpack/agentpack.yml``. Current
(``dependencies`` / ``dev-dependencies``) and legacy (``packages`` /
``dev-packages``, ``git:`` instead of ``url:``) layouts are normalized here
into ``DependencyDeclaration`` so nothing downstream branches on schema
version.

Example manifest::

    name: team-rules
    version: 1.2.0
    dependencies:
      - name: base-rules
        version: ^1.0.0
      - name: shared
        path: ../shared
      - url: https://github.com/acme/agent-kit.git#v2&subdirectory=rules
      - github:acme/skills/python
    dev-dependencies:
      - lint-rules@latest
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any

import yaml

from agentpack.core.dependency.identity import repository_name, split_git_url
from agentpack.core.dependency.models import DependencyDeclaration
from agentpack.exceptions import ValidationError

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "agentpack.yml"
WORKSPACE_DIR = ".agentpack"

_GIT_PREFIXES = ("git@", "ssh://", "git+", "http://", "https://", "git://")
_PATH_PREFIXES = ("./", "../", "/", "~", ".\\", "..\\")


@dataclass
class ParsedManifest:
    """A parsed ``agentpack.yml``.

    ``dependencies`` and ``dev_dependencies`` hold the raw entries; use
    :func:`extract_dependencies` to turn them into declarations.
    """

    path: Path
    name: str | None = None
    version: str | None = None
    description: str | None = None
    dependencies: list[Any] = field(default_factory=list)
    dev_dependencies: list[Any] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)


def manifest_path_at(content_root: Path) -> Path | None:
    """Return the manifest path at *content_root*, or None if absent."""
    at_root = content_root / MANIFEST_FILENAME
    if at_root.is_file():
        return at_root
    in_workspace = content_root / WORKSPACE_DIR / MANIFEST_FILENAME
    if in_workspace.is_file():
        return in_workspace
    return None


def read_manifest(path: Path) -> ParsedManifest | None:
    """Read and parse a manifest file.

    Args:
        path: Path to an ``agentpack.yml``.

    Returns:
        The ``ParsedManifest``, or None if the file does not exist.

    Raises:
        ValidationError: If the file is not valid YAML or not a mapping.
    """
    if not path.is_file():
        return None
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValidationError(f"Invalid manifest {path}: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError(f"Manifest {path} must contain a mapping")

    deps = data.get("dependencies")
    if deps is None:
        deps = data.get("packages")
    dev_deps = data.get("dev-dependencies")
    if dev_deps is None:
        dev_deps = data.get("dev-packages")

    return ParsedManifest(
        path=path,
        name=_optional_str(data.get("name")),
        version=_optional_str(data.get("version")),
        description=_optional_str(data.get("description")),
        dependencies=_entries(deps, path),
        dev_dependencies=_entries(dev_deps, path),
        raw=data,
    )


def read_manifest_at(content_root: Path) -> ParsedManifest | None:
    """Read the manifest of a package root, if it has one."""
    path = manifest_path_at(content_root)
    return read_manifest(path) if path is not None else None


def extract_dependencies(
    manifest: ParsedManifest,
    declared_in: Path,
    depth: int,
    include_dev: bool = False,
) -> list[DependencyDeclaration]:
    """Extract dependency declarations from a parsed manifest.

    Args:
        manifest: The parsed manifest.
        declared_in: Path of the manifest file the entries came from.
        depth: Depth the declarations sit at in the dependency tree.
        include_dev: Include ``dev-dependencies``. Only honoured at depth 0.

    Returns:
        Declarations in manifest order, runtime before dev.
    """
    out: list[DependencyDeclaration] = []
    groups = [(manifest.dependencies, False)]
    if include_dev and depth == 0:
        groups.append((manifest.dev_dependencies, True))

    for entries, is_dev in groups:
        for entry in entries:
            decl = to_declaration(entry, declared_in=declared_in, depth=depth, is_dev=is_dev)
            if decl is None:
                logger.warning("Skipping dependency without a name in %s: %r", declared_in, entry)
                continue
            out.append(decl)
    return out


def to_declaration(
    entry: Any,
    *,
    declared_in: Path | None,
    depth: int,
    is_dev: bool = False,
) -> DependencyDeclaration | None:
    """Normalize one raw manifest entry (string or mapping) to a declaration."""
    if isinstance(entry, str):
        return parse_package_spec(entry, declared_in=declared_in, depth=depth, is_dev=is_dev)
    if not isinstance(entry, dict):
        return None

    url = _optional_str(entry.get("url") or entry.get("git"))
    ref = _optional_str(entry.get("ref"))
    path = _optional_str(entry.get("path"))
    if url:
        url, fragment = split_git_url(url)
        ref = fragment.ref or ref
        path = path or fragment.subdirectory or _optional_str(entry.get("subdirectory"))

    name = _optional_str(entry.get("name"))
    if not name and url:
        name = PurePosixPath(path).name if path else repository_name(url)
    elif not name and path:
        name = Path(path).name
    if not name:
        return None

    version = entry.get("version")
    return DependencyDeclaration(
        name=name,
        version=str(version) if version is not None else None,
        path=path,
        url=url,
        ref=ref,
        base=_optional_str(entry.get("base")),
        is_dev=is_dev,
        declared_in=declared_in,
        depth=depth,
    )


def parse_package_spec(
    spec: str,
    *,
    declared_in: Path | None = None,
    depth: int = 0,
    is_dev: bool = False,
) -> DependencyDeclaration | None:
    """Parse a package string into a declaration.

    Accepted forms:

    - ``github:owner/repo[/sub/path][#ref]`` or ``gh@owner/repo[/sub/path]``
    - ``git:<url>`` or any git URL (``https://...``, ``git@host:...``)
    - local paths (``./pkg``, ``../pkg``, ``/abs/pkg``, ``~/pkg``, ``file:pkg``)
    - ``name`` or ``name@constraint`` (scoped ``@scope/name@1.0.0`` too)

    Returns:
        The declaration, or None for an empty string.
    """
    spec = spec.strip()
    if not spec:
        return None

    common = {"declared_in": declared_in, "depth": depth, "is_dev": is_dev}

    for prefix in ("github:", "gh@"):
        if spec.startswith(prefix):
            rest, _, fragment = spec[len(prefix):].partition("#")
            parts = [p for p in rest.split("/") if p]
            if len(parts) < 2:
                raise ValidationError(f"Invalid GitHub spec {spec!r}: expected owner/repo")
            url = f"https://github.com/{parts[0]}/{parts[1]}"
            if fragment:
                url = f"{url}#{fragment}"
            url, frag = split_git_url(url)
            sub = "/".join(parts[2:]) or frag.subdirectory
            name = PurePosixPath(sub).name if sub else parts[1]
            return DependencyDeclaration(name=name, url=url, ref=frag.ref, path=sub, **common)

    if spec.startswith("git:") and not spec.startswith("git://"):
        spec = spec[len("git:"):]
        return _git_declaration(spec, common)
    if spec.startswith(_GIT_PREFIXES):
        return _git_declaration(spec, common)

    if spec.startswith("file:"):
        path = spec[len("file:"):]
        return DependencyDeclaration(name=Path(path).name, path=path, **common)
    if spec.startswith(_PATH_PREFIXES) or spec in (".", ".."):
        name = Path(spec).name or Path(spec).resolve().name
        return DependencyDeclaration(name=name, path=spec, **common)

    at = spec.rfind("@")
    if at > 0:
        name, version = spec[:at], spec[at + 1:] or None
    else:
        name, version = spec, None
    return DependencyDeclaration(name=name, version=version, **common)


def _git_declaration(spec: str, common: dict[str, Any]) -> DependencyDeclaration:
    url, fragment = split_git_url(spec)
    if not url:
        raise ValidationError(f"Invalid git spec {spec!r}")
    sub = fragment.subdirectory
    name = PurePosixPath(sub).name if sub else repository_name(url)
    return DependencyDeclaration(name=name, url=url, ref=fragment.ref, path=sub, **common)


def _entries(value: Any, path: Path) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        # ``{name: constraint}`` or ``{name: {path: ...}}`` shorthand.
        entries: list[Any] = []
        for name, spec in value.items():
            if isinstance(spec, dict):
                entries.append({"name": name, **spec})
            else:
                entries.append({"name": name, "version": spec})
        return entries
    raise ValidationError(f"Dependencies in {path} must be a list or mapping")


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None

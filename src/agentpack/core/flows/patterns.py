"""Source globs and target templates for flows.

Source patterns are package-relative globs: ``*`` and ``?`` stay within one
path segment, ``**/`` spans any number of directories and ``{name}``
captures one segment. Target templates substitute ``{variable}`` names
drawn from the matched file, the package and the platform.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path, PurePosixPath

from agentpack.exceptions import ValidationError

SKIPPED_DIRS = frozenset({".git", ".agentpack", "node_modules", "__pycache__"})

TARGET_VARIABLES = frozenset({
    "name", "dir", "file", "stem", "ext",
    "rootDir", "rootFile", "packageName", "version", "priority", "platform",
})

_VAR_RE = re.compile(r"\{(\w+)\}")
_WILDCARD_CHARS = set("*?{[")


@dataclass(frozen=True)
class CompiledPattern:
    """A source glob compiled to a regex plus its literal directory prefix."""

    pattern: str
    regex: re.Pattern[str]
    prefix: str

    def match(self, rel_path: str) -> dict[str, str] | None:
        """Return file variables for *rel_path*, or None if it does not match."""
        m = self.regex.match(rel_path)
        if m is None:
            return None
        path = PurePosixPath(rel_path)
        parent = path.parent.as_posix()
        parent = "" if parent == "." else parent + "/"
        base = self.prefix
        sub = parent[len(base):] if parent.startswith(base) else parent
        ext = path.suffix[1:] if path.suffix else ""
        captured = m.groupdict().get("name")
        return {
            "file": path.name,
            "stem": path.stem,
            "ext": ext,
            "name": captured or path.stem,
            "dir": sub,
        }


@lru_cache(maxsize=256)
def compile_pattern(pattern: str) -> CompiledPattern:
    """Compile a source glob.

    Raises:
        ValidationError: If the pattern is empty or absolute.
    """
    pattern = pattern.strip()
    while pattern.startswith("./"):
        pattern = pattern[2:]
    if not pattern or pattern.startswith("/"):
        raise ValidationError(f"Invalid source pattern {pattern!r}")

    out: list[str] = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            out.append(".*")
            i += 2
        elif pattern[i] == "*":
            out.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            out.append("[^/]")
            i += 1
        elif pattern.startswith("{name}", i):
            out.append("(?P<name>[^/]+)")
            i += len("{name}")
        else:
            out.append(re.escape(pattern[i]))
            i += 1

    first_wild = next((i for i, c in enumerate(pattern) if c in _WILDCARD_CHARS), len(pattern))
    literal = pattern[:first_wild]
    if first_wild == len(pattern):
        # Fully literal path: the prefix is its directory.
        literal = pattern
    prefix = literal[: literal.rfind("/") + 1]
    return CompiledPattern(pattern, re.compile("".join(out) + r"\Z"), prefix)


def discover_sources(root: Path, pattern: str) -> list[str]:
    """List package-relative files under *root* matching *pattern*, sorted.

    VCS and agentpack metadata directories are skipped.
    """
    compiled = compile_pattern(pattern)
    start = root / compiled.prefix if compiled.prefix else root
    if not start.is_dir():
        return []

    found: list[str] = []
    for dirpath, dirnames, filenames in os.walk(start):
        dirnames[:] = sorted(d for d in dirnames if d not in SKIPPED_DIRS)
        for filename in filenames:
            rel = Path(dirpath, filename).relative_to(root).as_posix()
            if compiled.regex.match(rel):
                found.append(rel)
    found.sort()
    return found


def resolve_target(template: str, variables: dict[str, str | None]) -> str:
    """Substitute variables into a target template.

    Returns:
        A normalized workspace-relative POSIX path.

    Raises:
        ValidationError: On unknown or unset variables, or a target that
            escapes the workspace.
    """

    def _sub(m: re.Match[str]) -> str:
        var = m.group(1)
        if var not in TARGET_VARIABLES:
            raise ValidationError(f"Unknown variable {{{var}}} in target {template!r}")
        value = variables.get(var)
        if value is None:
            raise ValidationError(f"Variable {{{var}}} has no value for target {template!r}")
        return str(value)

    raw = _VAR_RE.sub(_sub, template)
    if raw.startswith("/") or raw.startswith("~") or re.match(r"^[A-Za-z]:[\\/]", raw):
        raise ValidationError(f"Target {raw!r} must be relative to the workspace")
    parts = [p for p in raw.replace("\\", "/").split("/") if p not in ("", ".")]
    if ".." in parts:
        raise ValidationError(f"Target {raw!r} escapes the workspace")
    if not parts:
        raise ValidationError(f"Target template {template!r} resolved to an empty path")
    return "/".join(parts)

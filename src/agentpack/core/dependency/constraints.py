"""Version constraints for registry dependencies.

Constraint semantics follow SemVer conventions with support for exact
match (``==`` or a bare version), range (``>=``, ``<=``, ``>``, ``<``),
not-equal (``!=``), caret (``^``), tilde (``~``), wildcard (``*`` or
``latest``), and compound comma-separated constraints.

References
----------
.. [SemVer] Preston-Werner, T. (2013). "Semantic Versioning 2.0.0."
   https://semver.org/
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass


# ---------------------------------------------------------------------------
# Version comparison utilities
# ---------------------------------------------------------------------------

_SEMVER_RE = re.compile(
    r"^v?(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<pre>[0-9A-Za-z\-.]+))?"
    r"(?:\+(?P<build>[0-9A-Za-z\-.]+))?$"
)

_ANY_VERSION = frozenset({"", "*", "latest"})


def parse_version_tuple(version: str) -> tuple[int, int, int]:
    """Parse a semantic version string into a comparable tuple.

    Build metadata and pre-release tags are ignored for ordering.

    Args:
        version: Semantic version string (e.g., "1.2.3", "v0.1.0-alpha").

    Returns:
        A (major, minor, patch) integer tuple.

    Raises:
        ValueError: If the string does not match semantic version format.
    """
    m = _SEMVER_RE.match(version.strip())
    if not m:
        raise ValueError(f"Invalid semantic version: {version!r}")
    return int(m.group("major")), int(m.group("minor")), int(m.group("patch"))


def is_version(text: str) -> bool:
    """Return True if *text* is a valid semantic version."""
    return _SEMVER_RE.match(text.strip()) is not None


# ---------------------------------------------------------------------------
# VersionConstraint: Declarative version requirement
# ---------------------------------------------------------------------------

_CONSTRAINT_ATOM_RE = re.compile(
    r"^\s*(?P<op>==|!=|>=|<=|>|<|\^|~|=)?\s*"
    r"(?P<ver>v?(?:0|[1-9]\d*)\.(?:0|[1-9]\d*)\.(?:0|[1-9]\d*)"
    r"(?:-[0-9A-Za-z\-.]+)?(?:\+[0-9A-Za-z\-.]+)?)\s*$"
)


@dataclass(frozen=True)
class VersionConstraint:
    """A version constraint, analogous to npm constraint syntax.

    Attributes:
        raw: The raw constraint string as authored (e.g., "^1.2.0").
    """

    raw: str

    @property
    def is_any(self) -> bool:
        return self.raw.strip().lower() in _ANY_VERSION

    def validate(self) -> None:
        """Raise ``ValueError`` if the constraint is not parseable."""
        if self.is_any:
            return
        for atom in self._atoms():
            if not _CONSTRAINT_ATOM_RE.match(atom):
                raise ValueError(f"Invalid constraint atom: {atom!r}")

    def satisfies(self, version: str) -> bool:
        """Check whether a version string satisfies this constraint.

        For compound constraints, ALL atoms must be satisfied.

        Raises:
            ValueError: If *version* is not a valid semantic version.
        """
        ver_tuple = parse_version_tuple(version)
        if self.is_any:
            return True
        return all(self._atom_satisfies(atom, ver_tuple) for atom in self._atoms())

    def _atoms(self) -> list[str]:
        return [a.strip() for a in self.raw.split(",") if a.strip()]

    @staticmethod
    def _atom_satisfies(atom: str, ver_tuple: tuple[int, int, int]) -> bool:
        m = _CONSTRAINT_ATOM_RE.match(atom)
        if not m:
            raise ValueError(f"Invalid constraint atom: {atom!r}")

        op = m.group("op") or "=="
        target = parse_version_tuple(m.group("ver"))

        if op in ("==", "="):
            return ver_tuple == target
        elif op == "!=":
            return ver_tuple != target
        elif op == ">=":
            return ver_tuple >= target
        elif op == "<=":
            return ver_tuple <= target
        elif op == ">":
            return ver_tuple > target
        elif op == "<":
            return ver_tuple < target
        elif op == "^":
            # Caret: same major (same major.minor when major is 0).
            if target[0] == 0:
                return (
                    ver_tuple[0] == target[0]
                    and ver_tuple[1] == target[1]
                    and ver_tuple >= target
                )
            return ver_tuple[0] == target[0] and ver_tuple >= target
        else:
            # Tilde: same major.minor, patch >= target patch.
            return (
                ver_tuple[0] == target[0]
                and ver_tuple[1] == target[1]
                and ver_tuple >= target
            )

    def __repr__(self) -> str:
        return f"VersionConstraint({self.raw!r})"


def select_best(versions: Iterable[str], constraint: str | VersionConstraint) -> str | None:
    """Return the highest version in *versions* satisfying *constraint*.

    Strings that are not valid semantic versions are ignored.
    """
    if isinstance(constraint, str):
        constraint = VersionConstraint(constraint)
    candidates = [v for v in versions if is_version(v)]
    candidates.sort(key=parse_version_tuple, reverse=True)
    for candidate in candidates:
        if constraint.satisfies(candidate):
            return candidate
    return None

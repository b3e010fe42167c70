"""Shallow git clones into the agentpack cache.

Each (repository, ref) pair is cloned once into
``<cache>/git/<digest>``. A clone is made in a temporary sibling directory
and renamed into place, so two resolvers racing on the same repository
never observe a half-written checkout.
"""

from __future__ import annotations

import hashlib
import logging
import re
import shutil
import subprocess
import tempfile
from collections.abc import Callable, Sequence
from pathlib import Path

from agentpack.core.dependency.identity import NO_REF_SENTINEL, normalize_git_url
from agentpack.exceptions import GitCommandError, NotFoundError

logger = logging.getLogger(__name__)

_SHA_RE = re.compile(r"^[0-9a-fA-F]{7,40}$")

GitRunner = Callable[[Sequence[str], "Path | None"], None]


def is_sha_ref(ref: str | None) -> bool:
    """Return True if *ref* looks like a (possibly abbreviated) commit SHA."""
    return bool(ref) and _SHA_RE.match(ref or "") is not None


def clone_url(url: str) -> str:
    """Return the URL handed to ``git clone`` (``git+`` prefix removed)."""
    url = url.strip()
    if url.startswith("git+"):
        return url[len("git+"):]
    return url


def run_git(args: Sequence[str], cwd: Path | None = None) -> None:
    """Run ``git`` with *args*.

    Raises:
        GitCommandError: If git exits non-zero or is not installed.
    """
    cmd = ["git", *args]
    logger.debug("Running %s", " ".join(cmd))
    try:
        proc = subprocess.run(
            cmd,
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError as exc:
        raise GitCommandError("git executable not found", list(args)) from exc
    if proc.returncode != 0:
        stderr = (proc.stderr or "").strip()
        raise GitCommandError(
            f"Git command failed: {stderr or 'exit status ' + str(proc.returncode)}",
            list(args),
            stderr,
        )


class GitCloner:
    """Clones git repositories into a content-addressed cache directory.

    Args:
        cache_dir: The agentpack cache root; clones go under ``git/``.
        runner: Callable executing one git command. Replaceable in tests.
    """

    def __init__(self, cache_dir: Path, runner: GitRunner | None = None) -> None:
        self.root = cache_dir / "git"
        self._run = runner or run_git

    def checkout_dir(self, url: str, ref: str | None) -> Path:
        """Return the cache directory for (*url*, *ref*)."""
        key = f"{normalize_git_url(url)}#{ref or NO_REF_SENTINEL}"
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:20]
        return self.root / digest

    def clone(self, url: str, ref: str | None = None, subdirectory: str | None = None) -> Path:
        """Clone *url* at *ref* (or reuse the cached checkout).

        SHA refs are fetched explicitly after a shallow clone of the default
        branch; branch and tag refs use ``--branch``.

        Args:
            url: Repository URL (no fragment).
            ref: Branch, tag or commit; None for the default branch.
            subdirectory: Path inside the repository to return.

        Returns:
            The checkout root, or the requested subdirectory of it.

        Raises:
            GitCommandError: If a git command fails.
            NotFoundError: If *subdirectory* does not exist in the checkout.
        """
        target = self.checkout_dir(url, ref)
        if not target.is_dir():
            self._clone_into(clone_url(url), ref, target)
        else:
            logger.debug("Reusing cached checkout %s for %s", target, url)

        if not subdirectory:
            return target
        final = target / subdirectory.strip("/")
        if not final.is_dir():
            raise NotFoundError(
                f"Subdirectory {subdirectory!r} does not exist in cloned repository {url}"
            )
        return final

    def _clone_into(self, url: str, ref: str | None, target: Path) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=".clone-", dir=self.root))
        checkout = staging / "repo"
        try:
            if ref and is_sha_ref(ref):
                self._run(["clone", "--depth", "1", url, str(checkout)], None)
                self._run(["fetch", "--depth", "1", "origin", ref], checkout)
                self._run(["checkout", ref], checkout)
            elif ref:
                self._run(["clone", "--depth", "1", "--branch", ref, url, str(checkout)], None)
            else:
                self._run(["clone", "--depth", "1", url, str(checkout)], None)

            try:
                checkout.rename(target)
            except OSError:
                # Another resolver finished the same clone first.
                if not target.is_dir():
                    raise
                logger.debug("Concurrent clone of %s already in place", url)
            else:
                logger.info("Cloned %s%s", url, f"#{ref}" if ref else "")
        finally:
            shutil.rmtree(staging, ignore_errors=True)

"""Registry version resolution.

Registry packages are materialized under ``<cache>/registry/<name>/<version>``.
A version constraint is first matched against the versions already in the
cache; only when none satisfies is the remote registry consulted
(``GET <registry_url>/packages/<name>``), and the chosen version is then
materialized through a downloader.

Remote metadata is expected to look like::

    {"name": "team-rules",
     "versions": {"1.0.0": {"tarball": "https://.../team-rules-1.0.0.tgz"},
                  "1.1.0": {"tarball": "https://.../team-rules-1.1.0.tgz"}}}

A plain list of version strings is accepted too.
"""

from __future__ import annotations

import asyncio
import io
import logging
import shutil
import tarfile
import tempfile
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import quote

import httpx

from agentpack.core.dependency.constraints import VersionConstraint, is_version, select_best
from agentpack.core.sources.http_client import DEFAULT_TIMEOUT, fetch_bytes, fetch_json
from agentpack.exceptions import NotFoundError, RegistryError

logger = logging.getLogger(__name__)

LOCAL = "local"
REMOTE = "remote"

Downloader = Callable[[str, str, dict[str, Any], Path], Awaitable[None]]


@dataclass(frozen=True)
class RegistryResolution:
    """Outcome of resolving a registry constraint to a concrete version."""

    version: str
    absolute_path: Path
    resolution_source: str


class LocalRegistry:
    """Read-only view over registry packages already in the cache."""

    def __init__(self, cache_dir: Path) -> None:
        self.root = cache_dir / "registry"

    def package_dir(self, name: str, version: str) -> Path:
        return self.root / name / version

    def versions(self, name: str) -> list[str]:
        """Return cached versions of *name* (unsorted, semver only)."""
        pkg_dir = self.root / name
        if not pkg_dir.is_dir():
            return []
        return [p.name for p in pkg_dir.iterdir() if p.is_dir() and is_version(p.name)]


class RemoteRegistry:
    """HTTP registry client.

    Args:
        base_url: Registry root URL.
        timeout: HTTP timeout in seconds.
        transport: Optional httpx transport (mock transport in tests).
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def metadata(self, name: str) -> dict[str, dict[str, Any]]:
        """Return ``{version: info}`` for *name*.

        Raises:
            NotFoundError: If the registry has no such package.
            RegistryError: If the response has no usable version list.
            httpx.HTTPError: On other HTTP failures.
        """
        url = f"{self.base_url}/packages/{quote(name, safe='@')}"
        try:
            data = await fetch_json(url, timeout=self.timeout, transport=self.transport)
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 404:
                raise NotFoundError(f"Package {name!r} not found in registry") from exc
            raise

        versions = data.get("versions") if isinstance(data, dict) else None
        if isinstance(versions, list):
            return {str(v): {} for v in versions}
        if isinstance(versions, dict):
            return {str(v): (info if isinstance(info, dict) else {}) for v, info in versions.items()}
        raise RegistryError(f"Registry response for {name!r} has no version list")

    async def download(self, name: str, version: str, info: dict[str, Any], dest: Path) -> None:
        """Download and unpack the tarball of *name*@*version* into *dest*."""
        tarball = info.get("tarball") or info.get("dist", {}).get("tarball")
        if not tarball:
            raise RegistryError(f"Registry has no tarball for {name}@{version}")
        payload = await fetch_bytes(tarball, timeout=self.timeout, transport=self.transport)
        await asyncio.to_thread(_unpack_tarball, payload, dest)


class RegistryResolver:
    """Resolves registry constraints against the cache, then the remote.

    Args:
        cache_dir: The agentpack cache root.
        remote: Remote registry, or None for cache-only resolution.
        downloader: Materializes a remote version into a directory.
            Defaults to ``remote.download``.
    """

    def __init__(
        self,
        cache_dir: Path,
        remote: RemoteRegistry | None = None,
        downloader: Downloader | None = None,
    ) -> None:
        self.local = LocalRegistry(cache_dir)
        self.remote = remote
        self.downloader = downloader or (remote.download if remote else None)

    async def resolve_version(self, name: str, constraint: str | None) -> RegistryResolution:
        """Resolve *name* at *constraint* to a materialized version.

        Raises:
            NotFoundError: If no local or remote version satisfies.
            ValueError: If *constraint* is malformed.
        """
        constraint = (constraint or "latest").strip() or "latest"
        vc = VersionConstraint(constraint)
        vc.validate()

        cached = select_best(self.local.versions(name), vc)
        if cached is not None:
            logger.debug("Using cached %s@%s for %s", name, cached, constraint)
            return RegistryResolution(cached, self.local.package_dir(name, cached), LOCAL)

        if self.remote is None or self.downloader is None:
            raise NotFoundError(
                f"No cached version of {name!r} satisfies {constraint!r} "
                "and no registry is configured"
            )

        available = await self.remote.metadata(name)
        chosen = select_best(available, vc)
        if chosen is None:
            raise NotFoundError(
                f"No version of {name!r} satisfies {constraint!r} "
                f"(available: {', '.join(sorted(available)) or 'none'})"
            )

        dest = self.local.package_dir(name, chosen)
        if not dest.is_dir():
            await self._materialize(name, chosen, available[chosen], dest)
        logger.info("Resolved %s@%s from registry", name, chosen)
        return RegistryResolution(chosen, dest, REMOTE)

    async def _materialize(self, name: str, version: str, info: dict[str, Any], dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=".download-", dir=dest.parent))
        try:
            await self.downloader(name, version, info, staging)  # type: ignore[misc]
            try:
                staging.rename(dest)
            except OSError:
                if not dest.is_dir():
                    raise
        finally:
            shutil.rmtree(staging, ignore_errors=True)


def _unpack_tarball(payload: bytes, dest: Path) -> None:
    """Extract a gzipped tarball into *dest*, dropping a single top-level dir."""
    dest.mkdir(parents=True, exist_ok=True)
    with tarfile.open(fileobj=io.BytesIO(payload), mode="r:*") as archive:
        archive.extractall(dest, filter="data")
    entries = list(dest.iterdir())
    if len(entries) == 1 and entries[0].is_dir():
        inner = entries[0]
        for child in inner.iterdir():
            child.rename(dest / child.name)
        inner.rmdir()

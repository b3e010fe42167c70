"""Package sources: local paths, git repositories and the registry.

All public names are re-exported here so callers can use
``from agentpack.core.sources import SourceResolver``.
"""

from agentpack.core.sources.git import GitCloner, is_sha_ref, run_git
from agentpack.core.sources.registry import (
    LocalRegistry,
    RegistryResolution,
    RegistryResolver,
    RemoteRegistry,
)
from agentpack.core.sources.resolver import SourceResolver

__all__ = [
    "GitCloner",
    "LocalRegistry",
    "RegistryResolution",
    "RegistryResolver",
    "RemoteRegistry",
    "SourceResolver",
    "is_sha_ref",
    "run_git",
]

"""Workspace index --- the cross-run record of installed files.

The package is split into focused submodules:

- ``models``: ``PackageRecord``, ``FileRecord`` and ``OwnerRecord``.
- ``index``: the ``WorkspaceIndex`` class with record management,
  integrity hashing and deterministic serialization.
- ``operations``: deserialization (``from_dict``, ``from_yaml``, ``read``),
  validation and diffing.

All public names are re-exported here.
"""

from agentpack.core.index.models import FileRecord, OwnerRecord, PackageRecord
from agentpack.core.index.index import INDEX_FILENAME, WorkspaceIndex

# Attach operations to WorkspaceIndex as methods/classmethods
from agentpack.core.index import operations as _ops

WorkspaceIndex.from_dict = classmethod(_ops._from_dict)
WorkspaceIndex.from_yaml = classmethod(_ops._from_yaml)
WorkspaceIndex.read = classmethod(_ops._read)
WorkspaceIndex.validate = _ops._validate
WorkspaceIndex.diff = _ops._diff

__all__ = [
    "FileRecord",
    "INDEX_FILENAME",
    "OwnerRecord",
    "PackageRecord",
    "WorkspaceIndex",
]

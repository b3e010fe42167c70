"""Flow model, platform layouts and merge policies.

The flow engine lives in ``agentpack.core.flows.engine`` and is imported
from there; it depends on the conflict resolver, which in turn uses the
result types defined here.
"""

from agentpack.core.flows.models import (
    FileMapping,
    FileOwnership,
    Flow,
    FlowApplyResult,
    FlowCondition,
    FlowConflict,
    FlowFailure,
    FlowPackage,
    MergePolicy,
    PlatformDefinition,
    RelocatedFile,
)
from agentpack.core.flows.platforms import (
    builtin_platforms,
    detect_platforms,
    load_platforms,
    select_platforms,
)

__all__ = [
    "FileMapping",
    "FileOwnership",
    "Flow",
    "FlowApplyResult",
    "FlowCondition",
    "FlowConflict",
    "FlowFailure",
    "FlowPackage",
    "MergePolicy",
    "PlatformDefinition",
    "RelocatedFile",
    "builtin_platforms",
    "detect_platforms",
    "load_platforms",
    "select_platforms",
]

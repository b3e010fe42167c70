"""Built-in platform layouts and user overrides.

Each platform is plain configuration: a root directory, an optional root
instructions file and a list of export flows. Users can add platforms or
override built-in ones with ``platforms.yml`` in ``~/.agentpack/`` or in the
workspace ``.agentpack/`` directory; overrides are deep-merged over the
built-ins (lists such as ``export`` replace wholesale).

Example override::

    cursor:
      enabled: false
    zed:
      name: Zed
      root_dir: .zed
      export:
        - from: rules/**/*.md
          to: "{rootDir}/rules/{dir}{name}.md"
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

import yaml

from agentpack.core.flows.merge import deep_merge
from agentpack.core.flows.models import PlatformDefinition
from agentpack.exceptions import ValidationError

logger = logging.getLogger(__name__)

PLATFORMS_FILENAME = "platforms.yml"

# Root files written by several platforms.
SHARED_ROOT_FILES = frozenset({"AGENTS.md"})

_MCP_TO_MCP_SERVERS = [{"$rename": {"servers.*": "mcpServers.*"}}]


def _markdown_flows(kinds: Iterable[tuple[str, str]], ext: str = "md") -> list[dict[str, Any]]:
    return [
        {"from": f"{src}/**/*.md", "to": f"{{rootDir}}/{dst}/{{dir}}{{name}}.{ext}"}
        for src, dst in kinds
    ]


def _builtin_config() -> dict[str, dict[str, Any]]:
    """Return the built-in platform configuration, keyed by platform id."""
    return {
        "claude": {
            "name": "Claude Code",
            "root_dir": ".claude",
            "root_file": "CLAUDE.md",
            "subdirs": ["rules", "agents", "commands", "skills"],
            "aliases": ["claude-code", "claudecode"],
            "export": [
                *_markdown_flows([("rules", "rules"), ("agents", "agents"), ("commands", "commands")]),
                {"from": "skills/**/*", "to": "{rootDir}/skills/{dir}{file}"},
                {"from": "mcp.json", "to": ".mcp.json", "merge": "deep", "map": _MCP_TO_MCP_SERVERS},
                {"from": "AGENTS.md", "to": "{rootFile}", "merge": "composite"},
            ],
        },
        "cursor": {
            "name": "Cursor",
            "root_dir": ".cursor",
            "root_file": "AGENTS.md",
            "subdirs": ["rules", "commands"],
            "export": [
                *_markdown_flows([("rules", "rules")], ext="mdc"),
                *_markdown_flows([("commands", "commands")]),
                {"from": "mcp.json", "to": "{rootDir}/mcp.json", "merge": "deep", "map": _MCP_TO_MCP_SERVERS},
                {"from": "AGENTS.md", "to": "{rootFile}", "merge": "composite"},
            ],
        },
        "opencode": {
            "name": "OpenCode",
            "root_dir": ".opencode",
            "root_file": "AGENTS.md",
            "subdirs": ["agent", "command"],
            "export": [
                *_markdown_flows([("agents", "agent"), ("commands", "command")]),
                {
                    "from": "mcp.json",
                    "to": "opencode.json",
                    "merge": "deep",
                    "map": [
                        {"$rename": {"mcpServers.*": "mcp.*"}},
                        {"$rename": {"servers.*": "mcp.*"}},
                    ],
                },
                {"from": "AGENTS.md", "to": "{rootFile}", "merge": "composite"},
            ],
        },
        "codex": {
            "name": "Codex",
            "root_dir": ".codex",
            "root_file": "AGENTS.md",
            "subdirs": ["prompts"],
            "export": [
                *_markdown_flows([("commands", "prompts")]),
                {"from": "AGENTS.md", "to": "{rootFile}", "merge": "composite"},
            ],
        },
        "windsurf": {
            "name": "Windsurf",
            "root_dir": ".windsurf",
            "subdirs": ["rules", "workflows"],
            "export": _markdown_flows([("rules", "rules"), ("commands", "workflows")]),
        },
    }


def load_platforms(
    cwd: Path | None = None,
    home: Path | None = None,
) -> dict[str, PlatformDefinition]:
    """Load built-in platforms merged with user and workspace overrides.

    Args:
        cwd: Workspace directory; ``<cwd>/.agentpack/platforms.yml`` is applied last.
        home: agentpack home; ``<home>/platforms.yml`` is applied first.

    Returns:
        Platform definitions keyed by id, in definition order.

    Raises:
        ValidationError: If an override file or platform entry is malformed.
    """
    config = copy.deepcopy(_builtin_config())
    for path in _override_paths(cwd, home):
        if not path.is_file():
            continue
        logger.debug("Applying platform overrides from %s", path)
        try:
            overrides = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise ValidationError(f"Invalid platform file {path}: {exc}") from exc
        if not isinstance(overrides, dict):
            raise ValidationError(f"Platform file {path} must contain a mapping")
        config = deep_merge(config, overrides)

    return {
        pid: PlatformDefinition.from_dict(pid, data)
        for pid, data in config.items()
        if isinstance(data, dict)
    }


def builtin_platforms() -> dict[str, PlatformDefinition]:
    """Return the built-in platforms without overrides."""
    return {pid: PlatformDefinition.from_dict(pid, data) for pid, data in _builtin_config().items()}


def detect_platforms(
    target_dir: Path,
    platforms: dict[str, PlatformDefinition],
) -> list[PlatformDefinition]:
    """Return enabled platforms whose root dir or root file exists in *target_dir*.

    Shared root files such as ``AGENTS.md`` are ignored: installing for one
    platform writes them, and they must not pull other platforms into the
    next install.
    """
    found = []
    for definition in platforms.values():
        if not definition.enabled:
            continue
        if (target_dir / definition.root_dir).is_dir():
            found.append(definition)
        elif (
            definition.root_file
            and definition.root_file not in SHARED_ROOT_FILES
            and (target_dir / definition.root_file).is_file()
        ):
            found.append(definition)
    return found


def select_platforms(
    names: Sequence[str],
    platforms: dict[str, PlatformDefinition],
) -> list[PlatformDefinition]:
    """Look up platforms by id or alias, preserving order and dropping repeats.

    Raises:
        ValidationError: If a name matches no platform.
    """
    selected: list[PlatformDefinition] = []
    for name in names:
        key = name.strip().lower()
        match = next((p for p in platforms.values() if p.matches(key)), None)
        if match is None:
            raise ValidationError(
                f"Unknown platform {name!r} (known: {', '.join(sorted(platforms))})"
            )
        if match not in selected:
            selected.append(match)
    return selected


def _override_paths(cwd: Path | None, home: Path | None) -> list[Path]:
    paths = []
    if home is not None:
        paths.append(home / PLATFORMS_FILENAME)
    if cwd is not None:
        paths.append(cwd / ".agentpack" / PLATFORMS_FILENAME)
    return paths

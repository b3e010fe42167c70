"""Configuration for agentpack.

Settings are layered: built-in defaults, then the user file
``~/.agentpack/config.yml``, then the workspace file
``<cwd>/.agentpack/config.yml``, then ``AGENTPACK_*`` environment variables.

Example YAML::

    registry_url: https://registry.example.com
    concurrency: 8
    default_platforms:
      - claude
      - cursor
    conflict_strategy: namespace
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from agentpack.exceptions import ValidationError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.yml"
CONFLICT_STRATEGIES = ("namespace", "overwrite", "skip")


def default_home() -> Path:
    """Return the agentpack home directory, honouring ``AGENTPACK_HOME``."""
    env = os.environ.get("AGENTPACK_HOME")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".agentpack"


@dataclass
class Settings:
    """Runtime settings shared by the resolver, engine and CLI."""

    home: Path = field(default_factory=default_home)
    cache_dir: Path | None = None
    registry_url: str | None = None
    concurrency: int = 4
    default_platforms: list[str] = field(default_factory=lambda: ["claude"])
    conflict_strategy: str = "namespace"
    http_timeout: float = 30.0

    def __post_init__(self) -> None:
        if self.cache_dir is None:
            self.cache_dir = self.home / "cache"

    @classmethod
    def from_dict(cls, data: dict[str, Any], base: Settings | None = None) -> Settings:
        """Create settings from a dict, layering over *base* when given."""
        settings = base if base is not None else cls()
        if "home" in data:
            settings.home = Path(str(data["home"])).expanduser()
        if "cache_dir" in data:
            settings.cache_dir = Path(str(data["cache_dir"])).expanduser()
        if "registry_url" in data:
            settings.registry_url = data["registry_url"] or None
        if "concurrency" in data:
            settings.concurrency = _positive_int(data["concurrency"], "concurrency")
        if "default_platforms" in data:
            platforms = data["default_platforms"]
            if isinstance(platforms, str):
                platforms = [platforms]
            settings.default_platforms = [str(p) for p in platforms or []]
        if "conflict_strategy" in data:
            settings.conflict_strategy = _strategy(data["conflict_strategy"])
        if "http_timeout" in data:
            settings.http_timeout = float(data["http_timeout"])
        return settings

    @classmethod
    def from_yaml(cls, path: Path, base: Settings | None = None) -> Settings:
        """Load settings from a YAML file."""
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ValidationError(f"Invalid config file {path}: {exc}") from exc
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValidationError(f"Config file {path} must contain a mapping")
        return cls.from_dict(data, base)

    @classmethod
    def load(cls, cwd: Path | None = None) -> Settings:
        """Load settings from config files and the environment.

        Args:
            cwd: Workspace directory whose ``.agentpack/config.yml`` is
                layered over the user configuration.

        Returns:
            Fully resolved ``Settings``.

        Raises:
            ValidationError: If a config file or variable is invalid.
        """
        settings = cls()
        for path in _config_paths(settings.home, cwd):
            if path.is_file():
                logger.debug("Loading config from %s", path)
                settings = cls.from_yaml(path, settings)

        env = os.environ
        if env.get("AGENTPACK_CACHE_DIR"):
            settings.cache_dir = Path(env["AGENTPACK_CACHE_DIR"]).expanduser()
        if env.get("AGENTPACK_REGISTRY_URL"):
            settings.registry_url = env["AGENTPACK_REGISTRY_URL"]
        if env.get("AGENTPACK_CONCURRENCY"):
            settings.concurrency = _positive_int(
                env["AGENTPACK_CONCURRENCY"], "AGENTPACK_CONCURRENCY"
            )
        return settings


def _config_paths(home: Path, cwd: Path | None) -> list[Path]:
    paths = [home / CONFIG_FILENAME]
    if cwd is not None:
        workspace = Path(cwd) / ".agentpack" / CONFIG_FILENAME
        if workspace != paths[0]:
            paths.append(workspace)
    return paths


def _positive_int(value: Any, name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{name} must be an integer, got {value!r}") from exc
    if number < 1:
        raise ValidationError(f"{name} must be at least 1, got {number}")
    return number


def _strategy(value: Any) -> str:
    strategy = str(value).lower()
    if strategy not in CONFLICT_STRATEGIES:
        raise ValidationError(
            f"conflict_strategy must be one of {', '.join(CONFLICT_STRATEGIES)}, "
            f"got {value!r}"
        )
    return strategy

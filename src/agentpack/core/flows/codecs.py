"""Load and dump flow payloads by file extension.

``.json`` is handled with :mod:`json`, ``.yaml`` / ``.yml`` with PyYAML;
everything else is treated as UTF-8 text.
"""

from __future__ import annotations

import json
from pathlib import PurePath
from typing import Any

import yaml

from agentpack.exceptions import ValidationError

JSON_SUFFIXES = frozenset({".json"})
YAML_SUFFIXES = frozenset({".yaml", ".yml"})


def is_structured(path: str | PurePath) -> bool:
    suffix = PurePath(path).suffix.lower()
    return suffix in JSON_SUFFIXES or suffix in YAML_SUFFIXES


def load_structured(text: str, path: str | PurePath) -> dict[str, Any]:
    """Parse *text* as JSON or YAML according to *path*'s extension.

    Empty text parses to an empty mapping.

    Raises:
        ValidationError: If the text is unparseable or not a mapping.
    """
    if not text.strip():
        return {}
    suffix = PurePath(path).suffix.lower()
    try:
        if suffix in JSON_SUFFIXES:
            data = json.loads(text)
        elif suffix in YAML_SUFFIXES:
            data = yaml.safe_load(text)
        else:
            raise ValidationError(f"{path} is not a JSON or YAML file")
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ValidationError(f"Cannot parse {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError(f"{path} must contain a mapping at the top level")
    return data


def dump_structured(data: dict[str, Any], path: str | PurePath) -> str:
    """Serialize *data* for *path*, keeping key order."""
    suffix = PurePath(path).suffix.lower()
    if suffix in JSON_SUFFIXES:
        return json.dumps(data, indent=2, ensure_ascii=False) + "\n"
    if suffix in YAML_SUFFIXES:
        return yaml.safe_dump(data, sort_keys=False, allow_unicode=True, default_flow_style=False)
    raise ValidationError(f"{path} is not a JSON or YAML file")

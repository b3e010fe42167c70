"""Nested-key helpers and the ``map`` pipeline for structured payloads.

Key paths are tuples of keys. Ownership records store them as JSON
Pointers (RFC 6901, ``/mcpServers/github``) so keys containing dots or
slashes survive the round trip; flow ``map`` operations use the friendlier
dot notation (``mcpServers.github``).

Supported map operations, applied in order::

    - $rename: {"servers.*": "mcpServers.*", "old.key": "new.key"}
    - $set: {"settings.enabled": true}
    - $unset: ["permission", "legacy.flag"]
    - $copy: {"from": "permission", "to": "permissionMode",
              "transform": {"cases": [{"pattern": {"edit": "deny"}, "value": "plan"}],
                            "default": "default"}}
    - $transform: {"field": "tools", "steps": [{"filter": {"value": true}},
                                                {"keys": true}, {"join": ", "}]}

``$copy`` leaves the target untouched when the source key is missing; its
optional cases match a string pattern by equality and a mapping pattern when
every pattern key has the same value in the source. ``$transform`` runs its
steps (``filter``, ``keys``, ``values``, ``entries``, ``map``, ``join``) over
one field and removes the field when the result is an empty string or list;
a missing field is left alone.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable
from typing import Any

from agentpack.exceptions import ValidationError

KeyPath = tuple[str, ...]

_MISSING = object()


# ---------------------------------------------------------------------------
# Key path encoding
# ---------------------------------------------------------------------------


def to_pointer(path: KeyPath) -> str:
    """Encode a key path as a JSON Pointer."""
    return "".join("/" + k.replace("~", "~0").replace("/", "~1") for k in path)


def from_pointer(pointer: str) -> KeyPath:
    """Decode a JSON Pointer into a key path."""
    if not pointer:
        return ()
    if not pointer.startswith("/"):
        raise ValueError(f"Invalid JSON pointer {pointer!r}")
    return tuple(p.replace("~1", "/").replace("~0", "~") for p in pointer[1:].split("/"))


def split_dotted(path: str) -> KeyPath:
    return tuple(p for p in path.split(".") if p)


# ---------------------------------------------------------------------------
# Nested access
# ---------------------------------------------------------------------------


def get_nested(doc: Any, path: KeyPath, default: Any = None) -> Any:
    cur = doc
    for key in path:
        if not isinstance(cur, dict) or key not in cur:
            return default
        cur = cur[key]
    return cur


def has_nested(doc: Any, path: KeyPath) -> bool:
    return get_nested(doc, path, _MISSING) is not _MISSING


def set_nested(doc: dict[str, Any], path: KeyPath, value: Any) -> None:
    """Set *value* at *path*, creating (or replacing non-dict) parents."""
    if not path:
        raise ValueError("Cannot set an empty key path")
    cur = doc
    for key in path[:-1]:
        nxt = cur.get(key)
        if not isinstance(nxt, dict):
            nxt = {}
            cur[key] = nxt
        cur = nxt
    cur[path[-1]] = value


def delete_nested(doc: dict[str, Any], path: KeyPath) -> bool:
    """Delete the key at *path* and prune parents left empty.

    Returns:
        True if a key was removed.
    """
    if not path:
        return False
    parents: list[dict[str, Any]] = []
    cur: Any = doc
    for key in path[:-1]:
        if not isinstance(cur, dict) or not isinstance(cur.get(key), dict):
            return False
        parents.append(cur)
        cur = cur[key]
    if not isinstance(cur, dict) or path[-1] not in cur:
        return False
    del cur[path[-1]]

    # Walk back up, removing dicts emptied by the deletion.
    child = cur
    for depth in range(len(parents) - 1, -1, -1):
        if child:
            break
        parent = parents[depth]
        del parent[path[depth]]
        child = parent
    return True


# ---------------------------------------------------------------------------
# Map pipeline
# ---------------------------------------------------------------------------


def apply_map(doc: dict[str, Any], ops: Iterable[dict[str, Any]]) -> dict[str, Any]:
    """Apply map operations to a copy of *doc*.

    Raises:
        ValidationError: On an unknown operation or malformed arguments.
    """
    result = copy.deepcopy(doc)
    for op in ops:
        if not isinstance(op, dict) or len(op) != 1:
            raise ValidationError(f"Map operation must have exactly one key: {op!r}")
        (name, arg), = op.items()
        if name == "$rename":
            _rename(result, arg)
        elif name == "$set":
            if not isinstance(arg, dict):
                raise ValidationError("$set expects a mapping of path -> value")
            for path, value in arg.items():
                set_nested(result, split_dotted(path), copy.deepcopy(value))
        elif name == "$unset":
            paths = [arg] if isinstance(arg, str) else list(arg or [])
            for path in paths:
                delete_nested(result, split_dotted(str(path)))
        elif name == "$copy":
            _copy(result, arg)
        elif name == "$transform":
            _transform(result, arg)
        else:
            raise ValidationError(f"Unknown map operation {name!r}")
    return result


def _rename(doc: dict[str, Any], mapping: Any) -> None:
    if not isinstance(mapping, dict) or not mapping:
        raise ValidationError("$rename expects a non-empty mapping of old -> new")
    for old, new in mapping.items():
        old, new = str(old), str(new)
        if old.count("*") != new.count("*") or old.count("*") > 1:
            raise ValidationError(f"$rename wildcard mismatch: {old!r} -> {new!r}")
        if "*" not in old:
            _move(doc, split_dotted(old), split_dotted(new))
            continue

        old_parent, old_rest = _split_wildcard(old)
        new_parent, new_rest = _split_wildcard(new)
        container = get_nested(doc, old_parent)
        if not isinstance(container, dict):
            continue
        for key in list(container):
            _move(doc, old_parent + (key,) + old_rest, new_parent + (key,) + new_rest)


def _copy(doc: dict[str, Any], config: Any) -> None:
    if not isinstance(config, dict):
        raise ValidationError("$copy expects a mapping with 'from' and 'to'")
    src, dst = config.get("from"), config.get("to")
    if not isinstance(src, str) or not src or not isinstance(dst, str) or not dst:
        raise ValidationError("$copy.from and $copy.to must be non-empty strings")
    cases, default = _copy_cases(config.get("transform"))

    value = get_nested(doc, split_dotted(src), _MISSING)
    if value is _MISSING:
        return
    if cases is not None:
        matched = next((c["value"] for c in cases if _matches(value, c["pattern"])), _MISSING)
        if matched is not _MISSING:
            value = matched
        elif default is not _MISSING:
            value = default
    set_nested(doc, split_dotted(dst), copy.deepcopy(value))


def _copy_cases(transform: Any) -> tuple[list[dict[str, Any]] | None, Any]:
    if transform is None:
        return None, _MISSING
    if not isinstance(transform, dict):
        raise ValidationError("$copy.transform must be a mapping")
    cases = transform.get("cases")
    if not isinstance(cases, list) or not cases:
        raise ValidationError("$copy.transform.cases must be a non-empty list")
    for i, case in enumerate(cases):
        if not isinstance(case, dict) or "pattern" not in case or "value" not in case:
            raise ValidationError(f"$copy.transform.cases[{i}] needs 'pattern' and 'value'")
    return cases, transform.get("default", _MISSING)


def _matches(value: Any, pattern: Any) -> bool:
    if isinstance(pattern, dict):
        return isinstance(value, dict) and all(
            k in value and value[k] == v for k, v in pattern.items()
        )
    return value == pattern


_CASE_MAPS = {
    "capitalize": lambda s: s[:1].upper() + s[1:],
    "uppercase": str.upper,
    "lowercase": str.lower,
}


def _transform(doc: dict[str, Any], config: Any) -> None:
    if not isinstance(config, dict):
        raise ValidationError("$transform expects a mapping with 'field' and 'steps'")
    field = config.get("field")
    steps = config.get("steps")
    if not isinstance(field, str) or not field:
        raise ValidationError("$transform.field must be a non-empty string")
    if not isinstance(steps, list) or not steps:
        raise ValidationError("$transform.steps must be a non-empty list")

    path = split_dotted(field)
    value = get_nested(doc, path, _MISSING)
    if value is _MISSING:
        return
    for i, step in enumerate(steps):
        if not isinstance(step, dict) or len(step) != 1:
            raise ValidationError(f"$transform.steps[{i}] must have exactly one operation")
        (op, arg), = step.items()
        value = _transform_step(value, op, arg, i)

    if value == "" or value == []:
        delete_nested(doc, path)
    else:
        set_nested(doc, path, value)


def _transform_step(value: Any, op: str, arg: Any, i: int) -> Any:
    if op == "filter":
        if not isinstance(arg, dict):
            raise ValidationError(f"$transform.steps[{i}].filter must be a mapping")
        if not isinstance(value, dict):
            return value
        return {
            k: v for k, v in value.items()
            if ("value" not in arg or v == arg["value"]) and ("key" not in arg or k == arg["key"])
        }
    if op in ("keys", "values", "entries"):
        if not isinstance(value, dict):
            return []
        if op == "keys":
            return list(value)
        if op == "values":
            return list(value.values())
        return [[k, v] for k, v in value.items()]
    if op == "map":
        fn = _CASE_MAPS.get(arg)
        if fn is None:
            raise ValidationError(
                f"$transform.steps[{i}].map must be one of: {', '.join(_CASE_MAPS)}"
            )
        if not isinstance(value, list):
            return value
        return [fn(item) if isinstance(item, str) else item for item in value]
    if op == "join":
        if not isinstance(arg, str):
            raise ValidationError(f"$transform.steps[{i}].join must be a string")
        if not isinstance(value, list):
            return value
        return arg.join(str(item) for item in value)
    raise ValidationError(f"$transform.steps[{i}] has unknown operation {op!r}")


def _split_wildcard(pattern: str) -> tuple[KeyPath, KeyPath]:
    parts = split_dotted(pattern)
    if "*" not in parts:
        raise ValidationError(f"Wildcard must be a whole key segment: {pattern!r}")
    index = parts.index("*")
    return parts[:index], parts[index + 1:]


def _move(doc: dict[str, Any], old: KeyPath, new: KeyPath) -> None:
    if old == new or not has_nested(doc, old):
        return
    value = get_nested(doc, old)
    delete_nested(doc, old)
    set_nested(doc, new, value)

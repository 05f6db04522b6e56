"""Dot-path access and depth-bounded deep merge over nested dicts.

All functions are pure: they return new containers and never mutate their
inputs. Only ``dict`` values count as maps; lists and scalars are leaves that
are replaced wholesale.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any, TypeVar

MAX_MERGE_DEPTH = 5

_T = TypeVar("_T")


# Returned by get_path when a segment is absent; distinct from a stored None.
MISSING: Any = object()


def is_plain_map(value: Any) -> bool:
    return isinstance(value, dict)


def _split(path: str) -> list[str]:
    return path.split(".")


def get_path(root: Mapping[str, Any], path: str, default: Any = MISSING) -> Any:
    """Return the value at ``path`` or ``default`` when any segment is absent."""
    current: Any = root
    for part in _split(path):
        if not isinstance(current, Mapping) or part not in current:
            return default
        current = current[part]
    return current


def has_path(root: Mapping[str, Any], path: str) -> bool:
    """True when every segment exists as a key, even if the leaf value is ``None``."""
    return get_path(root, path) is not MISSING


def set_path(root: Mapping[str, Any], path: str, value: Any) -> dict[str, Any]:
    """Return a copy of ``root`` with ``value`` written at ``path``.

    Intermediate maps are copied on the way down; a missing or non-map
    intermediate is replaced with an empty dict.
    """
    parts = _split(path)
    result = dict(root)
    current = result
    for key in parts[:-1]:
        existing = current.get(key)
        current[key] = dict(existing) if is_plain_map(existing) else {}
        current = current[key]
    current[parts[-1]] = value
    return result


def merge_deep(
    target: Mapping[str, Any],
    source: Mapping[str, Any],
    *,
    max_depth: int = MAX_MERGE_DEPTH,
    _depth: int = 0,
) -> dict[str, Any]:
    """Merge ``source`` into a copy of ``target``.

    Maps present on both sides merge recursively; anything else from ``source``
    wins. Past ``max_depth`` the remaining levels are merged with a flat
    overwrite so the recursion always terminates.
    """
    if _depth >= max_depth:
        return {**target, **source}

    result = dict(target)
    for key, source_value in source.items():
        target_value = result.get(key, MISSING)
        if is_plain_map(source_value) and is_plain_map(target_value):
            result[key] = merge_deep(target_value, source_value, max_depth=max_depth, _depth=_depth + 1)
        else:
            result[key] = source_value
    return result


def snapshot(value: _T) -> _T:
    """Deep, structurally independent copy of ``value``."""
    return copy.deepcopy(value)

"""Canonical "no value" rules shared by every category.

Two functions define presence for the whole ingestion core:

- has_value(): the gate for writing an optional output field and for
  stamping provenance. False for None, non-finite numbers, blank strings,
  empty sequences, and empty mappings. ``0`` and ``False`` ARE values.
- normalize(): input-side coercion applied to every extracted field before
  any business rule looks at it. Collapses upstream sentinel strings
  ("", "null", "n/a" -- case and whitespace insensitive) to None.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, MutableMapping
from typing import Any

NULL_SENTINELS: frozenset[str] = frozenset({"", "null", "n/a"})


def has_value(value: Any) -> bool:
    """Return True if ``value`` counts as present for sparse output."""
    if value is None:
        return False
    if isinstance(value, bool):
        return True
    if isinstance(value, float) and not math.isfinite(value):
        return False
    if isinstance(value, str):
        return value.strip() != ""
    if isinstance(value, Mapping):
        return len(value) > 0
    if isinstance(value, (list, tuple)):
        return len(value) > 0
    return True


def normalize(value: Any) -> Any:
    """Coerce upstream null-likes to None, pass everything else through.

    Args:
        value: A raw field value extracted from a delivery.

    Returns:
        None for None, non-finite floats and sentinel strings; otherwise the
        value unchanged (strings are NOT trimmed).
    """
    if value is None:
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, str) and value.strip().lower() in NULL_SENTINELS:
        return None
    return value


def add_if_has_value(target: MutableMapping[str, Any], key: str, value: Any) -> None:
    """Write ``target[key] = value`` only when the value is present."""
    if has_value(value):
        target[key] = value


def get_path(obj: Any, *keys: str) -> Any:
    """Safely walk nested mappings and return the normalized leaf.

    Any missing hop, or a hop that is not a mapping, yields None.
    """
    current = obj
    for key in keys:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return normalize(current)


def get_mapping(obj: Any, key: str) -> Mapping[str, Any] | None:
    """Return ``obj[key]`` if it is a mapping, else None."""
    if not isinstance(obj, Mapping):
        return None
    value = obj.get(key)
    return value if isinstance(value, Mapping) else None

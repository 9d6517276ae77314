"""Deterministic serialization of JSON-like values for hashing.

Two encoders share one recursive base:

- stable_stringify(): order-preserving. Object keys are sorted at every
  level, arrays keep their original order. Used where list order is part
  of identity, and for log previews.
- canonical_stringify(): order-insensitive. Each array element is
  canonicalized on its own, then the array is sorted by the serialized
  form of its elements. Used for fingerprints, so retries whose lists
  arrive in a different order still hash identically.

Both are pure and never raise. Values with no JSON meaning collapse to
null rather than failing: hash-input stability wins over input fidelity.
Containers nested MAX_DEPTH levels down also collapse to null.
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from typing import Any

_SEPARATORS = (",", ":")

MAX_DEPTH = 200


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=_SEPARATORS, ensure_ascii=False)


def _encode_number(value: int | float) -> int | float | None:
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        # 1.0 and 1 are the same JSON number upstream
        if value.is_integer():
            return int(value)
    return value


def canonicalize(value: Any, *, sort_arrays: bool = False) -> Any:
    """Reduce ``value`` to plain JSON types with sorted keys.

    Args:
        value: Any Python value, typically decoded JSON.
        sort_arrays: Sort every array by the serialization of its
            (already canonical) elements.

    Returns:
        A structure made only of dict, list, str, int, float, bool and None.
        Cyclic references, non-finite numbers, unsupported types and
        containers nested MAX_DEPTH levels down become None.
    """
    active: set[int] = set()

    def enc(v: Any, depth: int) -> Any:
        if v is None or isinstance(v, (bool, str)):
            return v
        if isinstance(v, (int, float)):
            return _encode_number(v)
        if isinstance(v, (Mapping, list, tuple)):
            marker = id(v)
            if marker in active or depth >= MAX_DEPTH:
                return None
            active.add(marker)
            try:
                if isinstance(v, Mapping):
                    items = {str(k): item for k, item in v.items()}
                    return {k: enc(items[k], depth + 1) for k in sorted(items)}
                encoded = [enc(item, depth + 1) for item in v]
                if sort_arrays:
                    encoded.sort(key=_dumps)
                return encoded
            finally:
                active.discard(marker)
        return None

    return enc(value, 0)


def stable_stringify(value: Any) -> str:
    """Serialize with sorted keys, preserving array order."""
    return _dumps(canonicalize(value))


def canonical_stringify(value: Any) -> str:
    """Serialize with sorted keys and order-insensitive arrays."""
    return _dumps(canonicalize(value, sort_arrays=True))


def payload_bytes(value: Any) -> int:
    """UTF-8 size of the order-preserving serialization."""
    return len(stable_stringify(value).encode("utf-8"))

"""Field-level provenance stamping for output aggregates.

For every present leaf of an aggregate, records WHEN it was last supplied
(``last_received_at``) and BY WHICH delivery (``last_received_by``). The two
shadow maps mirror the aggregate's nesting: a nested object produces a
nested map at the same key, never a flattened dotted key. Arrays are
attributed as a single unit.

The downstream store merges partial, out-of-order updates per field by
comparing these timestamps. This module only emits the deltas; it never
reads or merges stored state.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from src.reshaper.core.emptiness import has_value

LAST_RECEIVED_AT = "field_last_received_at"
LAST_RECEIVED_BY = "field_last_received_by"

# Top-level keys never stamped: the identifier and the shadow maps themselves.
EXCLUDED_FIELDS: frozenset[str] = frozenset({"id", LAST_RECEIVED_AT, LAST_RECEIVED_BY})


@dataclass
class ProvenanceMaps:
    """Pair of structurally mirrored shadow maps for one aggregate."""

    last_received_at: dict[str, Any] = field(default_factory=dict)
    last_received_by: dict[str, Any] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.last_received_at)


def _stamp(
    obj: Mapping[str, Any],
    timestamp: Any,
    fingerprint: str,
    excluded: frozenset[str],
) -> ProvenanceMaps:
    maps = ProvenanceMaps()
    for key, value in obj.items():
        if key in excluded or not has_value(value):
            continue
        if isinstance(value, Mapping):
            nested = _stamp(value, timestamp, fingerprint, frozenset())
            if nested:
                maps.last_received_at[key] = nested.last_received_at
                maps.last_received_by[key] = nested.last_received_by
            continue
        maps.last_received_at[key] = timestamp
        maps.last_received_by[key] = fingerprint
    return maps


def stamp_provenance(
    aggregate: Mapping[str, Any],
    timestamp: Any,
    fingerprint: str,
    *,
    excluded: frozenset[str] = EXCLUDED_FIELDS,
) -> ProvenanceMaps:
    """Build the provenance shadow maps for ``aggregate``.

    Args:
        aggregate: The sparse output record. Not modified.
        timestamp: Value written into ``last_received_at`` for each leaf
            (epoch milliseconds by convention).
        fingerprint: Identity of the delivery that supplied the values.
        excluded: Top-level keys to skip. Nested levels are never filtered.

    Returns:
        ProvenanceMaps whose maps contain an entry at the mirrored path of
        every leaf satisfying has_value(), and nothing else. A nested object
        with no present leaves contributes no key at all.
    """
    return _stamp(aggregate, timestamp, fingerprint, excluded)


def attach_provenance(aggregate: Mapping[str, Any], maps: ProvenanceMaps) -> dict[str, Any]:
    """Return a copy of ``aggregate`` with both shadow maps embedded."""
    record = dict(aggregate)
    record[LAST_RECEIVED_AT] = maps.last_received_at
    record[LAST_RECEIVED_BY] = maps.last_received_by
    return record

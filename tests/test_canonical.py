"""Unit tests for deterministic serialization.

Tests cover:
- Key-order invariance at every nesting level
- Array-order invariance for the order-insensitive encoder only
- Null collapsing of unsupported and non-finite values
- Cycle breaking without losing shared (non-cyclic) references
- Depth bound on deeply nested input
"""

from __future__ import annotations

import math
from datetime import datetime

from src.reshaper.core.canonical import (
    MAX_DEPTH,
    canonical_stringify,
    canonicalize,
    payload_bytes,
    stable_stringify,
)


class TestKeyOrder:
    """Object keys are sorted regardless of insertion order."""

    def test_top_level(self):
        """canonicalize({a:1,b:2}) == canonicalize({b:2,a:1})."""
        assert canonical_stringify({"a": 1, "b": 2}) == canonical_stringify({"b": 2, "a": 1})
        assert stable_stringify({"a": 1, "b": 2}) == stable_stringify({"b": 2, "a": 1})

    def test_nested(self):
        """Sorting applies at every level."""
        left = {"outer": {"z": 1, "a": {"y": 2, "b": 3}}}
        right = {"outer": {"a": {"b": 3, "y": 2}, "z": 1}}
        assert canonical_stringify(left) == canonical_stringify(right)

    def test_compact_output(self):
        """Compact separators and sorted keys."""
        assert stable_stringify({"b": [1, 2], "a": "x"}) == '{"a":"x","b":[1,2]}'


class TestArrayOrder:
    """Array ordering differs between the two encoders."""

    def test_order_insensitive_variant(self):
        """[1,2,3] and [3,1,2] encode identically for fingerprinting."""
        assert canonical_stringify([1, 2, 3]) == canonical_stringify([3, 1, 2])

    def test_order_preserving_variant(self):
        """The order-preserving encoder keeps them distinct."""
        assert stable_stringify([1, 2, 3]) != stable_stringify([3, 1, 2])

    def test_arrays_of_objects(self):
        """Elements are canonicalized before sorting, so key order inside them is irrelevant."""
        left = [{"id": 2, "k": "b"}, {"k": "a", "id": 1}]
        right = [{"id": 1, "k": "a"}, {"k": "b", "id": 2}]
        assert canonical_stringify(left) == canonical_stringify(right)

    def test_nested_arrays_sorted(self):
        """Inner arrays are sorted too."""
        assert canonicalize({"x": [[3, 1], [2]]}, sort_arrays=True) == {"x": [[1, 3], [2]]}


class TestNullCollapse:
    """Unsupported values degrade to null instead of raising."""

    def test_non_finite_numbers(self):
        """NaN and infinities become null."""
        assert canonicalize([math.nan, math.inf, -math.inf, 1.5]) == [None, None, None, 1.5]

    def test_unsupported_types(self):
        """Sets, bytes, datetimes and arbitrary objects become null."""
        value = {"s": {1, 2}, "b": b"raw", "d": datetime(2024, 1, 1), "o": object()}
        assert canonicalize(value) == {"b": None, "d": None, "o": None, "s": None}

    def test_integral_floats_match_integers(self):
        """1.0 and 1 hash identically."""
        assert canonical_stringify({"n": 1.0}) == canonical_stringify({"n": 1})

    def test_booleans_stay_booleans(self):
        """True is never confused with 1."""
        assert canonical_stringify([True]) != canonical_stringify([1])

    def test_tuples_are_arrays(self):
        """Tuples encode as JSON arrays."""
        assert stable_stringify((1, 2)) == "[1,2]"

    def test_non_string_keys(self):
        """Keys are stringified."""
        assert canonicalize({1: "a"}) == {"1": "a"}


class TestCycles:
    """Cyclic references terminate."""

    def test_self_reference_becomes_null(self):
        """A dict containing itself encodes the back-reference as null."""
        node: dict = {"name": "root"}
        node["self"] = node
        assert canonicalize(node) == {"name": "root", "self": None}

    def test_list_cycle(self):
        """A list containing itself terminates."""
        items: list = [1]
        items.append(items)
        assert canonicalize(items) == [1, None]

    def test_shared_reference_is_not_a_cycle(self):
        """The same object under two siblings is encoded both times."""
        shared = {"v": 1}
        assert canonicalize({"a": shared, "b": shared}) == {"a": {"v": 1}, "b": {"v": 1}}


def _nested(levels: int) -> dict:
    value: dict = {}
    for _ in range(levels):
        value = {"next": value}
    return value


class TestDepth:
    """Deeply nested input is truncated, never fatal."""

    def test_deep_object_collapses_past_limit(self):
        """Containers MAX_DEPTH levels down become null."""
        expected = '{"next":' * MAX_DEPTH + "null" + "}" * MAX_DEPTH

        assert canonical_stringify(_nested(600)) == expected
        assert stable_stringify(_nested(600)) == expected

    def test_deep_arrays(self):
        """Nested arrays are bounded the same way."""
        value: list = []
        for _ in range(5000):
            value = [value]

        assert canonical_stringify(value) == "[" * MAX_DEPTH + "null" + "]" * MAX_DEPTH

    def test_shallow_nesting_untouched(self):
        """Structures within the bound are encoded in full."""
        assert canonicalize(_nested(3)) == {"next": {"next": {"next": {}}}}


class TestPayloadBytes:
    """Tests for payload_bytes()."""

    def test_counts_utf8_bytes(self):
        """Non-ASCII characters are counted in UTF-8 bytes."""
        assert payload_bytes({"a": "é"}) == len('{"a":"é"}'.encode("utf-8"))

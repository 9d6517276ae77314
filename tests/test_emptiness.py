"""Unit tests for the shared presence rules.

Tests cover:
- has_value() truth table, including 0 and False as values
- normalize() sentinel coercion
- add_if_has_value() sparse writes
- get_path() safe nested lookup
"""

from __future__ import annotations

import math

import pytest

from src.reshaper.core.emptiness import add_if_has_value, get_mapping, get_path, has_value, normalize


class TestHasValue:
    """Tests for has_value()."""

    @pytest.mark.parametrize("value", [None, "", "   ", "\t\n", [], {}, (), math.nan, math.inf, -math.inf])
    def test_absent_values(self, value):
        """None, blank strings, empty containers and non-finite numbers are absent."""
        assert has_value(value) is False

    @pytest.mark.parametrize("value", [0, 0.0, False, True, "x", " x ", [None], {"a": None}, -1])
    def test_present_values(self, value):
        """Zero, False and non-empty containers count as present."""
        assert has_value(value) is True

    def test_sentinel_string_is_present_until_normalized(self):
        """has_value does not coerce sentinels; normalize does."""
        assert has_value("n/a") is True
        assert has_value(normalize("n/a")) is False


class TestNormalize:
    """Tests for normalize()."""

    @pytest.mark.parametrize("value", ["", "null", "NULL", " Null ", "n/a", "N/A", "  ", None, math.nan])
    def test_sentinels_become_none(self, value):
        """Sentinel strings are matched case and whitespace insensitively."""
        assert normalize(value) is None

    @pytest.mark.parametrize("value", [0, False, "none", "nil", "NA", " text ", [], {}])
    def test_other_values_pass_through(self, value):
        """Only the closed sentinel set is coerced; strings are not trimmed."""
        assert normalize(value) == value


class TestAddIfHasValue:
    """Tests for add_if_has_value()."""

    def test_writes_present_values_only(self):
        """Absent values leave the key out entirely."""
        target: dict = {}
        add_if_has_value(target, "a", 0)
        add_if_has_value(target, "b", "")
        add_if_has_value(target, "c", [])
        add_if_has_value(target, "d", False)

        assert target == {"a": 0, "d": False}


class TestGetPath:
    """Tests for get_path() and get_mapping()."""

    def test_walks_nested_mappings(self):
        """Returns the leaf when every hop exists."""
        assert get_path({"a": {"b": {"c": 3}}}, "a", "b", "c") == 3

    def test_missing_or_non_mapping_hop(self):
        """A missing hop or a scalar in the middle yields None."""
        assert get_path({"a": {}}, "a", "b", "c") is None
        assert get_path({"a": 5}, "a", "b") is None
        assert get_path(None, "a") is None

    def test_leaf_is_normalized(self):
        """Sentinel leaves come back as None."""
        assert get_path({"a": {"b": "N/A"}}, "a", "b") is None

    def test_get_mapping_rejects_scalars(self):
        """get_mapping returns only mappings."""
        assert get_mapping({"a": {"x": 1}}, "a") == {"x": 1}
        assert get_mapping({"a": "x"}, "a") is None
        assert get_mapping("not a mapping", "a") is None

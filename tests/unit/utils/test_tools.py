"""Unit tests for the value helpers."""

import pytest

from clearmarkup.utils.tools import explode_map, sanitize, short_number


def test_sanitize_with_operations():
    """Test sanitizing with a named pipeline."""
    assert sanitize("  <b>Ann</b> ", "trim|strip_tags") == "Ann"
    assert sanitize("  x ", ["trim"]) == "x"


def test_sanitize_with_callable():
    """Test sanitizing with a callable."""
    assert sanitize("ann", str.title) == "Ann"


def test_explode_map():
    """Test splitting, mapping and dropping empty parts."""
    assert explode_map("a, b,,c ", ",", str.strip) == ["a", "b", "c"]
    assert explode_map("1|2|0", "|", int) == [1, 2]


@pytest.mark.parametrize("number, expected", [
    (500, "500"),
    (1_500, "1.5k"),
    (2_000_000, "2m"),
    (12_345_678_901, "12.3b"),
    (5_000_000_000_000, "5t"),
])
def test_short_number(number, expected):
    """Test suffixes and the removal of zero fractions."""
    assert short_number(number) == expected


def test_short_number_precision():
    """Test that non-zero fractions keep their trailing zeros."""
    assert short_number(1_500, precision=2) == "1.50k"
    assert short_number(2_000_000, precision=2) == "2m"
    assert short_number(1_500, precision=0) == "2k"

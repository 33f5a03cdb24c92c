"""Tests for fabric composition parsing."""

import pytest

from cotton_finder.composition import (
    extract_primary_cotton_percent,
    is_cotton_fiber,
    parse_composition,
)


class TestParseComposition:
    """Tests for parse_composition()."""

    def test_below_threshold_is_not_qualified(self):
        result = parse_composition("89% Cotton, 11% Elastane")
        assert result.composition == {"cotton": 89, "elastane": 11}
        assert result.is_cotton_qualified is False

    def test_at_threshold_is_qualified(self):
        result = parse_composition("90% Cotton, 10% Elastane")
        assert result.composition == {"cotton": 90, "elastane": 10}
        assert result.is_cotton_qualified is True

    @pytest.mark.parametrize("text", ["", None, "No composition listed", "Made in Portugal"])
    def test_no_data_gives_empty_mapping(self, text):
        result = parse_composition(text)
        assert result.composition == {}
        assert result.is_cotton_qualified is False

    def test_is_deterministic(self):
        """Parsing the same text twice gives identical results."""
        text = "Outer shell: 80% cotton, 20% polyester. Lining: 100% cotton"
        assert parse_composition(text) == parse_composition(text)

    def test_last_match_wins_for_repeated_fiber(self):
        result = parse_composition("Shell: 60% cotton, 40% polyester. Lining: 100% cotton")
        assert result.composition["cotton"] == 100
        assert result.composition["polyester"] == 40
        assert result.is_cotton_qualified is True

    def test_fiber_names_are_lowercased_and_single_spaced(self):
        result = parse_composition("95%   Organic    Cotton, 5% ELASTANE")
        assert result.composition == {"organic cotton": 95, "elastane": 5}

    def test_any_cotton_labelled_fiber_qualifies(self):
        result = parse_composition("92% organic cotton, 8% linen")
        assert result.is_cotton_qualified is True

    def test_out_of_range_percentages_pass_through(self):
        result = parse_composition("150% cotton")
        assert result.composition == {"cotton": 150}
        assert result.is_cotton_qualified is True

    def test_custom_threshold(self):
        assert parse_composition("80% cotton", threshold=75).is_cotton_qualified is True
        assert parse_composition("80% cotton", threshold=85).is_cotton_qualified is False


class TestExtractPrimaryCottonPercent:
    """Tests for extract_primary_cotton_percent()."""

    def test_end_to_end_shell_text(self):
        assert extract_primary_cotton_percent("Shell: 95% Cotton, 5% Elastane.") == 95

    def test_first_match_wins(self):
        """The first cotton reading is reported, unlike the mapping."""
        text = "Shell: 60% cotton, 40% polyester. Lining: 100% cotton"
        assert extract_primary_cotton_percent(text) == 60
        assert parse_composition(text).composition["cotton"] == 100

    @pytest.mark.parametrize("text", ["", None, "100% polyester", "cotton blend"])
    def test_returns_zero_without_cotton_percentage(self, text):
        assert extract_primary_cotton_percent(text) == 0

    def test_case_insensitive(self):
        assert extract_primary_cotton_percent("100% COTTON") == 100


class TestIsCottonFiber:
    """Tests for is_cotton_fiber()."""

    @pytest.mark.parametrize("fiber,expected", [
        ("cotton", True),
        ("organic cotton", True),
        ("Recycled Cotton", True),
        ("polyester", False),
        ("linen", False),
    ])
    def test_substring_match(self, fiber, expected):
        assert is_cotton_fiber(fiber) is expected

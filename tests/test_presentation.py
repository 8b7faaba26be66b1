"""Tests for the text rendering helpers in enchant_mastery.presentation."""

import pytest

from enchant_mastery.presentation import (
    format_enchantment_line,
    from_roman,
    render_decoded_name,
    to_roman,
    to_roman_or_zero,
)


@pytest.mark.unit
class TestToRoman:
    @pytest.mark.parametrize(
        ("number", "numeral"),
        [(1, "I"), (4, "IV"), (9, "IX"), (14, "XIV"), (40, "XL"), (1994, "MCMXCIV")],
    )
    def test_classical_values(self, number, numeral):
        assert to_roman(number) == numeral

    def test_values_above_3999_repeat_m(self):
        assert to_roman(5000) == "MMMMM"
        assert to_roman(4001) == "MMMMI"

    @pytest.mark.parametrize("number", [0, -3])
    def test_non_positive_raises(self, number):
        with pytest.raises(ValueError):
            to_roman(number)

    def test_or_zero(self):
        assert to_roman_or_zero(0) == "0"
        assert to_roman_or_zero(-1) == "0"
        assert to_roman_or_zero(7) == "VII"


@pytest.mark.unit
class TestFromRoman:
    def test_standard_numerals(self):
        assert from_roman("XIV") == 14
        assert from_roman("MCMXCIV") == 1994

    def test_case_insensitive(self):
        assert from_roman("vii") == 7

    def test_lenient_ordering(self):
        assert from_roman("IIII") == 4

    def test_reads_back_large_levels(self):
        assert from_roman(to_roman(1000)) == 1000
        assert from_roman("MMMMM") == 5000

    def test_empty_raises(self):
        with pytest.raises(ValueError, match="empty"):
            from_roman("")

    def test_invalid_character_raises(self):
        with pytest.raises(ValueError, match="'Z'"):
            from_roman("XZ")


@pytest.mark.unit
class TestRenderDecodedName:
    def test_nothing_unlocked(self):
        assert render_decoded_name("Sharpness", set()) == "#########"

    def test_partial(self):
        assert render_decoded_name("Sharpness", {0, 4}) == "S###p####"

    def test_spaces_are_always_visible(self):
        """Letter indices skip the space, so index 4 is the 'A' of 'Aspect'."""
        assert render_decoded_name("Fire Aspect", {4}) == "#### A#####"

    def test_custom_glyph(self):
        assert render_decoded_name("Smite", {1}, obfuscate="?") == "?m???"

    def test_fully_unlocked(self):
        assert render_decoded_name("Smite", range(5)) == "Smite"


@pytest.mark.unit
class TestFormatEnchantmentLine:
    def test_level_one_has_no_numeral(self):
        assert format_enchantment_line("Smite", range(5), 1, 5) == "Smite"

    def test_numeral_above_one(self):
        assert format_enchantment_line("Smite", range(5), 3, 5) == "Smite III"

    def test_effective_level_above_max(self):
        assert format_enchantment_line("Sharpness", set(), 7, 5) == "######### VII"

    def test_max_level_one_pushed_beyond(self):
        """Mending normally shows no numeral; pushed past its cap it does."""
        assert format_enchantment_line("Mending", range(7), 2, 1) == "Mending II"

"""Text rendering helpers for tooltips, chat and the CLI.

Everything here is derived from engine state and holds none of its own.
"""

from __future__ import annotations

from collections.abc import Iterable

from enchant_mastery.progression.decoding import decoded_segments

_NUMERALS: tuple[tuple[int, str], ...] = (
    (1000, "M"),
    (900, "CM"),
    (500, "D"),
    (400, "CD"),
    (100, "C"),
    (90, "XC"),
    (50, "L"),
    (40, "XL"),
    (10, "X"),
    (9, "IX"),
    (5, "V"),
    (4, "IV"),
    (1, "I"),
)
_SYMBOL_VALUES = {symbol: value for value, symbol in _NUMERALS}

#: Character shown in place of a letter that is still locked.
OBFUSCATED_GLYPH = "#"


def to_roman(number: int) -> str:
    """Return *number* as a Roman numeral.

    Values above 3999 keep repeating ``M`` (``5000 -> "MMMMM"``), which is
    what mastery levels beyond the classical range display as.

    Raises:
        ValueError: If *number* is not positive.
    """
    if number <= 0:
        raise ValueError(f"Roman numerals must be positive: {number}")
    parts: list[str] = []
    remaining = number
    for value, symbol in _NUMERALS:
        count, remaining = divmod(remaining, value)
        parts.append(symbol * count)
    return "".join(parts)


def to_roman_or_zero(level: int) -> str:
    """Like :func:`to_roman` but renders non-positive levels as ``"0"``."""
    if level <= 0:
        return "0"
    return to_roman(level)


def from_roman(text: str) -> int:
    """Parse a Roman numeral, case-insensitively.

    Two-character subtractive pairs are matched before single symbols.  The
    parser is lenient about ordering (``"IIII"`` reads as 4).

    Raises:
        ValueError: On an empty string or a character that is not a numeral.
    """
    if not text:
        raise ValueError("Roman numeral string cannot be empty")
    upper = text.upper()
    total = 0
    i = 0
    while i < len(upper):
        pair = upper[i : i + 2]
        if len(pair) == 2 and pair in _SYMBOL_VALUES:
            total += _SYMBOL_VALUES[pair]
            i += 2
            continue
        single = upper[i]
        if single not in _SYMBOL_VALUES:
            raise ValueError(f"Invalid Roman numeral character: {single!r}")
        total += _SYMBOL_VALUES[single]
        i += 1
    return total


def render_decoded_name(
    text: str, unlocked: Iterable[int], *, obfuscate: str = OBFUSCATED_GLYPH
) -> str:
    """Render *text* with every locked letter replaced by *obfuscate*.

    Spaces and punctuation are always shown.
    """
    return "".join(ch if revealed else obfuscate for ch, revealed in decoded_segments(text, unlocked))


def format_enchantment_line(
    name: str,
    unlocked: Iterable[int],
    level: int,
    max_level: int,
    *,
    obfuscate: str = OBFUSCATED_GLYPH,
) -> str:
    """Return one tooltip line, e.g. ``"Sh#rp##ss VII"``.

    The numeral is appended when *level* is above 1 or above the
    enchantment's host maximum (so a max-level-1 enchantment pushed to 2
    still shows its level).
    """
    line = render_decoded_name(name, unlocked, obfuscate=obfuscate)
    if level > 1 or level > max_level:
        line = f"{line} {to_roman(level)}"
    return line

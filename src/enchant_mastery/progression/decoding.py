"""Letter-unlock selection for obfuscated enchantment names.

An enchantment name starts fully obfuscated and is revealed one *letter* at
a time.  Letters are indexed by their position among the alphabetic
characters of the name only, so ``"Bane of Arthropods"`` has letter indices
``0..15`` and the two spaces are never indexed (they always display as-is).

Selection algorithm
-------------------
:func:`select_next` lists the locked letter indices in ascending order and
draws one with :class:`random.Random` (Mersenne Twister) seeded with
``(seed + len(unlocked)) mod 2**64``, using ``randrange(len(candidates))``
(inclusive ``0``, exclusive ``len(candidates)``).  Consequences:

- Asking twice about the same state returns the same index.
- Each reveal changes the unlocked count and therefore the stream, so the
  next draw is different but still reproducible.
- The order is stable for one Python runtime; reproducing it bit-for-bit in
  another language would require reimplementing MT19937 seeding and
  ``randrange``, which is out of scope.

Seeds come from :func:`derive_seed`, a SHA-256 fold of the stable player
identity and the enchantment id, so two players (or two enchantments) decode
in different orders.
"""

from __future__ import annotations

import hashlib
import random
import uuid
from collections.abc import Collection, Iterable

_SEED_MASK = (1 << 64) - 1


def count_letters(text: str | None) -> int:
    """Return how many alphabetic characters *text* contains."""
    if not text:
        return 0
    return sum(1 for ch in text if ch.isalpha())


def select_next(text: str, unlocked: Collection[int], seed: int) -> int | None:
    """Pick the next letter index to reveal.

    Args:
        text:     Display name being decoded.
        unlocked: Letter indices already revealed.
        seed:     64-bit seed from :func:`derive_seed`.

    Returns:
        A locked letter index, or ``None`` when every letter is revealed.
    """
    unlocked_set = set(unlocked)
    candidates = [i for i in range(count_letters(text)) if i not in unlocked_set]
    if not candidates:
        return None

    rng = random.Random((seed + len(unlocked_set)) & _SEED_MASK)
    return candidates[rng.randrange(len(candidates))]


def derive_seed(player_id: uuid.UUID, enchantment_id: str) -> int:
    """Return a stable 64-bit seed for one player decoding one enchantment."""
    digest = hashlib.sha256(f"{player_id}|{enchantment_id}".encode()).digest()
    return int.from_bytes(digest[:8], "big")


def letter_at(text: str, letter_index: int) -> str:
    """Return the character at *letter_index* counting letters only, or ``"?"``."""
    current = 0
    for ch in text:
        if ch.isalpha():
            if current == letter_index:
                return ch
            current += 1
    return "?"


def unlock_progress(text: str, unlocked: Collection[int]) -> float:
    """Return the revealed fraction of *text* in ``[0.0, 1.0]``.

    A name without letters counts as fully revealed.
    """
    total = count_letters(text)
    if total == 0:
        return 1.0
    return min(1.0, len(set(unlocked)) / total)


def is_fully_unlocked(text: str, unlocked: Collection[int]) -> bool:
    return len(set(unlocked)) >= count_letters(text)


def decoded_segments(text: str, unlocked: Iterable[int]) -> list[tuple[str, bool]]:
    """Project *text* into ``(character, revealed)`` pairs.

    Non-letters are always revealed; a letter is revealed when its letter
    index is in *unlocked*.  This carries no engine state and is meant for
    renderers (tooltips, GUIs) to style each character.
    """
    revealed = set(unlocked)
    segments: list[tuple[str, bool]] = []
    letter_index = 0
    for ch in text:
        if ch.isalpha():
            segments.append((ch, letter_index in revealed))
            letter_index += 1
        else:
            segments.append((ch, True))
    return segments

"""Per-player mastery state.

:class:`MasteryLedger` is the authoritative record of one player's
progression.  It owns four pieces of state:

- mastery level per enchantment (present only while > 0),
- mastery XP per enchantment (present only while > 0),
- unlocked letter indices per enchantment (present only while non-empty),
- total currency levels ever spent (monotonic, reset by admin command only).

The ledger performs no validation against the enchantment registry; it does
not know display names or level caps.  The transaction layer
(:mod:`enchant_mastery.progression.engine`) is the only code that mutates it
during play.

Tree format
-----------
:meth:`MasteryLedger.to_tree` and :meth:`MasteryLedger.from_tree` use an
ordered key-value tree (JSON-compatible)::

    {
      "mastery_levels":     [{"id": "minecraft:sharpness", "level": 3}, ...],
      "mastery_xp":         [{"id": "minecraft:sharpness", "xp": 14}, ...],
      "unlocked_letters":   [{"id": "minecraft:sharpness", "indices": [0, 4]}, ...],
      "total_levels_spent": 57
    }

Entries are written in sorted id order so two equal ledgers always produce
byte-identical JSON.
"""

from __future__ import annotations

import logging
from typing import Any

from enchant_mastery.state.ids import parse_enchantment_id

logger = logging.getLogger(__name__)


class MasteryLedger:
    """Mutable progression state for a single player.

    Negative amounts passed to the ``add_*`` methods are programming errors
    and raise :exc:`ValueError`; the ``set_*`` methods treat values ``<= 0``
    as "clear this entry".
    """

    def __init__(self) -> None:
        self._levels: dict[str, int] = {}
        self._xp: dict[str, int] = {}
        self._letters: dict[str, set[int]] = {}
        self._total_levels_spent: int = 0

    # ------------------------------------------------------------------
    # Mastery levels
    # ------------------------------------------------------------------

    def mastery_level(self, enchantment_id: str) -> int:
        return self._levels.get(enchantment_id, 0)

    def set_mastery_level(self, enchantment_id: str, level: int) -> None:
        """Set the mastery level; ``level <= 0`` removes the entry."""
        if level <= 0:
            self._levels.pop(enchantment_id, None)
        else:
            self._levels[enchantment_id] = level

    def has_mastery(self, enchantment_id: str) -> bool:
        return self._levels.get(enchantment_id, 0) > 0

    def mastery_levels(self) -> dict[str, int]:
        """Return a copy of every non-zero mastery level."""
        return dict(self._levels)

    # ------------------------------------------------------------------
    # Mastery XP
    # ------------------------------------------------------------------

    def mastery_xp(self, enchantment_id: str) -> int:
        return self._xp.get(enchantment_id, 0)

    def set_mastery_xp(self, enchantment_id: str, xp: int) -> None:
        """Set banked XP; ``xp <= 0`` removes the entry."""
        if xp <= 0:
            self._xp.pop(enchantment_id, None)
        else:
            self._xp[enchantment_id] = xp

    def add_mastery_xp(self, enchantment_id: str, xp_to_add: int) -> None:
        if xp_to_add < 0:
            raise ValueError(f"add_mastery_xp: xp_to_add must be >= 0, got {xp_to_add}.")
        self.set_mastery_xp(enchantment_id, self.mastery_xp(enchantment_id) + xp_to_add)

    def all_mastery_xp(self) -> dict[str, int]:
        return dict(self._xp)

    # ------------------------------------------------------------------
    # Unlocked letters
    # ------------------------------------------------------------------

    def unlocked_letters(self, enchantment_id: str) -> frozenset[int]:
        return frozenset(self._letters.get(enchantment_id, ()))

    def add_unlocked_letter(self, enchantment_id: str, index: int) -> bool:
        """Reveal one letter index.

        Returns:
            ``True`` if the index was new, ``False`` if it was already
            revealed (the call is then a no-op).

        Raises:
            ValueError: If *index* is negative.
        """
        if index < 0:
            raise ValueError(f"add_unlocked_letter: index must be >= 0, got {index}.")
        letters = self._letters.setdefault(enchantment_id, set())
        if index in letters:
            return False
        letters.add(index)
        return True

    def set_unlocked_letters(self, enchantment_id: str, indices: set[int] | frozenset[int]) -> None:
        """Replace the revealed set; an empty set removes the entry."""
        if any(i < 0 for i in indices):
            raise ValueError("set_unlocked_letters: indices must be >= 0.")
        if indices:
            self._letters[enchantment_id] = set(indices)
        else:
            self._letters.pop(enchantment_id, None)

    def all_unlocked_letters(self) -> dict[str, frozenset[int]]:
        return {eid: frozenset(indices) for eid, indices in self._letters.items()}

    # ------------------------------------------------------------------
    # Total spend
    # ------------------------------------------------------------------

    @property
    def total_levels_spent(self) -> int:
        return self._total_levels_spent

    def add_levels_spent(self, levels: int) -> None:
        if levels < 0:
            raise ValueError(f"add_levels_spent: levels must be >= 0, got {levels}.")
        self._total_levels_spent += levels

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Clear every field, including the total spend counter."""
        self._levels.clear()
        self._xp.clear()
        self._letters.clear()
        self._total_levels_spent = 0

    def copy_from(self, other: MasteryLedger) -> None:
        """Replace this ledger's state wholesale with a deep copy of *other*."""
        self._levels = dict(other._levels)
        self._xp = dict(other._xp)
        self._letters = {eid: set(indices) for eid, indices in other._letters.items()}
        self._total_levels_spent = other._total_levels_spent

    def copy(self) -> MasteryLedger:
        clone = MasteryLedger()
        clone.copy_from(self)
        return clone

    def is_empty(self) -> bool:
        return not (self._levels or self._xp or self._letters or self._total_levels_spent)

    # ------------------------------------------------------------------
    # Tree serialization
    # ------------------------------------------------------------------

    def to_tree(self) -> dict[str, Any]:
        """Serialize to the ordered key-value tree described in the module docstring."""
        return {
            "mastery_levels": [
                {"id": eid, "level": level} for eid, level in sorted(self._levels.items())
            ],
            "mastery_xp": [{"id": eid, "xp": xp} for eid, xp in sorted(self._xp.items())],
            "unlocked_letters": [
                {"id": eid, "indices": sorted(indices)}
                for eid, indices in sorted(self._letters.items())
            ],
            "total_levels_spent": self._total_levels_spent,
        }

    @classmethod
    def from_tree(cls, tree: Any) -> MasteryLedger:
        """Build a ledger from a tree, skipping malformed entries one by one.

        A foreign or partially corrupt tree never aborts the load: each entry
        with an unparseable id, a non-integer value, or a non-positive level/XP
        is dropped with a WARNING and the rest is kept.
        """
        ledger = cls()
        if not isinstance(tree, dict):
            logger.warning("Mastery tree is not a mapping (%s); loading empty ledger.", type(tree))
            return ledger

        for entry in _entries(tree, "mastery_levels"):
            eid = parse_enchantment_id(entry.get("id"))
            level = _positive_int(entry.get("level"))
            if eid is None or level is None:
                logger.warning("Skipping malformed mastery_levels entry: %r", entry)
                continue
            ledger._levels[eid] = level

        for entry in _entries(tree, "mastery_xp"):
            eid = parse_enchantment_id(entry.get("id"))
            xp = _positive_int(entry.get("xp"))
            if eid is None or xp is None:
                logger.warning("Skipping malformed mastery_xp entry: %r", entry)
                continue
            ledger._xp[eid] = xp

        for entry in _entries(tree, "unlocked_letters"):
            eid = parse_enchantment_id(entry.get("id"))
            raw_indices = entry.get("indices")
            if eid is None or not isinstance(raw_indices, list):
                logger.warning("Skipping malformed unlocked_letters entry: %r", entry)
                continue
            indices = {
                i for i in raw_indices if isinstance(i, int) and not isinstance(i, bool) and i >= 0
            }
            if len(indices) != len(raw_indices):
                logger.warning("Dropped invalid letter indices for %s: %r", eid, raw_indices)
            if indices:
                ledger._letters[eid] = indices

        total = tree.get("total_levels_spent", 0)
        if isinstance(total, int) and not isinstance(total, bool) and total >= 0:
            ledger._total_levels_spent = total
        else:
            logger.warning("Ignoring invalid total_levels_spent: %r", total)

        return ledger

    # ------------------------------------------------------------------
    # Dunder
    # ------------------------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MasteryLedger):
            return NotImplemented
        return (
            self._levels == other._levels
            and self._xp == other._xp
            and self._letters == other._letters
            and self._total_levels_spent == other._total_levels_spent
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        letters = {eid: sorted(indices) for eid, indices in self._letters.items()}
        return (
            f"MasteryLedger(levels={self._levels!r}, xp={self._xp!r}, "
            f"letters={letters!r}, total_levels_spent={self._total_levels_spent})"
        )


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------


def _entries(tree: dict, key: str) -> list[dict]:
    raw = tree.get(key, [])
    if not isinstance(raw, list):
        logger.warning("Mastery tree field %r is not a list; ignoring it.", key)
        return []
    return [entry if isinstance(entry, dict) else {"_raw": entry} for entry in raw]


def _positive_int(value: object) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        return None
    return value

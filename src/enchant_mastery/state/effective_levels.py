"""Effective enchantment levels recorded on items.

The host clamps an item's visible enchantment level to the enchantment's
normal maximum.  When a player applies a mastery level above that cap, the
full level is kept in an :class:`EffectiveLevelRecord` attached to the item so
tooltips and gameplay hooks can recover it.  The record is sparse: only
enchantments whose true level exceeds the visible one appear in it.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

from enchant_mastery.state.ids import parse_enchantment_id

if TYPE_CHECKING:
    from enchant_mastery.host.interfaces import TargetItem


@dataclass(frozen=True)
class EffectiveLevelRecord:
    """Immutable sparse map ``enchantment id -> effective level``.

    Every stored level is positive.  Mutators return a new record.
    """

    levels: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        cleaned = {eid: level for eid, level in self.levels.items() if level > 0}
        object.__setattr__(self, "levels", MappingProxyType(cleaned))

    def level(self, enchantment_id: str) -> int:
        return self.levels.get(enchantment_id, 0)

    def has_level(self, enchantment_id: str) -> bool:
        return self.levels.get(enchantment_id, 0) > 0

    def with_level(self, enchantment_id: str, level: int) -> EffectiveLevelRecord:
        """Return a copy with *enchantment_id* set to *level* (``<= 0`` removes it)."""
        updated = dict(self.levels)
        if level <= 0:
            updated.pop(enchantment_id, None)
        else:
            updated[enchantment_id] = level
        return EffectiveLevelRecord(updated)

    def without_level(self, enchantment_id: str) -> EffectiveLevelRecord:
        if enchantment_id not in self.levels:
            return self
        updated = dict(self.levels)
        del updated[enchantment_id]
        return EffectiveLevelRecord(updated)

    @property
    def is_empty(self) -> bool:
        return not self.levels

    def to_dict(self) -> dict[str, int]:
        return dict(sorted(self.levels.items()))

    @classmethod
    def from_dict(cls, raw: Mapping[object, object]) -> EffectiveLevelRecord:
        """Build a record from persisted data, dropping invalid ids and levels."""
        levels: dict[str, int] = {}
        for key, value in raw.items():
            eid = parse_enchantment_id(key)
            if eid is None or isinstance(value, bool) or not isinstance(value, int):
                continue
            levels[eid] = value
        return cls(levels)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EffectiveLevelRecord):
            return NotImplemented
        return dict(self.levels) == dict(other.levels)

    def __hash__(self) -> int:
        return hash(frozenset(self.levels.items()))


EMPTY_RECORD = EffectiveLevelRecord()


def effective_level(item: TargetItem, enchantment_id: str) -> int:
    """Return the true level of *enchantment_id* on *item*.

    The effective record wins when it holds a level; otherwise the visible
    (host-capped) level is returned.
    """
    recorded = item.effective_levels.level(enchantment_id)
    if recorded > 0:
        return recorded
    return item.enchantments().get(enchantment_id, 0)


def all_effective_levels(item: TargetItem) -> dict[str, int]:
    """Return every enchantment on *item* at its effective level."""
    result = dict(item.enchantments())
    for eid, level in item.effective_levels.levels.items():
        result[eid] = level
    return result

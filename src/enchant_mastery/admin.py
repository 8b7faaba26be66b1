"""Operator commands for inspecting and overriding mastery.

These bypass the progression rules on purpose: they exist for debugging,
support tickets and test worlds.  Every mutating command still runs under the
player lock, is audited as ``mastery.admin_override`` and pushes a snapshot
to the player's mirror.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from enchant_mastery.progression.curves import xp_threshold
from enchant_mastery.progression.engine import MasteryEngine
from enchant_mastery.state.ids import parse_enchantment_id

logger = logging.getLogger(__name__)

#: Inclusive bounds accepted by :func:`set_mastery`.
MIN_ADMIN_LEVEL = 0
MAX_ADMIN_LEVEL = 1000


@dataclass(frozen=True)
class MasteryStats:
    """Summary returned by :func:`mastery_stats`.

    Attributes:
        enchantments_learned: Enchantments with a mastery level above 0.
        total_levels_spent:   Lifetime currency spent.
        combined_mastery:     Sum of all mastery levels.
    """

    enchantments_learned: int
    total_levels_spent: int
    combined_mastery: int


def list_mastery(engine: MasteryEngine, player_id: uuid.UUID) -> list[tuple[str, int]]:
    """Return ``(enchantment_id, level)`` for every learned enchantment, sorted by id."""
    return sorted(engine.store.get(player_id).mastery_levels().items())


def set_mastery(
    engine: MasteryEngine, player_id: uuid.UUID, enchantment_id: str, level: int
) -> str:
    """Set a mastery level directly.  ``0`` clears the enchantment.

    Unlocked letters are left alone.  Banked XP is kept when the level rises;
    lowering the level caps it at ``xp_threshold(level) - 1``.

    Returns:
        The canonical enchantment id that was set.

    Raises:
        ValueError: On an invalid id or a level outside ``0..1000``.
    """
    eid = parse_enchantment_id(enchantment_id)
    if eid is None:
        raise ValueError(f"Invalid enchantment id {enchantment_id!r}.")
    if not MIN_ADMIN_LEVEL <= level <= MAX_ADMIN_LEVEL:
        raise ValueError(
            f"Level must be between {MIN_ADMIN_LEVEL} and {MAX_ADMIN_LEVEL}, got {level}."
        )

    with engine.locked_ledger(player_id) as ledger:
        if level < ledger.mastery_level(eid):
            ceiling = xp_threshold(level, curves=engine.policy.curves) - 1
            ledger.set_mastery_xp(eid, min(ledger.mastery_xp(eid), ceiling))
        ledger.set_mastery_level(eid, level)
    engine.record_override(player_id, "set", enchantment_id=eid, level=level)
    logger.info("Admin set %s mastery of %s to %d", eid, player_id, level)
    return eid


def reset_mastery(engine: MasteryEngine, player_id: uuid.UUID) -> None:
    """Clear every level, XP entry, unlocked letter and the total spend."""
    with engine.locked_ledger(player_id) as ledger:
        ledger.reset()
    engine.record_override(player_id, "reset")
    logger.info("Admin reset mastery of %s", player_id)


def mastery_stats(engine: MasteryEngine, player_id: uuid.UUID) -> MasteryStats:
    ledger = engine.store.get(player_id)
    levels = ledger.mastery_levels()
    return MasteryStats(
        enchantments_learned=len(levels),
        total_levels_spent=ledger.total_levels_spent,
        combined_mastery=sum(levels.values()),
    )

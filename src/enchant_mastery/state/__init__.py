"""Per-player and per-item progression state."""

from enchant_mastery.state.effective_levels import (
    EffectiveLevelRecord,
    all_effective_levels,
    effective_level,
)
from enchant_mastery.state.ids import parse_enchantment_id
from enchant_mastery.state.ledger import MasteryLedger
from enchant_mastery.state.store import LedgerStore

__all__ = [
    "EffectiveLevelRecord",
    "LedgerStore",
    "MasteryLedger",
    "all_effective_levels",
    "effective_level",
    "parse_enchantment_id",
]

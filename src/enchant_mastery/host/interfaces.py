"""Collaborator contracts between the engine and the host game.

The engine never reaches into host globals.  Everything it needs from the
host (enchantment metadata, the player's currency, the items involved in a
transaction) is passed in through these structural protocols.  Any object
with the right methods qualifies; :mod:`enchant_mastery.host.memory` ships
in-memory implementations used by the CLI and the tests.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from typing import Protocol, runtime_checkable

from enchant_mastery.state.effective_levels import EffectiveLevelRecord


@runtime_checkable
class EnchantmentRegistry(Protocol):
    """Read-only enchantment metadata supplied by the host."""

    def knows(self, enchantment_id: str) -> bool:
        """Return ``True`` if *enchantment_id* is registered."""
        ...

    def max_level(self, enchantment_id: str) -> int:
        """Return the host's normal level cap for *enchantment_id*."""
        ...

    def min_level(self, enchantment_id: str) -> int: ...

    def can_enchant(self, item: TargetItem, enchantment_id: str) -> bool:
        """Return ``True`` if *enchantment_id* may be put on *item*."""
        ...

    def are_compatible(self, first: str, second: str) -> bool:
        """Return ``True`` if the two enchantments may coexist on one item."""
        ...

    def display_name(self, enchantment_id: str) -> str:
        """Return the human-readable name that the decode cascade reveals."""
        ...


@runtime_checkable
class CurrencyAccount(Protocol):
    """The host's spendable currency ("experience levels")."""

    def balance(self, player_id: uuid.UUID) -> int: ...

    def deduct(self, player_id: uuid.UUID, amount: int) -> None: ...

    def notify(self, player_id: uuid.UUID, message: str) -> None:
        """Show *message* to the player (chat line, action bar, toast)."""
        ...


class SourceItem(Protocol):
    """An item presented for absorption, typically an enchanted book."""

    def is_empty(self) -> bool: ...

    def stored_enchantments(self) -> Mapping[str, int]:
        """Return the enchantments stored on the item as ``id -> level``."""
        ...

    def consume_one(self) -> None:
        """Remove one unit from the stack.  Only called on a non-empty stack."""
        ...


class TargetItem(Protocol):
    """An item receiving an enchantment through an apply."""

    effective_levels: EffectiveLevelRecord

    def is_empty(self) -> bool: ...

    def enchantments(self) -> Mapping[str, int]:
        """Return the visible (host-capped) enchantments as ``id -> level``."""
        ...

    def set_enchantment(self, enchantment_id: str, level: int) -> None: ...


class SnapshotTransport(Protocol):
    """Delivers serialized ledger snapshots to a player's mirror."""

    def send(self, player_id: uuid.UUID, payload: bytes) -> None: ...

"""In-memory host collaborators.

These are what the CLI runs against and what the tests inject:

- :class:`Item`: a stack with visible and stored enchantments.
- :class:`EnchantmentCatalog`: :class:`~enchant_mastery.host.interfaces.EnchantmentRegistry`
  loaded from ``data/catalog/enchantments.yaml``.
- :class:`Wallet`: :class:`~enchant_mastery.host.interfaces.CurrencyAccount`
  backed by a dict, recording every notification.

Catalog YAML format::

    version: "1.0"
    enchantments:
      - id: minecraft:sharpness
        name: Sharpness
        max_level: 5
        targets: [sword, axe]
        exclusive_group: damage     # optional; members of a group conflict
        incompatible: []            # optional; explicit pairwise conflicts
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from enchant_mastery.state.effective_levels import EMPTY_RECORD, EffectiveLevelRecord
from enchant_mastery.state.ids import parse_enchantment_id

logger = logging.getLogger(__name__)

#: Item kind that accepts every enchantment.
BOOK_KIND = "book"


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


@dataclass
class Item:
    """A mutable item stack.

    Attributes:
        kind:                Item kind matched against catalog ``targets``,
                             e.g. ``"sword"`` or ``"book"``.
        count:               Stack size.  ``0`` means the slot is empty.
        visible:             Enchantments as the host sees them (capped).
        stored:              Enchantments stored on a book for absorption.
        effective_levels:    Levels above the host cap.
    """

    kind: str
    count: int = 1
    visible: dict[str, int] = field(default_factory=dict)
    stored: dict[str, int] = field(default_factory=dict)
    effective_levels: EffectiveLevelRecord = EMPTY_RECORD

    @classmethod
    def book(cls, enchantment_id: str, level: int, *, count: int = 1) -> Item:
        """Return an enchanted book storing a single enchantment."""
        return cls(kind=BOOK_KIND, count=count, stored={enchantment_id: level})

    def is_empty(self) -> bool:
        return self.count <= 0

    def stored_enchantments(self) -> Mapping[str, int]:
        return dict(self.stored)

    def enchantments(self) -> Mapping[str, int]:
        return dict(self.visible)

    def set_enchantment(self, enchantment_id: str, level: int) -> None:
        if level <= 0:
            self.visible.pop(enchantment_id, None)
        else:
            self.visible[enchantment_id] = level

    def consume_one(self) -> None:
        if self.count <= 0:
            raise ValueError(f"consume_one: {self.kind!r} stack is already empty.")
        self.count -= 1

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "count": self.count,
            "enchantments": dict(sorted(self.visible.items())),
            "stored": dict(sorted(self.stored.items())),
            "effective_levels": self.effective_levels.to_dict(),
        }


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EnchantmentDefinition:
    """One catalog entry."""

    enchantment_id: str
    name: str
    max_level: int
    min_level: int = 1
    targets: frozenset[str] = frozenset()
    exclusive_group: str | None = None
    incompatible: frozenset[str] = frozenset()


class EnchantmentCatalog:
    """Registry of enchantment definitions keyed by id.

    Two different enchantments are incompatible when they share an
    ``exclusive_group`` or when either lists the other as ``incompatible``.
    An enchantment is always compatible with itself.
    """

    def __init__(self, definitions: Iterable[EnchantmentDefinition] = ()) -> None:
        self._definitions: dict[str, EnchantmentDefinition] = {}
        for definition in definitions:
            self.register(definition)

    def register(self, definition: EnchantmentDefinition) -> None:
        self._definitions[definition.enchantment_id] = definition

    def definition(self, enchantment_id: str) -> EnchantmentDefinition:
        """Return the definition of *enchantment_id*.

        Raises:
            KeyError: If the id is not registered.
        """
        try:
            return self._definitions[enchantment_id]
        except KeyError:
            raise KeyError(f"Unknown enchantment {enchantment_id!r}.") from None

    def ids(self) -> list[str]:
        return sorted(self._definitions)

    # -- EnchantmentRegistry ------------------------------------------------

    def knows(self, enchantment_id: str) -> bool:
        return enchantment_id in self._definitions

    def max_level(self, enchantment_id: str) -> int:
        return self.definition(enchantment_id).max_level

    def min_level(self, enchantment_id: str) -> int:
        return self.definition(enchantment_id).min_level

    def can_enchant(self, item: Item, enchantment_id: str) -> bool:
        if not self.knows(enchantment_id):
            return False
        if item.kind == BOOK_KIND:
            return True
        return item.kind in self.definition(enchantment_id).targets

    def are_compatible(self, first: str, second: str) -> bool:
        if first == second:
            return True
        a = self._definitions.get(first)
        b = self._definitions.get(second)
        if a is None or b is None:
            return True
        if a.exclusive_group is not None and a.exclusive_group == b.exclusive_group:
            return False
        return second not in a.incompatible and first not in b.incompatible

    def display_name(self, enchantment_id: str) -> str:
        return self.definition(enchantment_id).name


def load_catalog(path: Path) -> EnchantmentCatalog:
    """Load an :class:`EnchantmentCatalog` from YAML.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValueError:        On a malformed document or entry.
    """
    if not path.exists():
        raise FileNotFoundError(f"Enchantment catalog not found: {path}")

    with path.open() as fh:
        raw = yaml.safe_load(fh)

    if not isinstance(raw, dict) or not isinstance(raw.get("enchantments"), list):
        raise ValueError(f"{path.name}: expected a mapping with an 'enchantments' list.")

    catalog = EnchantmentCatalog()
    for position, entry in enumerate(raw["enchantments"]):
        catalog.register(_parse_definition(entry, position))

    logger.info("Loaded %d enchantments from %s", len(catalog.ids()), path)
    return catalog


def _parse_definition(entry: object, position: int) -> EnchantmentDefinition:
    if not isinstance(entry, dict):
        raise ValueError(f"enchantments[{position}] must be a mapping.")

    eid = parse_enchantment_id(entry.get("id"))
    if eid is None:
        raise ValueError(f"enchantments[{position}]: invalid id {entry.get('id')!r}.")

    name = entry.get("name")
    if not isinstance(name, str) or not name:
        raise ValueError(f"{eid}: 'name' must be a non-empty string.")

    max_level = entry.get("max_level")
    min_level = entry.get("min_level", 1)
    for label, value in (("max_level", max_level), ("min_level", min_level)):
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ValueError(f"{eid}: '{label}' must be a positive integer, got {value!r}.")
    if min_level > max_level:
        raise ValueError(f"{eid}: min_level {min_level} exceeds max_level {max_level}.")

    incompatible = set()
    for other in entry.get("incompatible", []) or []:
        other_id = parse_enchantment_id(other)
        if other_id is None:
            raise ValueError(f"{eid}: invalid incompatible id {other!r}.")
        incompatible.add(other_id)

    return EnchantmentDefinition(
        enchantment_id=eid,
        name=name,
        max_level=max_level,
        min_level=min_level,
        targets=frozenset(str(t) for t in entry.get("targets", []) or []),
        exclusive_group=entry.get("exclusive_group"),
        incompatible=frozenset(incompatible),
    )


# ---------------------------------------------------------------------------
# Currency
# ---------------------------------------------------------------------------


class Wallet:
    """Dict-backed currency account.  Unknown players have a balance of 0."""

    def __init__(self, balances: Mapping[uuid.UUID, int] | None = None) -> None:
        self._balances: dict[uuid.UUID, int] = dict(balances or {})
        self.notifications: dict[uuid.UUID, list[str]] = {}

    def balance(self, player_id: uuid.UUID) -> int:
        return self._balances.get(player_id, 0)

    def set_balance(self, player_id: uuid.UUID, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"set_balance: amount must be >= 0, got {amount}.")
        self._balances[player_id] = amount

    def deduct(self, player_id: uuid.UUID, amount: int) -> None:
        """Remove *amount* from the balance.

        Raises:
            ValueError: If *amount* is negative or exceeds the balance.
        """
        current = self.balance(player_id)
        if amount < 0 or amount > current:
            raise ValueError(f"deduct: cannot take {amount} from a balance of {current}.")
        self._balances[player_id] = current - amount

    def notify(self, player_id: uuid.UUID, message: str) -> None:
        self.notifications.setdefault(player_id, []).append(message)
        logger.debug("notify %s: %s", player_id, message)

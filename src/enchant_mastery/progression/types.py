"""Immutable result types for mastery transactions.

A transaction either commits fully or is rejected without touching anything.
Rejections are values, not exceptions: each :class:`Rejection` subclass names
one reason and carries the numbers needed to explain it to the player.  The
set of subclasses is closed; callers can ``match`` on them exhaustively.

Each rejection also exposes a dotted ``key`` (e.g. ``"absorb.level_too_high"``)
so a host can look up a localized string instead of using :attr:`message`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar

# ---------------------------------------------------------------------------
# Rejections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Rejection:
    """Base class of every transaction rejection."""

    key: ClassVar[str] = "rejected"

    @property
    def reason(self) -> str:
        """Class name of the rejection, e.g. ``"MasteryTooLow"``."""
        return type(self).__name__

    @property
    def message(self) -> str:
        return "The action was rejected."


@dataclass(frozen=True)
class NoEnchantment(Rejection):
    key: ClassVar[str] = "absorb.no_enchantment"

    @property
    def message(self) -> str:
        return "This book has no enchantment to absorb."


@dataclass(frozen=True)
class MultipleEnchantments(Rejection):
    key: ClassVar[str] = "absorb.multiple_enchantments"
    count: int = 2

    @property
    def message(self) -> str:
        return f"This book holds {self.count} enchantments; only single-enchantment books can be absorbed."


@dataclass(frozen=True)
class UnknownEnchantment(Rejection):
    key: ClassVar[str] = "unknown_enchantment"
    enchantment_id: str = ""

    @property
    def message(self) -> str:
        return f"Unknown enchantment {self.enchantment_id!r}."


@dataclass(frozen=True)
class ProgressionGapTooLarge(Rejection):
    """The book skips a level.  Levels must be absorbed one at a time."""

    key: ClassVar[str] = "absorb.level_too_high"
    book_level: int = 0
    next_level: int = 1

    @property
    def message(self) -> str:
        return f"You must learn level {self.next_level} before level {self.book_level}."


@dataclass(frozen=True)
class AlreadyLearned(Rejection):
    key: ClassVar[str] = "absorb.already_learned"
    book_level: int = 0
    mastery_level: int = 0

    @property
    def message(self) -> str:
        return f"You already know level {self.book_level} (mastery {self.mastery_level})."


@dataclass(frozen=True)
class InsufficientCurrency(Rejection):
    key: ClassVar[str] = "not_enough_xp"
    required: int = 0
    available: int = 0

    @property
    def message(self) -> str:
        return f"Requires {self.required} levels, you have {self.available}."


@dataclass(frozen=True)
class MasteryTooLow(Rejection):
    key: ClassVar[str] = "apply.mastery_too_low"
    required: int = 0
    current: int = 0

    @property
    def message(self) -> str:
        return f"Requires mastery {self.required}, you have {self.current}."


@dataclass(frozen=True)
class ItemIncompatible(Rejection):
    key: ClassVar[str] = "apply.incompatible_item"
    enchantment_id: str = ""

    @property
    def message(self) -> str:
        return f"{self.enchantment_id} cannot be applied to this item."


@dataclass(frozen=True)
class EnchantmentConflict(Rejection):
    key: ClassVar[str] = "apply.conflict"
    enchantment_id: str = ""
    conflicts_with: str = ""

    @property
    def message(self) -> str:
        return f"{self.enchantment_id} conflicts with {self.conflicts_with} on this item."


@dataclass(frozen=True)
class NoSelection(Rejection):
    """Apply was called without an enchantment, a positive level or an item."""

    key: ClassVar[str] = "apply.no_selection"

    @property
    def message(self) -> str:
        return "Select an enchantment, a level and an item first."


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LetterUnlock:
    """One letter revealed by the decode cascade.

    Attributes:
        index:  Letter index within the display name (letters only).
        letter: The revealed character.
        cost:   Budget consumed by this unlock.
    """

    index: int
    letter: str
    cost: int


@dataclass(frozen=True)
class DecodeOutcome:
    """Result of one decode cascade.

    Attributes:
        unlocks:         Letters revealed, in reveal order.
        budget:          Levels spent by the triggering transaction.
        budget_used:     Sum of the unlock costs.
        fully_decoded:   Every letter of the name is now revealed.
    """

    unlocks: tuple[LetterUnlock, ...] = ()
    budget: int = 0
    budget_used: int = 0
    fully_decoded: bool = False

    @property
    def indices(self) -> list[int]:
        return [unlock.index for unlock in self.unlocks]


@dataclass(frozen=True)
class AbsorbResult:
    """Outcome of :meth:`~enchant_mastery.progression.engine.MasteryEngine.try_absorb`.

    On rejection only ``rejection`` is meaningful.
    """

    rejection: Rejection | None = None
    enchantment_id: str | None = None
    new_level: int = 0
    cost: int = 0
    decode: DecodeOutcome = field(default_factory=DecodeOutcome)

    @property
    def ok(self) -> bool:
        return self.rejection is None


@dataclass(frozen=True)
class ApplyResult:
    """Outcome of :meth:`~enchant_mastery.progression.engine.MasteryEngine.try_select_and_apply`.

    Attributes:
        visible_level:  Level written on the item, capped at the host max.
        target_level:   Level the player paid for; recorded as the effective
                        level when it exceeds ``visible_level``.
        xp_gained:      Mastery XP granted by the cost.
        old_mastery / new_mastery: Mastery level before and after level-ups.
    """

    rejection: Rejection | None = None
    enchantment_id: str | None = None
    target_level: int = 0
    visible_level: int = 0
    cost: int = 0
    xp_gained: int = 0
    old_mastery: int = 0
    new_mastery: int = 0
    decode: DecodeOutcome = field(default_factory=DecodeOutcome)

    @property
    def ok(self) -> bool:
        return self.rejection is None

    @property
    def leveled_up(self) -> bool:
        return self.new_mastery > self.old_mastery


@dataclass(frozen=True)
class EnchanterEntry:
    """One row of the enchanter listing.

    Attributes:
        enchantment_id: Mastered enchantment.
        mastery_level:  Highest level the player may apply.
        applicable:     The item accepts it and nothing on the item conflicts.
        has_conflict:   Something already on the item conflicts with it.
    """

    enchantment_id: str
    mastery_level: int
    applicable: bool
    has_conflict: bool

"""Tests for MasteryEngine.try_absorb.

Absorbing a single-enchantment book raises mastery to the book level, costs
``absorb_cost(level)`` and feeds that cost into the decode cascade.  Every
rejection leaves the ledger, the wallet and the book untouched.
"""

from __future__ import annotations

import uuid

import pytest

from enchant_mastery.audit import read_events
from enchant_mastery.core.events import Events
from enchant_mastery.host.memory import Item, Wallet
from enchant_mastery.progression.engine import MasteryEngine
from enchant_mastery.progression.types import (
    AlreadyLearned,
    InsufficientCurrency,
    MultipleEnchantments,
    NoEnchantment,
    ProgressionGapTooLarge,
    UnknownEnchantment,
)
from enchant_mastery.state.store import LedgerStore
from tests.constants import SHARPNESS, SMITE


def _assert_untouched(engine: MasteryEngine, player_id: uuid.UUID) -> None:
    ledger = engine.store.get(player_id)
    assert ledger.is_empty(), f"Ledger must be untouched, got {ledger!r}"


# ── Successful absorb ─────────────────────────────────────────────────────────


@pytest.mark.unit
class TestAbsorbCommit:
    """The canonical Sharpness I scenario: balance 10, cost 5, three letters."""

    def test_sharpness_one_from_scratch(self, engine, wallet, player_id) -> None:
        wallet.set_balance(player_id, 10)
        book = Item.book(SHARPNESS, 1)

        result = engine.try_absorb(player_id, book)

        assert result.ok
        assert result.enchantment_id == SHARPNESS
        assert result.new_level == 1
        assert result.cost == 5
        assert wallet.balance(player_id) == 5

        ledger = engine.store.get(player_id)
        assert ledger.mastery_level(SHARPNESS) == 1
        assert ledger.total_levels_spent == 5

    def test_cascade_spends_budget_on_three_letters(self, engine, wallet, player_id) -> None:
        """Budget 5 buys letters costing 1, 2 and 2; the cap of 3 is reached."""
        wallet.set_balance(player_id, 10)

        result = engine.try_absorb(player_id, Item.book(SHARPNESS, 1))

        decode = result.decode
        assert [unlock.cost for unlock in decode.unlocks] == [1, 2, 2]
        assert decode.budget == 5
        assert decode.budget_used == 5
        assert not decode.fully_decoded
        assert len(set(decode.indices)) == 3
        assert engine.store.get(player_id).unlocked_letters(SHARPNESS) == frozenset(decode.indices)
        for unlock in decode.unlocks:
            assert unlock.letter == "Sharpness"[unlock.index]

    def test_book_is_consumed(self, engine, wallet, player_id) -> None:
        wallet.set_balance(player_id, 10)
        book = Item.book(SHARPNESS, 1, count=2)

        engine.try_absorb(player_id, book)

        assert book.count == 1

    def test_bare_id_on_book_is_normalised(self, engine, wallet, player_id) -> None:
        wallet.set_balance(player_id, 10)

        result = engine.try_absorb(player_id, Item.book("sharpness", 1))

        assert result.ok
        assert result.enchantment_id == SHARPNESS

    def test_next_level_after_first(self, engine, wallet, player_id) -> None:
        wallet.set_balance(player_id, 100)
        engine.try_absorb(player_id, Item.book(SHARPNESS, 1))

        result = engine.try_absorb(player_id, Item.book(SHARPNESS, 2))

        assert result.ok
        assert result.cost == 12
        assert wallet.balance(player_id) == 100 - 5 - 12
        assert engine.store.get(player_id).total_levels_spent == 17

    def test_same_player_decodes_in_same_order(self, catalog, wallet, test_bus, player_id) -> None:
        """Letter order depends only on the player, the enchantment and the state."""
        orders = []
        for _ in range(2):
            wallet.set_balance(player_id, 10)
            fresh = MasteryEngine(
                store=LedgerStore(), registry=catalog, currency=wallet, bus=test_bus, audit_enabled=False
            )
            orders.append(fresh.try_absorb(player_id, Item.book(SHARPNESS, 1)).decode.indices)

        assert orders[0] == orders[1]


# ── Announcements ─────────────────────────────────────────────────────────────


@pytest.mark.unit
class TestAbsorbAnnouncements:
    def test_emits_absorbed_then_unlocks(self, engine, wallet, test_bus, player_id) -> None:
        wallet.set_balance(player_id, 10)

        engine.try_absorb(player_id, Item.book(SHARPNESS, 1))

        absorbed = test_bus.events_of_type(Events.MASTERY_ABSORBED)
        assert len(absorbed) == 1
        assert absorbed[0].detail["level"] == 1
        assert absorbed[0].detail["cost"] == 5
        assert absorbed[0].detail["player_id"] == str(player_id)
        assert len(test_bus.events_of_type(Events.LETTER_UNLOCKED)) == 3
        assert absorbed[0].meta.sequence < test_bus.events_of_type(Events.LETTER_UNLOCKED)[0].meta.sequence

    def test_notifies_player(self, engine, wallet, player_id) -> None:
        wallet.set_balance(player_id, 10)

        engine.try_absorb(player_id, Item.book(SHARPNESS, 1))

        messages = wallet.notifications[player_id]
        assert messages[0] == "Absorbed Sharpness 1 for 5 levels."
        assert sum("Decoded a letter" in message for message in messages) == 3

    def test_audit_records_absorb_and_letters(self, engine, wallet, player_id) -> None:
        wallet.set_balance(player_id, 10)

        engine.try_absorb(player_id, Item.book(SHARPNESS, 1))

        types = [event["event_type"] for event in read_events()]
        assert types == ["mastery.absorbed"] + ["mastery.letter_unlocked"] * 3
        assert read_events()[0]["data"] == {"enchantment_id": SHARPNESS, "level": 1, "cost": 5}
        assert read_events()[0]["meta"] == {"policy_version": "default"}

    def test_mirror_receives_snapshot(self, engine, wallet, transport, player_id) -> None:
        mirror = transport.register(player_id)
        wallet.set_balance(player_id, 10)

        engine.try_absorb(player_id, Item.book(SHARPNESS, 1))

        assert mirror.mastery_level(SHARPNESS) == 1
        assert mirror.total_levels_spent == 5
        assert len(mirror.unlocked_letters(SHARPNESS)) == 3


# ── Rejections ────────────────────────────────────────────────────────────────


@pytest.mark.unit
class TestAbsorbRejections:
    def test_book_without_enchantment(self, engine, wallet, player_id) -> None:
        wallet.set_balance(player_id, 10)

        result = engine.try_absorb(player_id, Item(kind="book"))

        assert isinstance(result.rejection, NoEnchantment)
        _assert_untouched(engine, player_id)

    def test_empty_stack(self, engine, wallet, player_id) -> None:
        wallet.set_balance(player_id, 10)
        book = Item.book(SHARPNESS, 1, count=0)

        result = engine.try_absorb(player_id, book)

        assert isinstance(result.rejection, NoEnchantment)
        assert wallet.balance(player_id) == 10
        assert book.count == 0
        _assert_untouched(engine, player_id)

    def test_book_with_two_enchantments(self, engine, wallet, player_id) -> None:
        wallet.set_balance(player_id, 100)
        book = Item(kind="book", stored={SHARPNESS: 1, SMITE: 1})

        result = engine.try_absorb(player_id, book)

        assert result.rejection == MultipleEnchantments(count=2)
        assert book.count == 1
        _assert_untouched(engine, player_id)

    @pytest.mark.parametrize("raw_id", ["minecraft:frost_walker", "Not An Id!"])
    def test_unknown_enchantment(self, engine, wallet, player_id, raw_id: str) -> None:
        wallet.set_balance(player_id, 100)

        result = engine.try_absorb(player_id, Item.book(raw_id, 1))

        assert isinstance(result.rejection, UnknownEnchantment)
        _assert_untouched(engine, player_id)

    def test_gap_too_large(self, engine, wallet, player_id) -> None:
        """Mastery 0 cannot absorb a level III book."""
        wallet.set_balance(player_id, 100)

        result = engine.try_absorb(player_id, Item.book(SHARPNESS, 3))

        assert result.rejection == ProgressionGapTooLarge(book_level=3, next_level=1)
        assert wallet.balance(player_id) == 100
        _assert_untouched(engine, player_id)

    def test_already_learned(self, engine, wallet, player_id) -> None:
        wallet.set_balance(player_id, 100)
        engine.try_absorb(player_id, Item.book(SHARPNESS, 1))
        before = engine.store.get(player_id).copy()

        result = engine.try_absorb(player_id, Item.book(SHARPNESS, 1))

        assert result.rejection == AlreadyLearned(book_level=1, mastery_level=1)
        assert engine.store.get(player_id) == before
        assert wallet.balance(player_id) == 95

    def test_insufficient_currency(self, engine, wallet, player_id) -> None:
        wallet.set_balance(player_id, 4)
        book = Item.book(SHARPNESS, 1)

        result = engine.try_absorb(player_id, book)

        assert result.rejection == InsufficientCurrency(required=5, available=4)
        assert wallet.balance(player_id) == 4
        assert book.count == 1
        _assert_untouched(engine, player_id)

    def test_rejection_is_announced(self, engine, wallet, test_bus, player_id) -> None:
        result = engine.try_absorb(player_id, Item.book(SHARPNESS, 1))

        rejected = test_bus.events_of_type(Events.MASTERY_REJECTED)
        assert len(rejected) == 1
        assert rejected[0].detail["reason"] == "InsufficientCurrency"
        assert rejected[0].detail["action"] == "absorb"
        assert wallet.notifications[player_id] == [result.rejection.message]
        assert test_bus.events_of_type(Events.MASTERY_ABSORBED) == []
        assert read_events() == []


# ── Commit failure ────────────────────────────────────────────────────────────


class _BrittleBook(Item):
    """Refuses to leave the stack."""

    def consume_one(self) -> None:
        raise RuntimeError("stack is locked")


class _ExplodingWallet(Wallet):
    def deduct(self, player_id, amount):
        raise RuntimeError("currency service unavailable")


@pytest.mark.unit
class TestAbsorbRollback:
    def test_item_failure_restores_ledger_and_balance(
        self, engine, wallet, test_bus, player_id
    ) -> None:
        wallet.set_balance(player_id, 10)
        book = _BrittleBook.book(SHARPNESS, 1)

        with pytest.raises(RuntimeError, match="stack is locked"):
            engine.try_absorb(player_id, book)

        _assert_untouched(engine, player_id)
        assert wallet.balance(player_id) == 10
        assert test_bus.events_of_type(Events.MASTERY_ABSORBED) == []
        assert read_events() == []

    def test_currency_failure_restores_ledger(self, store, catalog, test_bus, player_id) -> None:
        wallet = _ExplodingWallet({player_id: 10})
        engine = MasteryEngine(
            store=store, registry=catalog, currency=wallet, bus=test_bus, audit_enabled=False
        )

        with pytest.raises(RuntimeError, match="currency service"):
            engine.try_absorb(player_id, Item.book(SHARPNESS, 1))

        _assert_untouched(engine, player_id)
        assert wallet.balance(player_id) == 10
        assert test_bus.events_of_type(Events.MASTERY_ABSORBED) == []

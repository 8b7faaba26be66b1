"""Tests for MasteryEngine.try_select_and_apply.

Applying costs ``apply_cost(target)``, writes ``min(target, host max)`` on the
item, records anything above the cap as an effective level, converts the cost
into mastery XP and feeds the cost into the decode cascade.
"""

from __future__ import annotations

import pytest

from enchant_mastery.audit import read_events
from enchant_mastery.core.events import Events
from enchant_mastery.host.memory import Item, Wallet
from enchant_mastery.progression.engine import MasteryEngine
from enchant_mastery.progression.types import (
    EnchantmentConflict,
    InsufficientCurrency,
    ItemIncompatible,
    MasteryTooLow,
    NoSelection,
    UnknownEnchantment,
)
from enchant_mastery.state.effective_levels import EMPTY_RECORD, effective_level
from tests.constants import INFINITY, MENDING, POWER, SHARPNESS, SMITE


def _grant(engine: MasteryEngine, player_id, enchantment_id: str, level: int) -> None:
    engine.store.get(player_id).set_mastery_level(enchantment_id, level)


# ── Successful apply ──────────────────────────────────────────────────────────


@pytest.mark.unit
class TestApplyCommit:
    def test_apply_within_cap(self, engine, wallet, player_id) -> None:
        _grant(engine, player_id, SHARPNESS, 2)
        wallet.set_balance(player_id, 30)
        sword = Item(kind="sword")

        result = engine.try_select_and_apply(player_id, sword, SHARPNESS, 2)

        assert result.ok
        assert result.cost == 9
        assert result.visible_level == 2
        assert result.target_level == 2
        assert sword.enchantments() == {SHARPNESS: 2}
        assert sword.effective_levels == EMPTY_RECORD
        assert wallet.balance(player_id) == 21
        assert engine.store.get(player_id).total_levels_spent == 9

    def test_apply_above_cap_records_effective_level(self, engine, wallet, player_id) -> None:
        """Sharpness caps at 5 on the item; the effective record keeps 6."""
        _grant(engine, player_id, SHARPNESS, 6)
        wallet.set_balance(player_id, 100)
        sword = Item(kind="sword")

        result = engine.try_select_and_apply(player_id, sword, SHARPNESS, 6)

        assert result.ok
        assert result.cost == 56
        assert result.visible_level == 5
        assert sword.enchantments() == {SHARPNESS: 5}
        assert sword.effective_levels.level(SHARPNESS) == 6
        assert effective_level(sword, SHARPNESS) == 6

    def test_reapplying_within_cap_clears_effective_level(self, engine, wallet, player_id) -> None:
        _grant(engine, player_id, SHARPNESS, 6)
        wallet.set_balance(player_id, 200)
        sword = Item(kind="sword")
        engine.try_select_and_apply(player_id, sword, SHARPNESS, 6)

        result = engine.try_select_and_apply(player_id, sword, SHARPNESS, 3)

        assert result.ok
        assert sword.enchantments() == {SHARPNESS: 3}
        assert not sword.effective_levels.has_level(SHARPNESS)
        assert effective_level(sword, SHARPNESS) == 3

    def test_xp_gain_levels_mastery_up(self, engine, wallet, test_bus, player_id) -> None:
        """Cost 4 gives 20 XP; threshold(1) is 15, so mastery 1 -> 2 with 5 banked."""
        _grant(engine, player_id, SHARPNESS, 1)
        wallet.set_balance(player_id, 10)

        result = engine.try_select_and_apply(player_id, Item(kind="sword"), SHARPNESS, 1)

        assert result.xp_gained == 20
        assert (result.old_mastery, result.new_mastery) == (1, 2)
        assert result.leveled_up
        ledger = engine.store.get(player_id)
        assert ledger.mastery_level(SHARPNESS) == 2
        assert ledger.mastery_xp(SHARPNESS) == 5

        leveled = test_bus.events_of_type(Events.MASTERY_LEVELED_UP)
        assert [(e.detail["old_level"], e.detail["new_level"]) for e in leveled] == [(1, 2)]
        assert "Sharpness mastery increased to 2!" in wallet.notifications[player_id]

    def test_large_gain_crosses_several_levels(self, engine, wallet, player_id) -> None:
        _grant(engine, player_id, SHARPNESS, 6)
        wallet.set_balance(player_id, 56)

        result = engine.try_select_and_apply(player_id, Item(kind="sword"), SHARPNESS, 6)

        assert (result.old_mastery, result.new_mastery) == (6, 8)
        assert engine.store.get(player_id).mastery_xp(SHARPNESS) == 93
        assert wallet.balance(player_id) == 0

    def test_gain_below_threshold_banks_xp(self, engine, wallet, test_bus, player_id) -> None:
        _grant(engine, player_id, SHARPNESS, 6)
        wallet.set_balance(player_id, 10)

        result = engine.try_select_and_apply(player_id, Item(kind="sword"), SHARPNESS, 1)

        assert not result.leveled_up
        assert engine.store.get(player_id).mastery_xp(SHARPNESS) == 20
        assert test_bus.events_of_type(Events.MASTERY_LEVELED_UP) == []

    def test_cascade_runs_on_apply_cost(self, engine, wallet, player_id) -> None:
        """Budget 4 from a level I apply buys letters costing 1 and 2."""
        _grant(engine, player_id, SHARPNESS, 1)
        wallet.set_balance(player_id, 10)

        result = engine.try_select_and_apply(player_id, Item(kind="sword"), SHARPNESS, 1)

        assert [u.cost for u in result.decode.unlocks] == [1, 2]
        assert result.decode.budget_used == 3
        assert len(engine.store.get(player_id).unlocked_letters(SHARPNESS)) == 2

    def test_upgrading_same_enchantment_is_not_a_conflict(self, engine, wallet, player_id) -> None:
        _grant(engine, player_id, SHARPNESS, 2)
        wallet.set_balance(player_id, 30)
        sword = Item(kind="sword", visible={SHARPNESS: 1})

        result = engine.try_select_and_apply(player_id, sword, SHARPNESS, 2)

        assert result.ok
        assert sword.enchantments() == {SHARPNESS: 2}

    def test_books_accept_any_enchantment(self, engine, wallet, player_id) -> None:
        _grant(engine, player_id, POWER, 1)
        wallet.set_balance(player_id, 10)

        result = engine.try_select_and_apply(player_id, Item(kind="book"), POWER, 1)

        assert result.ok

    def test_announces_and_audits(self, engine, wallet, test_bus, player_id) -> None:
        _grant(engine, player_id, SHARPNESS, 2)
        wallet.set_balance(player_id, 30)

        engine.try_select_and_apply(player_id, Item(kind="sword"), SHARPNESS, 2)

        applied = test_bus.events_of_type(Events.MASTERY_APPLIED)
        assert len(applied) == 1
        assert applied[0].detail["visible_level"] == 2
        assert applied[0].detail["xp_gained"] == 45

        audit = [e for e in read_events() if e["event_type"] == "mastery.applied"]
        assert len(audit) == 1
        assert audit[0]["data"]["mastery_before"] == 2
        assert audit[0]["data"]["cost"] == 9


# ── Rejections ────────────────────────────────────────────────────────────────


@pytest.mark.unit
class TestApplyRejections:
    def test_mastery_too_low_mutates_nothing(self, engine, wallet, player_id) -> None:
        wallet.set_balance(player_id, 100)
        sword = Item(kind="sword")

        result = engine.try_select_and_apply(player_id, sword, SHARPNESS, 1)

        assert result.rejection == MasteryTooLow(required=1, current=0)
        assert wallet.balance(player_id) == 100
        assert sword.enchantments() == {}
        assert engine.store.get(player_id).is_empty()

    def test_target_above_mastery(self, engine, wallet, player_id) -> None:
        _grant(engine, player_id, SHARPNESS, 2)
        wallet.set_balance(player_id, 100)

        result = engine.try_select_and_apply(player_id, Item(kind="sword"), SHARPNESS, 3)

        assert result.rejection == MasteryTooLow(required=3, current=2)

    @pytest.mark.parametrize(
        ("enchantment_id", "level", "item"),
        [
            (None, 1, Item(kind="sword")),
            ("", 1, Item(kind="sword")),
            (SHARPNESS, 0, Item(kind="sword")),
            (SHARPNESS, 1, None),
            (SHARPNESS, 1, Item(kind="sword", count=0)),
        ],
    )
    def test_no_selection(self, engine, player_id, enchantment_id, level, item) -> None:
        result = engine.try_select_and_apply(player_id, item, enchantment_id, level)

        assert isinstance(result.rejection, NoSelection)

    def test_unparseable_id(self, engine, player_id) -> None:
        result = engine.try_select_and_apply(player_id, Item(kind="sword"), "Sharp ness", 1)

        assert result.rejection == UnknownEnchantment(enchantment_id="Sharp ness")

    def test_mastered_but_unregistered(self, engine, wallet, player_id) -> None:
        _grant(engine, player_id, "mymod:frost_edge", 3)
        wallet.set_balance(player_id, 100)

        result = engine.try_select_and_apply(player_id, Item(kind="sword"), "mymod:frost_edge", 1)

        assert result.rejection == UnknownEnchantment(enchantment_id="mymod:frost_edge")

    def test_item_incompatible(self, engine, wallet, player_id) -> None:
        _grant(engine, player_id, SHARPNESS, 1)
        wallet.set_balance(player_id, 100)

        result = engine.try_select_and_apply(player_id, Item(kind="bow"), SHARPNESS, 1)

        assert result.rejection == ItemIncompatible(enchantment_id=SHARPNESS)

    def test_exclusive_group_conflict(self, engine, wallet, player_id) -> None:
        _grant(engine, player_id, SHARPNESS, 1)
        wallet.set_balance(player_id, 100)
        sword = Item(kind="sword", visible={SMITE: 2})

        result = engine.try_select_and_apply(player_id, sword, SHARPNESS, 1)

        assert result.rejection == EnchantmentConflict(enchantment_id=SHARPNESS, conflicts_with=SMITE)
        assert sword.enchantments() == {SMITE: 2}

    def test_explicit_incompatibility_conflict(self, engine, wallet, player_id) -> None:
        _grant(engine, player_id, MENDING, 1)
        wallet.set_balance(player_id, 100)
        bow = Item(kind="bow", visible={INFINITY: 1})

        result = engine.try_select_and_apply(player_id, bow, MENDING, 1)

        assert result.rejection == EnchantmentConflict(enchantment_id=MENDING, conflicts_with=INFINITY)

    def test_insufficient_currency(self, engine, wallet, player_id) -> None:
        _grant(engine, player_id, SHARPNESS, 2)
        wallet.set_balance(player_id, 8)

        result = engine.try_select_and_apply(player_id, Item(kind="sword"), SHARPNESS, 2)

        assert result.rejection == InsufficientCurrency(required=9, available=8)
        assert engine.store.get(player_id).total_levels_spent == 0


# ── Commit failure ────────────────────────────────────────────────────────────


class _ExplodingWallet(Wallet):
    def deduct(self, player_id, amount):
        raise RuntimeError("currency service unavailable")


class _BrittleSword(Item):
    """Refuses to take a positive enchantment level."""

    def set_enchantment(self, enchantment_id: str, level: int) -> None:
        if level > 0:
            raise RuntimeError("item is locked")
        super().set_enchantment(enchantment_id, level)


@pytest.mark.unit
class TestApplyRollback:
    def test_currency_failure_propagates(self, store, catalog, test_bus, player_id) -> None:
        wallet = _ExplodingWallet({player_id: 100})
        engine = MasteryEngine(
            store=store, registry=catalog, currency=wallet, bus=test_bus, audit_enabled=False
        )
        _grant(engine, player_id, SHARPNESS, 2)
        before = store.get(player_id).copy()
        sword = Item(kind="sword")

        with pytest.raises(RuntimeError, match="currency service"):
            engine.try_select_and_apply(player_id, sword, SHARPNESS, 2)

        assert store.get(player_id) == before
        assert sword.enchantments() == {}
        assert sword.effective_levels == EMPTY_RECORD
        assert wallet.balance(player_id) == 100

    def test_item_failure_restores_ledger_and_item(self, engine, wallet, test_bus, player_id) -> None:
        _grant(engine, player_id, SHARPNESS, 2)
        wallet.set_balance(player_id, 30)
        before = engine.store.get(player_id).copy()
        sword = _BrittleSword(kind="sword")

        with pytest.raises(RuntimeError, match="item is locked"):
            engine.try_select_and_apply(player_id, sword, SHARPNESS, 2)

        assert engine.store.get(player_id) == before
        assert sword.enchantments() == {}
        assert sword.effective_levels == EMPTY_RECORD
        assert wallet.balance(player_id) == 30
        assert test_bus.events_of_type(Events.MASTERY_APPLIED) == []

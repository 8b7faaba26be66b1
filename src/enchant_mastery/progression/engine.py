"""Mastery transaction engine.

:class:`MasteryEngine` ties together the progression curves, the letter
selector, the per-player ledger store and the host collaborators.  One
instance serves every player for the lifetime of the host process.

Transaction sequence (``try_absorb`` / ``try_select_and_apply``):

1. Acquire the per-player lock.  Transactions for one player never
   interleave; different players proceed in parallel.
2. Validate against the ledger and the injected registry and currency.  On
   any failure return a :class:`~enchant_mastery.progression.types.Rejection`
   without mutating anything.
3. Commit: mutate item and ledger, run the decode cascade, then deduct
   currency as the last step.  If a collaborator raises here, the ledger and
   item are restored from their pre-commit state, no currency has been taken,
   and the exception propagates.
4. Announce: bus events, player notifications, audit record, persistence,
   and a snapshot push to the mirror.  None of these can undo step 3;
   failures are logged.
5. Release the lock and return the result.

Decode cascade:
    Every currency-spending transaction feeds its cost into
    :meth:`MasteryEngine.process_levels_spent` as a one-shot budget.  Up to
    ``decode.max_unlocks_per_transaction`` letters are revealed, each costing
    ``decode_cost(letters already revealed)``.  Leftover budget is dropped;
    it is never banked and never charged again.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

from enchant_mastery.audit import DEFAULT_STREAM, AuditWriteError
from enchant_mastery.audit import append_event as audit_append
from enchant_mastery.config import config
from enchant_mastery.core.bus import MasteryBus
from enchant_mastery.core.bus import bus as default_bus
from enchant_mastery.core.events import Events
from enchant_mastery.db.errors import DatabaseError
from enchant_mastery.host.interfaces import (
    CurrencyAccount,
    EnchantmentRegistry,
    SourceItem,
    TargetItem,
)
from enchant_mastery.progression.curves import (
    absorb_cost,
    apply_cost,
    decode_cost,
    resolve_level_ups,
    total_absorb_cost,
    xp_gain_from_apply_cost,
)
from enchant_mastery.progression.decoding import (
    derive_seed,
    is_fully_unlocked,
    letter_at,
    select_next,
)
from enchant_mastery.progression.policy import DEFAULT_POLICY, ProgressionPolicy
from enchant_mastery.progression.types import (
    AbsorbResult,
    AlreadyLearned,
    ApplyResult,
    DecodeOutcome,
    EnchanterEntry,
    EnchantmentConflict,
    InsufficientCurrency,
    ItemIncompatible,
    LetterUnlock,
    MasteryTooLow,
    MultipleEnchantments,
    NoEnchantment,
    NoSelection,
    ProgressionGapTooLarge,
    Rejection,
    UnknownEnchantment,
)
from enchant_mastery.state.ids import parse_enchantment_id
from enchant_mastery.state.ledger import MasteryLedger
from enchant_mastery.state.store import LedgerStore
from enchant_mastery.sync.projection import SyncProjection

logger = logging.getLogger(__name__)


class MasteryEngine:
    """Server-authoritative mastery transactions.

    Args:
        store:         Per-player ledger store.
        registry:      Enchantment metadata from the host.
        currency:      The host's currency account and notification channel.
        policy:        Curve coefficients and cascade cap.
        bus:           Event bus.  Defaults to the process-wide bus.
        sync:          Snapshot projection.  ``None`` disables pushes.
        audit_enabled: Write JSONL audit records.  Defaults to
                       ``[audit] enabled``.
        audit_stream:  Audit stream name.
    """

    def __init__(
        self,
        *,
        store: LedgerStore,
        registry: EnchantmentRegistry,
        currency: CurrencyAccount,
        policy: ProgressionPolicy = DEFAULT_POLICY,
        bus: MasteryBus | None = None,
        sync: SyncProjection | None = None,
        audit_enabled: bool | None = None,
        audit_stream: str = DEFAULT_STREAM,
    ) -> None:
        self._store = store
        self._registry = registry
        self._currency = currency
        self._policy = policy
        self._bus = bus if bus is not None else default_bus
        self._sync = sync
        self._audit_enabled = config.audit.enabled if audit_enabled is None else audit_enabled
        self._audit_stream = audit_stream
        # Per-player lock pool.  Serialises the validate-commit-announce cycle
        # for one player.
        self._locks: dict[uuid.UUID, threading.Lock] = {}
        self._locks_mutex = threading.Lock()
        logger.info(
            "Mastery engine ready (policy %s, audit %s, sync %s)",
            policy.version,
            "on" if self._audit_enabled else "off",
            "on" if sync is not None and sync.enabled else "off",
        )

    @property
    def policy(self) -> ProgressionPolicy:
        return self._policy

    @property
    def store(self) -> LedgerStore:
        return self._store

    # ------------------------------------------------------------------
    # Absorb
    # ------------------------------------------------------------------

    def try_absorb(self, player_id: uuid.UUID, item: SourceItem) -> AbsorbResult:
        """Absorb the single enchantment stored on *item* into the player's mastery.

        On success the book level becomes the new mastery level, its cost is
        deducted and added to the total spend, the decode cascade runs with
        that cost as budget, and one unit of *item* is consumed.

        Returns:
            An :class:`AbsorbResult`; check ``result.ok``.
        """
        with self._player_lock(player_id):
            rejection, eid, book_level = self._validate_absorb(player_id, item)
            if rejection is not None:
                self._announce_rejection(player_id, "absorb", rejection)
                return AbsorbResult(rejection=rejection, enchantment_id=eid)

            cost = absorb_cost(book_level, curves=self._policy.curves)
            ledger = self._store.get(player_id)
            with self._rollback_on_error(player_id, ledger, "absorb"):
                ledger.set_mastery_level(eid, book_level)
                ledger.add_levels_spent(cost)
                decode = self._run_cascade(player_id, eid, ledger, cost)
                item.consume_one()
                self._currency.deduct(player_id, cost)

            result = AbsorbResult(enchantment_id=eid, new_level=book_level, cost=cost, decode=decode)
            logger.debug(
                "Player %s absorbed %s level %d for %d levels", player_id, eid, book_level, cost
            )

            self._bus.emit(
                Events.MASTERY_ABSORBED,
                {
                    "player_id": str(player_id),
                    "enchantment_id": eid,
                    "level": book_level,
                    "cost": cost,
                    "unlocked": decode.indices,
                },
            )
            self._currency.notify(
                player_id, f"Absorbed {self._name(eid)} {book_level} for {cost} levels."
            )
            self._audit(
                player_id,
                "mastery.absorbed",
                {"enchantment_id": eid, "level": book_level, "cost": cost},
            )
            self._announce_unlocks(player_id, eid, decode)
            self._finish(player_id, ledger, reason="absorb")
            return result

    def _validate_absorb(
        self, player_id: uuid.UUID, item: SourceItem
    ) -> tuple[Rejection | None, str | None, int]:
        if item.is_empty():
            return NoEnchantment(), None, 0
        stored = item.stored_enchantments()
        if not stored:
            return NoEnchantment(), None, 0
        if len(stored) > 1:
            return MultipleEnchantments(count=len(stored)), None, 0

        raw_id, book_level = next(iter(stored.items()))
        eid = parse_enchantment_id(raw_id)
        if eid is None or not self._registry.knows(eid):
            return UnknownEnchantment(enchantment_id=str(raw_id)), None, 0

        current = self._store.get(player_id).mastery_level(eid)
        if book_level > current + 1:
            return ProgressionGapTooLarge(book_level=book_level, next_level=current + 1), eid, 0
        if book_level <= current:
            return AlreadyLearned(book_level=book_level, mastery_level=current), eid, 0

        cost = absorb_cost(book_level, curves=self._policy.curves)
        available = self._currency.balance(player_id)
        if available < cost:
            return InsufficientCurrency(required=cost, available=available), eid, 0

        return None, eid, book_level

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------

    def try_select_and_apply(
        self,
        player_id: uuid.UUID,
        item: TargetItem | None,
        enchantment_id: str | None,
        target_level: int,
    ) -> ApplyResult:
        """Put *enchantment_id* at *target_level* on *item*, paid from the player's currency.

        The item's visible level is ``min(target_level, host max)``; when the
        target exceeds the host max the full level is recorded in the item's
        effective-level record.  The cost is converted into mastery XP, which
        may level the mastery up, and feeds the decode cascade.
        """
        with self._player_lock(player_id):
            rejection, eid = self._validate_apply(player_id, item, enchantment_id, target_level)
            if rejection is not None:
                self._announce_rejection(player_id, "apply", rejection)
                return ApplyResult(rejection=rejection, enchantment_id=eid)

            curves = self._policy.curves
            cost = apply_cost(target_level, curves=curves)
            visible = min(target_level, self._registry.max_level(eid))
            ledger = self._store.get(player_id)
            old_mastery = ledger.mastery_level(eid)
            old_visible = item.enchantments().get(eid, 0)
            old_record = item.effective_levels

            try:
                with self._rollback_on_error(player_id, ledger, "apply"):
                    item.set_enchantment(eid, visible)
                    if target_level > visible:
                        item.effective_levels = old_record.with_level(eid, target_level)
                    else:
                        item.effective_levels = old_record.without_level(eid)

                    ledger.add_levels_spent(cost)
                    xp_gain = xp_gain_from_apply_cost(cost, curves=curves)
                    new_mastery, remaining_xp = resolve_level_ups(
                        old_mastery, ledger.mastery_xp(eid), xp_gain, curves=curves
                    )
                    ledger.set_mastery_level(eid, new_mastery)
                    ledger.set_mastery_xp(eid, remaining_xp)
                    decode = self._run_cascade(player_id, eid, ledger, cost)
                    self._currency.deduct(player_id, cost)
            except Exception:
                item.set_enchantment(eid, old_visible)
                item.effective_levels = old_record
                raise

            result = ApplyResult(
                enchantment_id=eid,
                target_level=target_level,
                visible_level=visible,
                cost=cost,
                xp_gained=xp_gain,
                old_mastery=old_mastery,
                new_mastery=new_mastery,
                decode=decode,
            )
            logger.debug(
                "Player %s applied %s %d (visible %d) for %d levels, +%d xp",
                player_id,
                eid,
                target_level,
                visible,
                cost,
                xp_gain,
            )

            self._bus.emit(
                Events.MASTERY_APPLIED,
                {
                    "player_id": str(player_id),
                    "enchantment_id": eid,
                    "target_level": target_level,
                    "visible_level": visible,
                    "cost": cost,
                    "xp_gained": xp_gain,
                    "unlocked": decode.indices,
                },
            )
            self._audit(
                player_id,
                "mastery.applied",
                {
                    "enchantment_id": eid,
                    "target_level": target_level,
                    "visible_level": visible,
                    "cost": cost,
                    "xp_gained": xp_gain,
                    "mastery_before": old_mastery,
                    "mastery_after": new_mastery,
                },
            )
            if result.leveled_up:
                self._bus.emit(
                    Events.MASTERY_LEVELED_UP,
                    {
                        "player_id": str(player_id),
                        "enchantment_id": eid,
                        "old_level": old_mastery,
                        "new_level": new_mastery,
                    },
                )
                self._currency.notify(
                    player_id, f"{self._name(eid)} mastery increased to {new_mastery}!"
                )
            self._announce_unlocks(player_id, eid, decode)
            self._finish(player_id, ledger, reason="apply")
            return result

    def _validate_apply(
        self,
        player_id: uuid.UUID,
        item: TargetItem | None,
        enchantment_id: str | None,
        target_level: int,
    ) -> tuple[Rejection | None, str | None]:
        if not enchantment_id or target_level <= 0 or item is None or item.is_empty():
            return NoSelection(), None

        eid = parse_enchantment_id(enchantment_id)
        if eid is None:
            return UnknownEnchantment(enchantment_id=enchantment_id), None

        mastery = self._store.get(player_id).mastery_level(eid)
        if target_level > mastery:
            return MasteryTooLow(required=target_level, current=mastery), eid

        if not self._registry.knows(eid):
            return UnknownEnchantment(enchantment_id=eid), eid
        if not self._registry.can_enchant(item, eid):
            return ItemIncompatible(enchantment_id=eid), eid
        conflict = self._find_conflict(item, eid)
        if conflict is not None:
            return EnchantmentConflict(enchantment_id=eid, conflicts_with=conflict), eid

        cost = apply_cost(target_level, curves=self._policy.curves)
        available = self._currency.balance(player_id)
        if available < cost:
            return InsufficientCurrency(required=cost, available=available), eid

        return None, eid

    def _find_conflict(self, item: TargetItem, eid: str) -> str | None:
        """Return the first enchantment on *item* that conflicts with *eid*.

        The enchantment itself never conflicts: re-applying it is an upgrade.
        """
        for other in sorted(item.enchantments()):
            if other != eid and not self._registry.are_compatible(eid, other):
                return other
        return None

    # ------------------------------------------------------------------
    # Decode cascade
    # ------------------------------------------------------------------

    def process_levels_spent(
        self, player_id: uuid.UUID, enchantment_id: str, levels_spent: int
    ) -> DecodeOutcome:
        """Run a decode cascade on its own, with *levels_spent* as budget.

        Absorb and apply run the cascade inside their own commit; this entry
        point exists for hosts that charge currency through other means.  No
        currency is deducted here.
        """
        eid = parse_enchantment_id(enchantment_id)
        if eid is None or levels_spent <= 0:
            return DecodeOutcome(budget=max(0, levels_spent))

        with self._player_lock(player_id):
            ledger = self._store.get(player_id)
            with self._rollback_on_error(player_id, ledger, "decode"):
                decode = self._run_cascade(player_id, eid, ledger, levels_spent)
            if decode.unlocks:
                self._announce_unlocks(player_id, eid, decode)
                self._finish(player_id, ledger, reason="decode")
            return decode

    def _run_cascade(
        self, player_id: uuid.UUID, eid: str, ledger: MasteryLedger, budget: int
    ) -> DecodeOutcome:
        if not self._registry.knows(eid):
            return DecodeOutcome(budget=budget)

        name = self._registry.display_name(eid)
        seed = derive_seed(player_id, eid)
        remaining = budget
        unlocks: list[LetterUnlock] = []

        for _ in range(self._policy.decode.max_unlocks_per_transaction):
            unlocked = ledger.unlocked_letters(eid)
            cost = decode_cost(len(unlocked), curves=self._policy.curves)
            if cost > remaining:
                break
            index = select_next(name, unlocked, seed)
            if index is None:
                break
            ledger.add_unlocked_letter(eid, index)
            remaining -= cost
            unlocks.append(LetterUnlock(index=index, letter=letter_at(name, index), cost=cost))

        return DecodeOutcome(
            unlocks=tuple(unlocks),
            budget=budget,
            budget_used=budget - remaining,
            fully_decoded=is_fully_unlocked(name, ledger.unlocked_letters(eid)),
        )

    # ------------------------------------------------------------------
    # Enchanter listing and previews
    # ------------------------------------------------------------------

    def available_enchantments(
        self, player_id: uuid.UUID, item: TargetItem | None = None
    ) -> list[EnchanterEntry]:
        """List every mastered enchantment and whether it fits *item*.

        Without an item (or with an empty one) nothing is applicable.
        Applicable entries sort first, then by id.
        """
        ledger = self._store.get(player_id)
        has_item = item is not None and not item.is_empty()
        entries: list[EnchanterEntry] = []
        for eid, level in ledger.mastery_levels().items():
            if not has_item:
                entries.append(EnchanterEntry(eid, level, applicable=False, has_conflict=False))
                continue
            conflict = self._find_conflict(item, eid) is not None
            fits = self._registry.knows(eid) and self._registry.can_enchant(item, eid)
            entries.append(
                EnchanterEntry(eid, level, applicable=fits and not conflict, has_conflict=conflict)
            )
        entries.sort(key=lambda entry: (not entry.applicable, entry.enchantment_id))
        return entries

    def preview_apply_cost(self, target_level: int) -> int:
        return apply_cost(target_level, curves=self._policy.curves)

    def preview_absorb_cost(self, from_level: int, to_level: int) -> int:
        """Total cost of absorbing every level in ``(from_level, to_level]``."""
        return total_absorb_cost(from_level, to_level, curves=self._policy.curves)

    # ------------------------------------------------------------------
    # Player lifecycle
    # ------------------------------------------------------------------

    def on_login(self, player_id: uuid.UUID) -> MasteryLedger:
        """Attach the player's ledger and push it to the mirror."""
        with self._player_lock(player_id):
            loaded = not self._store.is_attached(player_id)
            ledger = self._store.attach(player_id)
            self._bus.emit(
                Events.PLAYER_ATTACHED,
                {"player_id": str(player_id), "loaded": loaded and not ledger.is_empty()},
                source="lifecycle",
            )
            self._push(player_id, ledger, reason="login")
            return ledger

    def on_logout(self, player_id: uuid.UUID) -> None:
        """Persist and detach the player's ledger."""
        with self._player_lock(player_id):
            try:
                self._store.detach(player_id)
            except DatabaseError:
                logger.error("Failed to persist ledger for %s on logout", player_id, exc_info=True)
                raise
        with self._locks_mutex:
            self._locks.pop(player_id, None)

    def on_dimension_change(self, player_id: uuid.UUID) -> None:
        with self._player_lock(player_id):
            self._push(player_id, self._store.get(player_id), reason="dimension_change")

    def on_respawn(self, player_id: uuid.UUID, *, after_death: bool) -> MasteryLedger:
        """Carry the ledger across a respawn and push it to the mirror."""
        with self._player_lock(player_id):
            ledger = self._store.transfer_on_respawn(player_id, after_death=after_death)
            self._bus.emit(
                Events.PLAYER_RESPAWNED,
                {"player_id": str(player_id), "after_death": after_death},
                source="lifecycle",
            )
            self._push(player_id, ledger, reason="respawn")
            return ledger

    # ------------------------------------------------------------------
    # Admin hooks (see enchant_mastery.admin)
    # ------------------------------------------------------------------

    @contextmanager
    def locked_ledger(self, player_id: uuid.UUID) -> Iterator[MasteryLedger]:
        """Yield the player's ledger under the player lock, then persist and push it."""
        with self._player_lock(player_id):
            ledger = self._store.get(player_id)
            with self._rollback_on_error(player_id, ledger, "admin"):
                yield ledger
            self._finish(player_id, ledger, reason="admin")

    def record_override(
        self,
        player_id: uuid.UUID,
        command: str,
        *,
        enchantment_id: str | None = None,
        level: int | None = None,
    ) -> None:
        """Announce and audit a direct ledger change made by an operator."""
        detail = {
            "player_id": str(player_id),
            "command": command,
            "enchantment_id": enchantment_id,
            "level": level,
        }
        self._bus.emit(Events.MASTERY_OVERRIDDEN, detail, source="admin")
        self._audit(player_id, "mastery.admin_override", detail)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _player_lock(self, player_id: uuid.UUID) -> Iterator[None]:
        with self._locks_mutex:
            lock = self._locks.setdefault(player_id, threading.Lock())
        with lock:
            yield

    @contextmanager
    def _rollback_on_error(
        self, player_id: uuid.UUID, ledger: MasteryLedger, action: str
    ) -> Iterator[None]:
        before = ledger.copy()
        try:
            yield
        except Exception:
            ledger.copy_from(before)
            logger.error(
                "%s for %s failed during commit; ledger rolled back", action, player_id, exc_info=True
            )
            raise

    def _name(self, eid: str) -> str:
        try:
            return self._registry.display_name(eid)
        except KeyError:
            return eid

    def _announce_rejection(self, player_id: uuid.UUID, action: str, rejection: Rejection) -> None:
        logger.debug("Player %s %s rejected: %s", player_id, action, rejection)
        self._bus.emit(
            Events.MASTERY_REJECTED,
            {
                "player_id": str(player_id),
                "action": action,
                "reason": rejection.reason,
                "message": rejection.message,
            },
        )
        self._currency.notify(player_id, rejection.message)

    def _announce_unlocks(self, player_id: uuid.UUID, eid: str, decode: DecodeOutcome) -> None:
        for unlock in decode.unlocks:
            logger.debug("Player %s unlocked letter %d of %s", player_id, unlock.index, eid)
            detail = {
                "player_id": str(player_id),
                "enchantment_id": eid,
                "index": unlock.index,
                "letter": unlock.letter,
                "cost": unlock.cost,
            }
            self._bus.emit(Events.LETTER_UNLOCKED, detail)
            self._currency.notify(player_id, f"Decoded a letter of {eid}: '{unlock.letter}'")
            self._audit(player_id, "mastery.letter_unlocked", detail)

    def _audit(self, player_id: uuid.UUID, event_type: str, data: dict) -> None:
        if not self._audit_enabled:
            return
        try:
            audit_append(
                event_type,
                data,
                player_id=str(player_id),
                stream=self._audit_stream,
                meta={"policy_version": self._policy.version},
            )
        except AuditWriteError:
            logger.warning("Audit write failed; transaction stands.", exc_info=True)

    def _finish(self, player_id: uuid.UUID, ledger: MasteryLedger, *, reason: str) -> None:
        """Persist and push after a committed mutation."""
        try:
            self._store.save(player_id)
        except DatabaseError:
            logger.error("Failed to persist ledger for %s after %s", player_id, reason, exc_info=True)
        self._push(player_id, ledger, reason=reason)

    def _push(self, player_id: uuid.UUID, ledger: MasteryLedger, *, reason: str) -> None:
        if self._sync is not None:
            self._sync.push(player_id, ledger, reason=reason)

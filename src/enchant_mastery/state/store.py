"""Per-player ledger store keyed by stable player identity.

The store owns the live :class:`~enchant_mastery.state.ledger.MasteryLedger`
of every attached player.  The engine receives the store as a dependency and
never creates ledgers itself.

Lifecycle::

    attach(player)              login: load the persisted ledger or start empty
    get(player)                 any transaction
    transfer_on_respawn(...)    respawn: replace with a copy when after death
    detach(player)              logout: persist and drop
"""

from __future__ import annotations

import logging
import threading
import uuid
from typing import Protocol

from enchant_mastery.state.ledger import MasteryLedger

logger = logging.getLogger(__name__)


class LedgerRepository(Protocol):
    """Persistence backend for ledgers.  See :mod:`enchant_mastery.db.ledger_repo`."""

    def load(self, player_id: uuid.UUID) -> MasteryLedger | None: ...

    def save(self, player_id: uuid.UUID, ledger: MasteryLedger) -> None: ...


class LedgerStore:
    """Thread-safe map ``player_id -> MasteryLedger``.

    Args:
        repository: Optional persistence backend.  Without one the store is
                    purely in-memory and :meth:`save` is a no-op.
    """

    def __init__(self, repository: LedgerRepository | None = None) -> None:
        self._repository = repository
        self._ledgers: dict[uuid.UUID, MasteryLedger] = {}
        self._mutex = threading.Lock()

    def attach(self, player_id: uuid.UUID) -> MasteryLedger:
        """Attach *player_id*, loading its persisted ledger on first attach.

        Attaching an already attached player returns the live ledger
        unchanged.
        """
        with self._mutex:
            ledger = self._ledgers.get(player_id)
            if ledger is not None:
                return ledger

            loaded = self._repository.load(player_id) if self._repository else None
            ledger = loaded if loaded is not None else MasteryLedger()
            self._ledgers[player_id] = ledger

        logger.info(
            "Attached ledger for %s (%s)", player_id, "loaded" if loaded is not None else "new"
        )
        return ledger

    def get(self, player_id: uuid.UUID) -> MasteryLedger:
        """Return the live ledger of *player_id*, attaching it if needed."""
        with self._mutex:
            ledger = self._ledgers.get(player_id)
        if ledger is None:
            ledger = self.attach(player_id)
        return ledger

    def is_attached(self, player_id: uuid.UUID) -> bool:
        with self._mutex:
            return player_id in self._ledgers

    def attached_players(self) -> list[uuid.UUID]:
        with self._mutex:
            return list(self._ledgers)

    def save(self, player_id: uuid.UUID) -> None:
        """Persist the live ledger of *player_id*.

        Raises:
            DatabaseError: Propagated from the repository.
        """
        if self._repository is None:
            return
        with self._mutex:
            ledger = self._ledgers.get(player_id)
        if ledger is not None:
            self._repository.save(player_id, ledger)

    def detach(self, player_id: uuid.UUID) -> MasteryLedger | None:
        """Persist and drop the ledger of *player_id*; return it, or ``None``."""
        self.save(player_id)
        with self._mutex:
            ledger = self._ledgers.pop(player_id, None)
        if ledger is not None:
            logger.info("Detached ledger for %s", player_id)
        return ledger

    def transfer_on_respawn(self, player_id: uuid.UUID, *, after_death: bool) -> MasteryLedger:
        """Carry progression across a respawn.

        After a death the respawned player gets a fresh ledger holding a
        wholesale copy of the old one, and the old object is discarded.  A
        respawn without death (returning from the end dimension) keeps the
        live ledger as-is.
        """
        old = self.get(player_id)
        if not after_death:
            return old

        fresh = MasteryLedger()
        fresh.copy_from(old)
        with self._mutex:
            self._ledgers[player_id] = fresh
        logger.info("Transferred ledger for %s after death", player_id)
        return fresh

    def replace(self, player_id: uuid.UUID, ledger: MasteryLedger) -> None:
        """Install *ledger* as the live ledger of *player_id*."""
        with self._mutex:
            self._ledgers[player_id] = ledger

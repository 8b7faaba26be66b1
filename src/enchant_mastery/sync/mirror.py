"""Read-only mirror of a player's ledger.

A mirror lives on the receiving side of the transport (the client, a
dashboard, a test).  It never originates mutations: each accepted snapshot
replaces its state wholesale, and the latest accepted snapshot wins.
"""

from __future__ import annotations

import logging
import threading
import uuid

from enchant_mastery.state.ledger import MasteryLedger
from enchant_mastery.sync.codec import SnapshotDecodeError, decode_snapshot

logger = logging.getLogger(__name__)


class MirrorLedger:
    """Last-write-wins cache rebuilt from transport snapshots."""

    def __init__(self) -> None:
        self._ledger = MasteryLedger()
        self._lock = threading.Lock()
        self.snapshots_accepted = 0

    def accept(self, payload: bytes) -> bool:
        """Replace the mirrored state with *payload*.

        Returns:
            ``True`` if the snapshot was applied.  A snapshot that fails to
            decode is dropped with a WARNING and the previous state is kept.
        """
        try:
            decoded = decode_snapshot(payload)
        except SnapshotDecodeError:
            logger.warning("Mirror dropped an undecodable snapshot", exc_info=True)
            return False
        with self._lock:
            self._ledger = decoded
            self.snapshots_accepted += 1
        return True

    def mastery_level(self, enchantment_id: str) -> int:
        return self._ledger.mastery_level(enchantment_id)

    def mastery_xp(self, enchantment_id: str) -> int:
        return self._ledger.mastery_xp(enchantment_id)

    def unlocked_letters(self, enchantment_id: str) -> frozenset[int]:
        return self._ledger.unlocked_letters(enchantment_id)

    def mastery_levels(self) -> dict[str, int]:
        return self._ledger.mastery_levels()

    @property
    def total_levels_spent(self) -> int:
        return self._ledger.total_levels_spent

    def snapshot(self) -> MasteryLedger:
        """Return a detached copy of the mirrored ledger."""
        with self._lock:
            return self._ledger.copy()


class LoopbackTransport:
    """In-process transport delivering snapshots straight to registered mirrors.

    Snapshots for players without a registered mirror are dropped.
    """

    def __init__(self) -> None:
        self._mirrors: dict[uuid.UUID, MirrorLedger] = {}
        self.sent: list[tuple[uuid.UUID, bytes]] = []

    def register(self, player_id: uuid.UUID, mirror: MirrorLedger | None = None) -> MirrorLedger:
        mirror = mirror or MirrorLedger()
        self._mirrors[player_id] = mirror
        return mirror

    def unregister(self, player_id: uuid.UUID) -> None:
        self._mirrors.pop(player_id, None)

    def mirror_for(self, player_id: uuid.UUID) -> MirrorLedger | None:
        return self._mirrors.get(player_id)

    def send(self, player_id: uuid.UUID, payload: bytes) -> None:
        self.sent.append((player_id, payload))
        mirror = self._mirrors.get(player_id)
        if mirror is None:
            logger.debug("No mirror registered for %s; snapshot dropped", player_id)
            return
        mirror.accept(payload)

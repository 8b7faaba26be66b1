"""Sync projection: push a ledger snapshot to the player's mirror.

Pushing is the last step of every committed transaction and of every
lifecycle event (login, dimension change, respawn).  A failed push never
undoes the transaction; the next push carries the full state anyway.
"""

from __future__ import annotations

import logging
import uuid

from enchant_mastery.config import config
from enchant_mastery.core.bus import MasteryBus
from enchant_mastery.core.events import Events
from enchant_mastery.host.interfaces import SnapshotTransport
from enchant_mastery.state.ledger import MasteryLedger
from enchant_mastery.sync.codec import encode_snapshot

logger = logging.getLogger(__name__)


class SyncProjection:
    """Encode ledgers and hand them to a transport.

    Args:
        transport: Delivery mechanism.  ``None`` disables pushing.
        bus:       Bus to announce successful pushes on.
        enabled:   Master switch.  ``None`` reads ``[sync] enabled`` from config.
    """

    def __init__(
        self,
        transport: SnapshotTransport | None,
        *,
        bus: MasteryBus | None = None,
        enabled: bool | None = None,
    ) -> None:
        self._transport = transport
        self._bus = bus
        if enabled is None:
            enabled = config.sync.enabled
        self.enabled = enabled and transport is not None

    def push(self, player_id: uuid.UUID, ledger: MasteryLedger, *, reason: str) -> bool:
        """Send a snapshot of *ledger*; return ``True`` if the transport accepted it."""
        if not self.enabled or self._transport is None:
            return False

        payload = encode_snapshot(ledger)
        try:
            self._transport.send(player_id, payload)
        except Exception:
            logger.warning("Snapshot push for %s (%s) failed", player_id, reason, exc_info=True)
            return False

        if self._bus is not None:
            self._bus.emit(
                Events.LEDGER_SYNCED,
                {"player_id": str(player_id), "reason": reason, "size": len(payload)},
                source="sync",
            )
        return True

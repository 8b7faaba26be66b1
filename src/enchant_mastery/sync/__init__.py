"""Snapshot transport between the authoritative ledger and its mirrors."""

from enchant_mastery.sync.codec import SnapshotDecodeError, decode_snapshot, encode_snapshot
from enchant_mastery.sync.mirror import LoopbackTransport, MirrorLedger
from enchant_mastery.sync.projection import SyncProjection

__all__ = [
    "LoopbackTransport",
    "MirrorLedger",
    "SnapshotDecodeError",
    "SyncProjection",
    "decode_snapshot",
    "encode_snapshot",
]

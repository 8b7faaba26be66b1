"""Binary snapshot codec for ledger transport.

Wire layout, in order::

    varint n ; n x (string id, varint level)          mastery levels
    varint n ; n x (string id, varint xp)             mastery xp
    varint n ; n x (string id, varint k, k x varint)  unlocked letter indices
    varint total_levels_spent

``varint`` is unsigned LEB128 (7 bits per byte, least significant group
first, high bit set on every byte but the last).  ``string`` is a varint
byte length followed by UTF-8.  Entries are written in sorted id order so
equal ledgers encode to equal bytes.

Decoding is lenient about *content* and strict about *framing*: an entry
with an unparseable id or a zero level is skipped with a WARNING, but a
truncated buffer or trailing garbage raises :exc:`SnapshotDecodeError`.
"""

from __future__ import annotations

import logging

from enchant_mastery.state.ids import parse_enchantment_id
from enchant_mastery.state.ledger import MasteryLedger

logger = logging.getLogger(__name__)

#: Upper bound on any count field.  Guards against allocating for a corrupt
#: length prefix.
MAX_ENTRIES = 65_536

_MAX_VARINT_BYTES = 10


class SnapshotDecodeError(ValueError):
    """Raised when a snapshot buffer is truncated or framed incorrectly."""


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def write_varint(out: bytearray, value: int) -> None:
    if value < 0:
        raise ValueError(f"write_varint: value must be >= 0, got {value}.")
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return


def _write_string(out: bytearray, text: str) -> None:
    encoded = text.encode("utf-8")
    write_varint(out, len(encoded))
    out.extend(encoded)


def encode_snapshot(ledger: MasteryLedger) -> bytes:
    """Serialize *ledger* into the wire layout described in the module docstring."""
    out = bytearray()

    levels = sorted(ledger.mastery_levels().items())
    write_varint(out, len(levels))
    for eid, level in levels:
        _write_string(out, eid)
        write_varint(out, level)

    xp_entries = sorted(ledger.all_mastery_xp().items())
    write_varint(out, len(xp_entries))
    for eid, xp in xp_entries:
        _write_string(out, eid)
        write_varint(out, xp)

    letters = sorted(ledger.all_unlocked_letters().items())
    write_varint(out, len(letters))
    for eid, indices in letters:
        _write_string(out, eid)
        write_varint(out, len(indices))
        for index in sorted(indices):
            write_varint(out, index)

    write_varint(out, ledger.total_levels_spent)
    return bytes(out)


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


class _Reader:
    def __init__(self, payload: bytes) -> None:
        self._buf = payload
        self._pos = 0

    @property
    def exhausted(self) -> bool:
        return self._pos >= len(self._buf)

    def varint(self) -> int:
        result = 0
        for shift_index in range(_MAX_VARINT_BYTES):
            if self._pos >= len(self._buf):
                raise SnapshotDecodeError(f"Truncated varint at offset {self._pos}.")
            byte = self._buf[self._pos]
            self._pos += 1
            result |= (byte & 0x7F) << (7 * shift_index)
            if not byte & 0x80:
                return result
        raise SnapshotDecodeError(f"Varint longer than {_MAX_VARINT_BYTES} bytes.")

    def count(self) -> int:
        n = self.varint()
        if n > MAX_ENTRIES:
            raise SnapshotDecodeError(f"Count {n} exceeds limit of {MAX_ENTRIES}.")
        return n

    def string(self) -> str:
        length = self.count()
        end = self._pos + length
        if end > len(self._buf):
            raise SnapshotDecodeError(f"Truncated string at offset {self._pos}.")
        raw = self._buf[self._pos : end]
        self._pos = end
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise SnapshotDecodeError(f"Invalid UTF-8 in id: {exc}") from exc


def decode_snapshot(payload: bytes) -> MasteryLedger:
    """Rebuild a ledger from bytes produced by :func:`encode_snapshot`.

    Raises:
        SnapshotDecodeError: On truncation, an oversized count or trailing bytes.
    """
    reader = _Reader(payload)
    ledger = MasteryLedger()

    for _ in range(reader.count()):
        raw_id, level = reader.string(), reader.varint()
        eid = parse_enchantment_id(raw_id)
        if eid is None or level <= 0:
            logger.warning("Skipping snapshot level entry %r=%d", raw_id, level)
            continue
        ledger.set_mastery_level(eid, level)

    for _ in range(reader.count()):
        raw_id, xp = reader.string(), reader.varint()
        eid = parse_enchantment_id(raw_id)
        if eid is None or xp <= 0:
            logger.warning("Skipping snapshot xp entry %r=%d", raw_id, xp)
            continue
        ledger.set_mastery_xp(eid, xp)

    for _ in range(reader.count()):
        raw_id = reader.string()
        indices = {reader.varint() for _ in range(reader.count())}
        eid = parse_enchantment_id(raw_id)
        if eid is None:
            logger.warning("Skipping snapshot letters entry %r", raw_id)
            continue
        ledger.set_unlocked_letters(eid, indices)

    ledger.add_levels_spent(reader.varint())

    if not reader.exhausted:
        raise SnapshotDecodeError("Trailing bytes after total_levels_spent.")
    return ledger

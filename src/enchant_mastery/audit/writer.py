"""JSONL audit writer for mastery transactions.

Overview
--------
The SQLite snapshot (see :mod:`enchant_mastery.db`) only holds each player's
*current* ledger.  The audit trail holds *how it got there*: one line per
committed absorb, apply, letter unlock and admin override.

Storage
-------
Each stream is a single JSONL file::

    data/audit/<stream>.jsonl

The engine writes to the ``mastery`` stream.  The directory comes from
``[audit] directory`` in the engine config; tests monkeypatch
:data:`_AUDIT_ROOT` to redirect writes into ``tmp_path``.

Envelope format
---------------
.. code-block:: json

    {
      "event_id":       "a3f91c9e2d4b5e6f...",
      "timestamp":      "2026-10-19T14:23:01.452345+00:00",
      "stream":         "mastery",
      "event_type":     "mastery.absorbed",
      "schema_version": "1.0",
      "player_id":      "8f0c...-...",
      "meta":           {"policy_version": "1.0"},
      "data":           { ... event-specific payload ... },
      "_checksum":      "sha256:b94f3e..."
    }

``_checksum`` covers every other field serialised with ``sort_keys=True``.

Event types
-----------
::

    mastery.absorbed          absorb transaction committed
    mastery.applied           apply transaction committed
    mastery.letter_unlocked   one letter revealed by the decode cascade
    mastery.admin_override    list/set/reset issued by an operator

Failure isolation
-----------------
:exc:`AuditWriteError` is raised on filesystem failure.  The engine catches
it, logs a warning and keeps the committed transaction::

    try:
        append_event(...)
    except AuditWriteError:
        logger.warning("Audit write failed; transaction stands.", exc_info=True)
"""

from __future__ import annotations

import fcntl
import hashlib
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

from enchant_mastery.config import config

logger = logging.getLogger(__name__)

_SCHEMA_VERSION = "1.0"

#: Stream used by the engine and the admin commands.
DEFAULT_STREAM = "mastery"

#: Overrides the configured audit directory when set.  Tests monkeypatch this.
_AUDIT_ROOT: Path | None = None

# Bytes read from the end of a stream when verifying the last event.  An
# apply event with three unlocks is well under 2 KiB.
_TAIL_CHUNK_BYTES = 16_384


class AuditWriteError(Exception):
    """Raised when an audit append fails due to a filesystem or encoding error."""


@dataclass(frozen=True)
class AuditVerifyResult:
    """Result of :func:`verify_audit_stream`.

    Attributes:
        status: ``"ok"``, ``"empty"`` (no file or no events) or ``"corrupt"``
                (malformed JSON or checksum mismatch on the last line).
        last_event_id: ``event_id`` of the last valid event, else ``None``.
        error_detail:  Why the stream is corrupt, else ``None``.
    """

    status: Literal["ok", "empty", "corrupt"]
    last_event_id: str | None
    error_detail: str | None


# ── Public API ────────────────────────────────────────────────────────────────


def append_event(
    event_type: str,
    data: dict,
    *,
    player_id: str,
    stream: str = DEFAULT_STREAM,
    meta: dict | None = None,
) -> str:
    """Append one event to *stream*.

    Args:
        event_type: Dot-namespaced type, e.g. ``"mastery.absorbed"``.
        data:       JSON-serialisable payload.
        player_id:  Stable player identity (stringified UUID).
        stream:     File stem under the audit directory.
        meta:       Optional metadata, e.g. the policy version in force.

    Returns:
        The 32-character hex ``event_id`` of the written event.

    Raises:
        ValueError:      If *event_type* or *stream* is blank.
        AuditWriteError: If the write fails.
    """
    if not event_type or not event_type.strip():
        raise ValueError("append_event: event_type must be a non-empty string.")
    if not stream or not stream.strip():
        raise ValueError("append_event: stream must be a non-empty string.")

    event_id = uuid.uuid4().hex
    body: dict = {
        "event_id": event_id,
        "timestamp": datetime.now(UTC).isoformat(),
        "stream": stream,
        "event_type": event_type,
        "schema_version": _SCHEMA_VERSION,
        "player_id": player_id,
        "meta": meta if meta is not None else {},
        "data": data,
    }
    path = _stream_path(stream)

    try:
        envelope = {**body, "_checksum": f"sha256:{_compute_checksum(body)}"}
        line = json.dumps(envelope, ensure_ascii=False, sort_keys=True)
        _append_line_locked(path, line)
    except (OSError, TypeError, ValueError) as exc:
        raise AuditWriteError(
            f"Failed to write event {event_id!r} to audit stream {stream!r} at {path}: {exc}"
        ) from exc

    logger.debug("audit: appended %r event %s to %s", event_type, event_id, path.name)
    return event_id


def verify_audit_stream(stream: str = DEFAULT_STREAM) -> AuditVerifyResult:
    """Check that the last event of *stream* parses and its checksum matches."""
    path = _stream_path(stream)
    if not path.exists():
        return AuditVerifyResult(status="empty", last_event_id=None, error_detail=None)

    last_line = _read_last_nonempty_line(path)
    if last_line is None:
        return AuditVerifyResult(status="empty", last_event_id=None, error_detail=None)

    try:
        envelope = json.loads(last_line)
    except json.JSONDecodeError as exc:
        return AuditVerifyResult(
            status="corrupt", last_event_id=None, error_detail=f"Last line is not valid JSON: {exc}"
        )
    if not isinstance(envelope, dict):
        return AuditVerifyResult(
            status="corrupt",
            last_event_id=None,
            error_detail="Last line deserialised to a non-dict type.",
        )

    recorded = envelope.get("_checksum")
    if not isinstance(recorded, str):
        return AuditVerifyResult(
            status="corrupt",
            last_event_id=None,
            error_detail="Last line is missing or has a non-string '_checksum' field.",
        )

    body = {k: v for k, v in envelope.items() if k != "_checksum"}
    expected = f"sha256:{_compute_checksum(body)}"
    if recorded != expected:
        return AuditVerifyResult(
            status="corrupt",
            last_event_id=envelope.get("event_id"),
            error_detail=f"Checksum mismatch on last event. Recorded: {recorded!r}. "
            f"Expected: {expected!r}.",
        )

    event_id = envelope.get("event_id")
    if not isinstance(event_id, str) or not event_id:
        return AuditVerifyResult(
            status="corrupt",
            last_event_id=None,
            error_detail="Last line is missing a valid 'event_id' string.",
        )
    return AuditVerifyResult(status="ok", last_event_id=event_id, error_detail=None)


def read_events(stream: str = DEFAULT_STREAM) -> list[dict]:
    """Return every parseable event in *stream*, oldest first.

    Unparseable lines are skipped with a WARNING.  Intended for the CLI and
    tests; the engine never reads the audit trail.
    """
    path = _stream_path(stream)
    if not path.exists():
        return []
    events: list[dict] = []
    with path.open(encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            if not line.strip():
                continue
            try:
                events.append(json.loads(line))
            except json.JSONDecodeError:
                logger.warning("audit: skipping malformed line %d in %s", lineno, path.name)
    return events


# ── Internal helpers ──────────────────────────────────────────────────────────


def _stream_path(stream: str) -> Path:
    root = _AUDIT_ROOT if _AUDIT_ROOT is not None else config.audit.absolute_directory
    return root / f"{stream}.jsonl"


def _compute_checksum(payload: dict) -> str:
    canonical = json.dumps(payload, ensure_ascii=False, sort_keys=True)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _append_line_locked(path: Path, line: str) -> None:
    """Append *line* plus a newline under an exclusive ``fcntl`` lock (POSIX only)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as fh:
        fcntl.flock(fh, fcntl.LOCK_EX)
        try:
            fh.write(line + "\n")
            fh.flush()
        finally:
            fcntl.flock(fh, fcntl.LOCK_UN)


def _read_last_nonempty_line(path: Path) -> str | None:
    try:
        with path.open("rb") as fh:
            fh.seek(0, 2)
            size = fh.tell()
            if size == 0:
                return None
            fh.seek(max(0, size - _TAIL_CHUNK_BYTES))
            chunk = fh.read()
    except OSError:
        return None

    for line in reversed(chunk.decode("utf-8", errors="replace").splitlines()):
        if line.strip():
            return line.strip()
    return None

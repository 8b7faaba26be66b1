"""Ledger snapshot repository operations for the SQLite backend."""

from __future__ import annotations

import json
import uuid
from typing import NoReturn

from enchant_mastery.db.connection import connection_scope
from enchant_mastery.db.errors import (
    DatabaseError,
    DatabaseOperationContext,
    DatabaseReadError,
    DatabaseWriteError,
)
from enchant_mastery.db.schema import SCHEMA_VERSION
from enchant_mastery.state.ledger import MasteryLedger


def _raise_read_error(operation: str, exc: Exception, *, details: str | None = None) -> NoReturn:
    """Raise a typed repository read error while preserving chained cause."""
    if isinstance(exc, DatabaseError):
        raise exc
    raise DatabaseReadError(
        context=DatabaseOperationContext(operation=operation, details=details),
        cause=exc,
    ) from exc


def _raise_write_error(operation: str, exc: Exception, *, details: str | None = None) -> NoReturn:
    """Raise a typed repository write error while preserving chained cause."""
    if isinstance(exc, DatabaseError):
        raise exc
    raise DatabaseWriteError(
        context=DatabaseOperationContext(operation=operation, details=details),
        cause=exc,
    ) from exc


def save_snapshot(player_id: uuid.UUID, ledger: MasteryLedger) -> None:
    """Insert or replace the stored ledger of *player_id*."""
    payload = json.dumps(ledger.to_tree(), sort_keys=True)
    try:
        with connection_scope(write=True) as conn:
            conn.execute(
                """
                INSERT INTO player_mastery
                    (player_id, ledger_json, total_levels_spent, schema_version, updated_at)
                VALUES (?, ?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(player_id) DO UPDATE SET
                    ledger_json = excluded.ledger_json,
                    total_levels_spent = excluded.total_levels_spent,
                    schema_version = excluded.schema_version,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (str(player_id), payload, ledger.total_levels_spent, SCHEMA_VERSION),
            )
    except Exception as exc:
        _raise_write_error("ledger.save_snapshot", exc, details=f"player_id={player_id}")


def load_snapshot(player_id: uuid.UUID) -> MasteryLedger | None:
    """Return the stored ledger of *player_id*, or ``None`` if there is none.

    Malformed entries inside an otherwise valid tree are skipped by
    :meth:`MasteryLedger.from_tree`.  A row whose JSON cannot be parsed at all
    raises :exc:`DatabaseReadError`.
    """
    try:
        with connection_scope() as conn:
            row = conn.execute(
                "SELECT ledger_json FROM player_mastery WHERE player_id = ?",
                (str(player_id),),
            ).fetchone()
        if row is None:
            return None
        return MasteryLedger.from_tree(json.loads(row[0]))
    except Exception as exc:
        _raise_read_error("ledger.load_snapshot", exc, details=f"player_id={player_id}")


def delete_snapshot(player_id: uuid.UUID) -> bool:
    """Delete the stored ledger of *player_id*; return whether a row existed."""
    try:
        with connection_scope(write=True) as conn:
            cursor = conn.execute(
                "DELETE FROM player_mastery WHERE player_id = ?", (str(player_id),)
            )
            return cursor.rowcount > 0
    except Exception as exc:
        _raise_write_error("ledger.delete_snapshot", exc, details=f"player_id={player_id}")


def list_player_ids() -> list[uuid.UUID]:
    """Return every player with a stored ledger, most recently updated first."""
    try:
        with connection_scope() as conn:
            rows = conn.execute(
                "SELECT player_id FROM player_mastery ORDER BY updated_at DESC, player_id"
            ).fetchall()
        return [uuid.UUID(row[0]) for row in rows]
    except Exception as exc:
        _raise_read_error("ledger.list_player_ids", exc)


class SqliteLedgerRepository:
    """Adapter exposing the module functions as a store repository."""

    def load(self, player_id: uuid.UUID) -> MasteryLedger | None:
        return load_snapshot(player_id)

    def save(self, player_id: uuid.UUID, ledger: MasteryLedger) -> None:
        save_snapshot(player_id, ledger)

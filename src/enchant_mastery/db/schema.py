"""Schema creation for the mastery snapshot store.

One row per player holds the latest ledger tree as JSON.  The row is
rewritten wholesale on every save; history lives in the JSONL audit trail,
not here.
"""

from __future__ import annotations

import logging

from enchant_mastery.db.connection import connection_scope

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


def init_database() -> None:
    """Create the ``player_mastery`` table and its index if missing."""
    with connection_scope(write=True) as conn:
        cursor = conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS player_mastery (
                player_id TEXT PRIMARY KEY,
                ledger_json TEXT NOT NULL,
                total_levels_spent INTEGER NOT NULL DEFAULT 0
                    CHECK (total_levels_spent >= 0),
                schema_version INTEGER NOT NULL DEFAULT 1,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_player_mastery_updated_at "
            "ON player_mastery(updated_at)"
        )
    logger.info("Mastery database initialized")

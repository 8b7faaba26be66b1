"""
Event type constants for the mastery engine.

Events use "domain:action" format in PAST TENSE.  They record facts the
engine has already committed; a handler can react to them but can never
veto them.

=============================================================================
USAGE
=============================================================================

    from enchant_mastery.core.bus import bus
    from enchant_mastery.core.events import Events

    bus.on(Events.MASTERY_LEVELED_UP, announce_level_up)

=============================================================================
"""


class Events:
    """All event types emitted by the mastery engine, grouped by domain."""

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    MASTERY_ABSORBED = "mastery:absorbed"
    """
    Emitted after an absorb transaction commits.

    Detail: {
        "player_id": str,
        "enchantment_id": str,
        "level": int,       # New mastery level (= book level)
        "cost": int,        # Currency deducted
        "unlocked": list[int]  # Letter indices revealed by the cascade
    }
    """

    MASTERY_APPLIED = "mastery:applied"
    """
    Emitted after an apply transaction commits.

    Detail: {
        "player_id": str,
        "enchantment_id": str,
        "target_level": int,
        "visible_level": int,  # Level written on the item (host-capped)
        "cost": int,
        "xp_gained": int,
        "unlocked": list[int]
    }
    """

    MASTERY_REJECTED = "mastery:rejected"
    """
    Emitted when a transaction is rejected.  Nothing was mutated.

    Detail: {
        "player_id": str,
        "action": str,      # "absorb" or "apply"
        "reason": str,      # Rejection class name, e.g. "MasteryTooLow"
        "message": str
    }
    """

    MASTERY_LEVELED_UP = "mastery:leveled_up"
    """
    Emitted when mastery XP from an apply carries a mastery across one or
    more levels.

    Detail: {"player_id": str, "enchantment_id": str, "old_level": int, "new_level": int}
    """

    LETTER_UNLOCKED = "mastery:letter_unlocked"
    """
    Emitted once per letter revealed by the decode cascade.

    Detail: {
        "player_id": str,
        "enchantment_id": str,
        "index": int,       # Letter index (letters only, spaces not counted)
        "letter": str,
        "cost": int         # Budget consumed by this unlock
    }
    """

    # =========================================================================
    # ADMIN
    # =========================================================================

    MASTERY_OVERRIDDEN = "mastery:overridden"
    """
    Emitted after an admin command changed a ledger directly.

    Detail: {"player_id": str, "command": str, "enchantment_id": str | None, "level": int | None}
    """

    # =========================================================================
    # SYNC & LIFECYCLE
    # =========================================================================

    LEDGER_SYNCED = "ledger:synced"
    """
    Emitted after a snapshot was handed to the transport.

    Detail: {"player_id": str, "reason": str, "size": int}
    """

    PLAYER_ATTACHED = "player:attached"
    """
    Emitted when a player's ledger is attached to the store (login).

    Detail: {"player_id": str, "loaded": bool}  # loaded = restored from storage
    """

    PLAYER_RESPAWNED = "player:respawned"
    """
    Emitted after a respawn was processed.

    Detail: {"player_id": str, "after_death": bool}
    """


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def get_all_event_types() -> list[str]:
    """Return every event type defined on :class:`Events`, sorted."""
    return sorted(
        value
        for name, value in vars(Events).items()
        if isinstance(value, str) and not name.startswith("_")
    )


def is_valid_event_type(event_type: str) -> bool:
    return event_type in get_all_event_types()

"""
Command-line interface for Enchant Mastery.

Operates on the SQLite snapshot store and the YAML enchantment catalog named
in the engine config.

Usage:
    enchant-mastery init-db
    enchant-mastery list PLAYER
    enchant-mastery set PLAYER ENCHANTMENT LEVEL
    enchant-mastery reset PLAYER
    enchant-mastery stats PLAYER
    enchant-mastery absorb PLAYER ENCHANTMENT LEVEL --balance N
    enchant-mastery apply PLAYER ENCHANTMENT LEVEL --item KIND --balance N
    enchant-mastery show PLAYER

PLAYER is a UUID, or a name that is mapped to a stable name-based UUID.

Environment Variables:
    MASTERY_DB_PATH:      SQLite database file (default: data/mastery.db)
    MASTERY_CATALOG_PATH: Enchantment catalog YAML
    MASTERY_POLICY_PATH:  Progression policy YAML
"""

from __future__ import annotations

import argparse
import logging
import sys
import uuid

from enchant_mastery.config import config, configure_logging

logger = logging.getLogger(__name__)

#: Namespace for name-derived player ids.
PLAYER_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "enchant-mastery:player")


def parse_player(raw: str) -> uuid.UUID:
    """Return *raw* as a UUID, deriving one from the name when it is not a UUID."""
    try:
        return uuid.UUID(raw)
    except ValueError:
        return uuid.uuid5(PLAYER_NAMESPACE, raw.lower())


def build_engine(*, balance: int | None = None, player_id: uuid.UUID | None = None):
    """Wire an engine against the configured database, catalog and policy.

    Returns:
        ``(engine, catalog, wallet)``.
    """
    from enchant_mastery.core.bus import bus
    from enchant_mastery.db.ledger_repo import SqliteLedgerRepository
    from enchant_mastery.db.schema import init_database
    from enchant_mastery.host.memory import Wallet, load_catalog
    from enchant_mastery.progression.engine import MasteryEngine
    from enchant_mastery.progression.policy import DEFAULT_POLICY, load_progression_policy
    from enchant_mastery.state.store import LedgerStore

    init_database()
    catalog = load_catalog(config.engine.catalog_absolute_path)
    try:
        policy = load_progression_policy(config.engine.policy_absolute_path)
    except FileNotFoundError:
        logger.warning("No progression policy at %s; using defaults", config.engine.policy_path)
        policy = DEFAULT_POLICY

    wallet = Wallet()
    if balance is not None and player_id is not None:
        wallet.set_balance(player_id, balance)

    engine = MasteryEngine(
        store=LedgerStore(SqliteLedgerRepository()),
        registry=catalog,
        currency=wallet,
        policy=policy,
        bus=bus,
    )
    return engine, catalog, wallet


# =============================================================================
# COMMANDS
# =============================================================================


def cmd_init_db(args: argparse.Namespace) -> int:
    """Create the database schema.  Returns 0 on success, 1 on error."""
    from enchant_mastery.db.schema import init_database

    try:
        init_database()
    except Exception as e:
        print(f"Error initializing database: {e}", file=sys.stderr)
        return 1
    print(f"Database initialized at {config.database.absolute_path}")
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    from enchant_mastery.admin import list_mastery
    from enchant_mastery.presentation import to_roman

    engine, _, _ = build_engine()
    entries = list_mastery(engine, parse_player(args.player))
    if not entries:
        print("No enchantments learned yet.")
        return 0
    print("Learned enchantments:")
    for eid, level in entries:
        print(f"  {eid} {to_roman(level)}")
    return 0


def cmd_set(args: argparse.Namespace) -> int:
    from enchant_mastery.admin import set_mastery

    engine, _, _ = build_engine()
    try:
        eid = set_mastery(engine, parse_player(args.player), args.enchantment, args.level)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(f"Set {eid} mastery to {args.level}")
    return 0


def cmd_reset(args: argparse.Namespace) -> int:
    from enchant_mastery.admin import reset_mastery

    engine, _, _ = build_engine()
    reset_mastery(engine, parse_player(args.player))
    print("Reset all mastery data.")
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    from enchant_mastery.admin import mastery_stats

    engine, _, _ = build_engine()
    stats = mastery_stats(engine, parse_player(args.player))
    print("Mastery Stats:")
    print(f"  Enchantments learned: {stats.enchantments_learned}")
    print(f"  Total levels spent: {stats.total_levels_spent}")
    print(f"  Combined mastery: {stats.combined_mastery}")
    return 0


def cmd_absorb(args: argparse.Namespace) -> int:
    from enchant_mastery.host.memory import Item

    player_id = parse_player(args.player)
    engine, _, wallet = build_engine(balance=args.balance, player_id=player_id)
    result = engine.try_absorb(player_id, Item.book(args.enchantment, args.level))
    if not result.ok:
        print(f"Rejected ({result.rejection.reason}): {result.rejection.message}")
        return 2
    print(
        f"Absorbed {result.enchantment_id} {result.new_level} for {result.cost} levels; "
        f"{wallet.balance(player_id)} left."
    )
    for unlock in result.decode.unlocks:
        print(f"  decoded letter {unlock.index}: {unlock.letter!r}")
    return 0


def cmd_apply(args: argparse.Namespace) -> int:
    from enchant_mastery.host.memory import Item
    from enchant_mastery.presentation import format_enchantment_line
    from enchant_mastery.state.effective_levels import effective_level

    player_id = parse_player(args.player)
    engine, catalog, wallet = build_engine(balance=args.balance, player_id=player_id)
    item = Item(kind=args.item)
    result = engine.try_select_and_apply(player_id, item, args.enchantment, args.level)
    if not result.ok:
        print(f"Rejected ({result.rejection.reason}): {result.rejection.message}")
        return 2

    eid = result.enchantment_id
    line = format_enchantment_line(
        catalog.display_name(eid),
        engine.store.get(player_id).unlocked_letters(eid),
        effective_level(item, eid),
        catalog.max_level(eid),
    )
    print(f"{args.item}: {line}")
    print(
        f"Paid {result.cost} levels ({wallet.balance(player_id)} left), "
        f"+{result.xp_gained} mastery xp, mastery {result.old_mastery} -> {result.new_mastery}"
    )
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    from enchant_mastery.presentation import render_decoded_name, to_roman
    from enchant_mastery.progression.curves import xp_threshold
    from enchant_mastery.progression.decoding import unlock_progress

    player_id = parse_player(args.player)
    engine, catalog, _ = build_engine()
    ledger = engine.store.get(player_id)
    levels = ledger.mastery_levels()
    if not levels:
        print("No enchantments learned yet.")
        return 0

    curves = engine.policy.curves
    for eid in sorted(levels):
        name = catalog.display_name(eid) if catalog.knows(eid) else eid
        unlocked = ledger.unlocked_letters(eid)
        level = levels[eid]
        print(
            f"{render_decoded_name(name, unlocked):<24} {to_roman(level):<6} "
            f"xp {ledger.mastery_xp(eid)}/{xp_threshold(level, curves=curves)}  "
            f"decoded {unlock_progress(name, unlocked):.0%}"
        )
    print(f"Total levels spent: {ledger.total_levels_spent}")
    return 0


# =============================================================================
# ENTRY POINT
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="enchant-mastery",
        description="Enchant Mastery - per-player enchantment progression",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    init_parser = subparsers.add_parser("init-db", help="Initialize the database schema")
    init_parser.set_defaults(func=cmd_init_db)

    for name, func, help_text in (
        ("list", cmd_list, "List learned enchantments"),
        ("reset", cmd_reset, "Reset all mastery data of a player"),
        ("stats", cmd_stats, "Show mastery statistics"),
        ("show", cmd_show, "Show decoded names, levels and XP"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("player", help="Player UUID or name")
        sub.set_defaults(func=func)

    set_parser = subparsers.add_parser("set", help="Set a mastery level (0 clears)")
    set_parser.add_argument("player", help="Player UUID or name")
    set_parser.add_argument("enchantment", help="Enchantment id, e.g. minecraft:sharpness")
    set_parser.add_argument("level", type=int, help="Level between 0 and 1000")
    set_parser.set_defaults(func=cmd_set)

    absorb_parser = subparsers.add_parser("absorb", help="Absorb a single-enchantment book")
    absorb_parser.add_argument("player", help="Player UUID or name")
    absorb_parser.add_argument("enchantment", help="Enchantment stored on the book")
    absorb_parser.add_argument("level", type=int, help="Book level")
    absorb_parser.add_argument(
        "--balance", type=int, default=30, help="Currency available (default: 30)"
    )
    absorb_parser.set_defaults(func=cmd_absorb)

    apply_parser = subparsers.add_parser("apply", help="Apply a mastered enchantment to an item")
    apply_parser.add_argument("player", help="Player UUID or name")
    apply_parser.add_argument("enchantment", help="Enchantment id")
    apply_parser.add_argument("level", type=int, help="Target level")
    apply_parser.add_argument("--item", default="sword", help="Item kind (default: sword)")
    apply_parser.add_argument(
        "--balance", type=int, default=30, help="Currency available (default: 30)"
    )
    apply_parser.set_defaults(func=cmd_apply)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    configure_logging()
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())

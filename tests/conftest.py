"""
Shared pytest fixtures for the Enchant Mastery test suite.

This module provides fixtures that are automatically available to all test files:
- A fresh event bus per test
- Audit writes redirected into tmp_path
- Temporary SQLite databases
- An in-memory enchantment catalog, wallet and ledger store
- A fully wired MasteryEngine with a loopback mirror transport
"""

import uuid
from collections.abc import Generator
from pathlib import Path

import pytest

import enchant_mastery.audit.writer as _audit_writer
from enchant_mastery.config import use_test_database
from enchant_mastery.core.bus import MasteryBus
from enchant_mastery.db.schema import init_database
from enchant_mastery.host.memory import EnchantmentCatalog, EnchantmentDefinition, Wallet
from enchant_mastery.progression.engine import MasteryEngine
from enchant_mastery.state.store import LedgerStore
from enchant_mastery.sync.mirror import LoopbackTransport
from enchant_mastery.sync.projection import SyncProjection
from tests.constants import INFINITY, MENDING, POWER, SHARPNESS, SMITE, UNBREAKING

_TOOLS = frozenset({"sword", "axe", "pickaxe", "bow"})

# ============================================================================
# ISOLATION FIXTURES
# ============================================================================


@pytest.fixture(autouse=True)
def reset_bus() -> Generator[None, None, None]:
    """Give every test its own bus singleton."""
    MasteryBus.reset_for_testing()
    yield
    MasteryBus.reset_for_testing()


@pytest.fixture(autouse=True)
def audit_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """
    Redirect all audit writes into a per-test temporary directory.

    Autouse so that no test, including the CLI tests, ever appends to the
    real data/audit/ directory.
    """
    root = tmp_path / "audit"
    monkeypatch.setattr(_audit_writer, "_AUDIT_ROOT", root)
    return root


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Generator[Path, None, None]:
    """
    Point the config at a temporary database file for the duration of a test.

    Yields:
        Path to the temporary database file (not yet created).
    """
    with use_test_database(tmp_path / "test_mastery.db") as db_path:
        yield db_path


@pytest.fixture
def test_db(temp_db_path: Path) -> Generator[Path, None, None]:
    """Initialize the schema in the temporary database."""
    init_database()
    yield temp_db_path


# ============================================================================
# DOMAIN FIXTURES
# ============================================================================


@pytest.fixture
def test_bus() -> MasteryBus:
    """Fresh bus instance (the singleton was reset by ``reset_bus``)."""
    return MasteryBus()


@pytest.fixture
def catalog() -> EnchantmentCatalog:
    """
    Small catalog covering every compatibility rule.

    - sharpness / smite share the ``damage`` exclusive group
    - mending / infinity are explicitly incompatible
    - power only goes on bows
    """
    return EnchantmentCatalog(
        [
            EnchantmentDefinition(
                SHARPNESS,
                "Sharpness",
                max_level=5,
                targets=frozenset({"sword", "axe"}),
                exclusive_group="damage",
            ),
            EnchantmentDefinition(
                SMITE,
                "Smite",
                max_level=5,
                targets=frozenset({"sword", "axe"}),
                exclusive_group="damage",
            ),
            EnchantmentDefinition(
                MENDING,
                "Mending",
                max_level=1,
                targets=_TOOLS,
                incompatible=frozenset({INFINITY}),
            ),
            EnchantmentDefinition(INFINITY, "Infinity", max_level=1, targets=frozenset({"bow"})),
            EnchantmentDefinition(POWER, "Power", max_level=5, targets=frozenset({"bow"})),
            EnchantmentDefinition(UNBREAKING, "Unbreaking", max_level=3, targets=_TOOLS),
        ]
    )


@pytest.fixture
def player_id() -> uuid.UUID:
    return uuid.UUID("6f1b7a52-3c2d-4e8f-9a10-5b4c3d2e1f00")


@pytest.fixture
def wallet() -> Wallet:
    return Wallet()


@pytest.fixture
def store() -> LedgerStore:
    """In-memory store with no persistence backend."""
    return LedgerStore()


@pytest.fixture
def transport() -> LoopbackTransport:
    return LoopbackTransport()


@pytest.fixture
def engine(
    store: LedgerStore,
    catalog: EnchantmentCatalog,
    wallet: Wallet,
    test_bus: MasteryBus,
    transport: LoopbackTransport,
) -> MasteryEngine:
    """
    Engine wired to the in-memory collaborators.

    Audit is enabled; the autouse ``audit_root`` fixture keeps it in tmp_path.
    """
    return MasteryEngine(
        store=store,
        registry=catalog,
        currency=wallet,
        bus=test_bus,
        sync=SyncProjection(transport, bus=test_bus, enabled=True),
        audit_enabled=True,
    )

"""
Engine configuration management.

This module handles loading and accessing engine configuration from multiple
sources with a clear priority order:

    1. Environment variables (highest priority) - for containerized deployments
    2. Config file (config/engine.ini) - for static deployments
    3. Built-in defaults (lowest priority) - sensible fallbacks

Configuration is loaded once at module import time and cached. The EngineConfig
dataclass provides typed access to all settings.

Usage:
    from enchant_mastery.config import config

    print(config.engine.policy_absolute_path)
    print(config.audit.enabled)

Environment Variable Mapping:
    MASTERY_POLICY_PATH    -> engine.policy_path
    MASTERY_CATALOG_PATH   -> engine.catalog_path
    MASTERY_DB_PATH        -> database.path
    MASTERY_AUDIT_ENABLED  -> audit.enabled
    MASTERY_AUDIT_DIR      -> audit.directory
    MASTERY_SYNC_ENABLED   -> sync.enabled
    MASTERY_LOG_LEVEL      -> logging.level
    MASTERY_LOG_FORMAT     -> logging.format
"""

import configparser
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

# =============================================================================
# PATH CONFIGURATION
# =============================================================================

# Project root directory (contains src/, config/, data/)
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Config file paths
CONFIG_DIR = PROJECT_ROOT / "config"
CONFIG_FILE = CONFIG_DIR / "engine.ini"
CONFIG_EXAMPLE = CONFIG_DIR / "engine.example.ini"

_LOG_FORMATS = {
    "simple": "%(levelname)s %(message)s",
    "detailed": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
    "json": (
        '{"time": "%(asctime)s", "level": "%(levelname)s", '
        '"logger": "%(name)s", "message": "%(message)s"}'
    ),
}


def _resolve(path: str) -> Path:
    p = Path(path)
    if p.is_absolute():
        return p
    return PROJECT_ROOT / p


# =============================================================================
# CONFIGURATION DATACLASSES
# =============================================================================


@dataclass
class EngineSettings:
    """Progression policy and enchantment catalog locations."""

    policy_path: str = "data/policies/progression.yaml"
    catalog_path: str = "data/catalog/enchantments.yaml"

    @property
    def policy_absolute_path(self) -> Path:
        """Get absolute path to the progression policy YAML."""
        return _resolve(self.policy_path)

    @property
    def catalog_absolute_path(self) -> Path:
        """Get absolute path to the enchantment catalog YAML."""
        return _resolve(self.catalog_path)


@dataclass
class DatabaseSettings:
    """Database configuration."""

    path: str = "data/mastery.db"

    @property
    def absolute_path(self) -> Path:
        """Get absolute path to database file."""
        return _resolve(self.path)


@dataclass
class AuditSettings:
    """JSONL audit trail configuration."""

    enabled: bool = True
    directory: str = "data/audit"

    @property
    def absolute_directory(self) -> Path:
        return _resolve(self.directory)


@dataclass
class SyncSettings:
    """Mirror synchronisation configuration."""

    enabled: bool = True


@dataclass
class LoggingSettings:
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["simple", "detailed", "json"] = "detailed"


@dataclass
class EngineConfig:
    """
    Complete engine configuration.

    This is the main configuration object that aggregates all settings sections.
    Access via the module-level `config` singleton.
    """

    engine: EngineSettings = field(default_factory=EngineSettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    audit: AuditSettings = field(default_factory=AuditSettings)
    sync: SyncSettings = field(default_factory=SyncSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)


# =============================================================================
# CONFIGURATION LOADING
# =============================================================================


def _parse_bool(value: str) -> bool:
    """Parse a string value to boolean."""
    return value.lower() in ("true", "yes", "1", "on", "enabled")


def _load_from_ini(parser: configparser.ConfigParser, cfg: EngineConfig) -> None:
    """Load configuration from parsed INI file into EngineConfig."""
    # Engine section
    if parser.has_section("engine"):
        if parser.has_option("engine", "policy_path"):
            cfg.engine.policy_path = parser.get("engine", "policy_path")
        if parser.has_option("engine", "catalog_path"):
            cfg.engine.catalog_path = parser.get("engine", "catalog_path")

    # Database section
    if parser.has_section("database"):
        if parser.has_option("database", "path"):
            cfg.database.path = parser.get("database", "path")

    # Audit section
    if parser.has_section("audit"):
        if parser.has_option("audit", "enabled"):
            cfg.audit.enabled = _parse_bool(parser.get("audit", "enabled"))
        if parser.has_option("audit", "directory"):
            cfg.audit.directory = parser.get("audit", "directory")

    # Sync section
    if parser.has_section("sync"):
        if parser.has_option("sync", "enabled"):
            cfg.sync.enabled = _parse_bool(parser.get("sync", "enabled"))

    # Logging section
    if parser.has_section("logging"):
        if parser.has_option("logging", "level"):
            cfg.logging.level = parser.get("logging", "level").upper()
        if parser.has_option("logging", "format"):
            val = parser.get("logging", "format").lower()
            if val in _LOG_FORMATS:
                cfg.logging.format = val  # type: ignore[assignment]


def _apply_env_overrides(cfg: EngineConfig) -> None:
    """Apply environment variable overrides to configuration."""
    if env_policy := os.getenv("MASTERY_POLICY_PATH"):
        cfg.engine.policy_path = env_policy
    if env_catalog := os.getenv("MASTERY_CATALOG_PATH"):
        cfg.engine.catalog_path = env_catalog

    if env_db := os.getenv("MASTERY_DB_PATH"):
        cfg.database.path = env_db

    if env_audit := os.getenv("MASTERY_AUDIT_ENABLED"):
        cfg.audit.enabled = _parse_bool(env_audit)
    if env_audit_dir := os.getenv("MASTERY_AUDIT_DIR"):
        cfg.audit.directory = env_audit_dir

    if env_sync := os.getenv("MASTERY_SYNC_ENABLED"):
        cfg.sync.enabled = _parse_bool(env_sync)

    if env_log := os.getenv("MASTERY_LOG_LEVEL"):
        cfg.logging.level = env_log.upper()
    if env_log_format := os.getenv("MASTERY_LOG_FORMAT"):
        if env_log_format.lower() in _LOG_FORMATS:
            cfg.logging.format = env_log_format.lower()  # type: ignore[assignment]


def load_config() -> EngineConfig:
    """
    Load configuration from all sources with proper priority.

    Priority (highest wins):
        1. Environment variables
        2. config/engine.ini
        3. config/engine.example.ini (fallback for development)
        4. Built-in defaults

    Returns:
        EngineConfig: Fully populated configuration object.
    """
    cfg = EngineConfig()

    config_file = None
    if CONFIG_FILE.exists():
        config_file = CONFIG_FILE
    elif CONFIG_EXAMPLE.exists():
        config_file = CONFIG_EXAMPLE

    if config_file:
        parser = configparser.ConfigParser()
        parser.read(config_file)
        _load_from_ini(parser, cfg)

    _apply_env_overrides(cfg)

    return cfg


def reload_config() -> "EngineConfig":
    """
    Reload configuration from disk and environment.

    This updates the module-level `config` singleton.  Engines that were
    already constructed keep the policy they loaded.

    Returns:
        EngineConfig: The newly loaded configuration.
    """
    global config
    config = load_config()
    return config


# =============================================================================
# MODULE-LEVEL SINGLETON
# =============================================================================

config = load_config()


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def configure_logging(cfg: EngineConfig | None = None) -> None:
    """Apply the ``[logging]`` settings to the root logger.

    Unknown level names fall back to ``INFO``.
    """
    cfg = cfg or config
    level = logging.getLevelName(cfg.logging.level)
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, format=_LOG_FORMATS[cfg.logging.format], force=True)


def get_config_status() -> dict:
    """
    Get configuration status for diagnostics.

    Returns a dictionary with configuration source information.
    """
    return {
        "config_file_exists": CONFIG_FILE.exists(),
        "config_file_path": str(CONFIG_FILE),
        "using_example": not CONFIG_FILE.exists() and CONFIG_EXAMPLE.exists(),
        "policy_path": str(config.engine.policy_absolute_path),
        "catalog_path": str(config.engine.catalog_absolute_path),
        "database_path": str(config.database.absolute_path),
        "audit_enabled": config.audit.enabled,
        "sync_enabled": config.sync.enabled,
    }


# =============================================================================
# TEST HELPERS
# =============================================================================


class use_test_database:
    """
    Context manager for using a temporary test database.

    Usage:
        from enchant_mastery.config import use_test_database

        def test_something(tmp_path):
            with use_test_database(tmp_path / "test.db"):
                init_database()

    Args:
        db_path: Path to the test database file
    """

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self.original_path: str | None = None

    def __enter__(self) -> Path:
        """Set up test database path."""
        self.original_path = config.database.path
        config.database.path = str(self.db_path)
        return self.db_path

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Restore original database path."""
        if self.original_path is not None:
            config.database.path = self.original_path
        return None

"""
Configuration management for Cadence.

This module loads the library store settings (database path, SQLite pragmas,
connection layout, search defaults) from a TOML file.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Path to the config directory
CONFIG_DIR = Path(__file__).parent

_JOURNAL_MODES = frozenset({"delete", "truncate", "persist", "memory", "wal", "off"})
_SYNCHRONOUS_MODES = frozenset({"off", "normal", "full", "extra"})


@dataclass(frozen=True)
class StorageConfig:
    """Loaded storage configuration."""

    db_path: str = "cadence.db"
    journal_mode: str = "wal"
    synchronous: str = "normal"
    busy_timeout_ms: int = 5000
    cache_size: int = -8000
    mmap_size: int = 0
    reader_connection: bool = True
    search_limit: int | None = 200

    def pragmas(self) -> list[str]:
        """PRAGMA statements applied to every connection, in order."""
        return [
            f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)};",
            f"PRAGMA synchronous = {self.synchronous.upper()};",
            f"PRAGMA cache_size = {int(self.cache_size)};",
            f"PRAGMA mmap_size = {int(self.mmap_size)};",
            "PRAGMA temp_store = MEMORY;",
        ]


def _choice(value: Any, allowed: frozenset[str], default: str, key: str) -> str:
    text = str(value).lower()
    if text not in allowed:
        logger.warning("Ignoring invalid %s=%r, using %r", key, value, default)
        return default
    return text


def parse_storage_config(data: dict[str, Any]) -> StorageConfig:
    """Build a StorageConfig from parsed TOML data."""
    defaults = StorageConfig()
    database = data.get("database", {})
    pragmas = data.get("pragmas", {})
    connections = data.get("connections", {})
    search = data.get("search", {})

    limit = int(search.get("limit", defaults.search_limit or 0))

    return StorageConfig(
        db_path=str(database.get("path", defaults.db_path)),
        journal_mode=_choice(
            pragmas.get("journal_mode", defaults.journal_mode),
            _JOURNAL_MODES,
            defaults.journal_mode,
            "journal_mode",
        ),
        synchronous=_choice(
            pragmas.get("synchronous", defaults.synchronous),
            _SYNCHRONOUS_MODES,
            defaults.synchronous,
            "synchronous",
        ),
        busy_timeout_ms=int(pragmas.get("busy_timeout_ms", defaults.busy_timeout_ms)),
        cache_size=int(pragmas.get("cache_size", defaults.cache_size)),
        mmap_size=int(pragmas.get("mmap_size", defaults.mmap_size)),
        reader_connection=bool(connections.get("reader", defaults.reader_connection)),
        search_limit=limit if limit > 0 else None,
    )


def load_storage_config(config_path: Path | None = None) -> StorageConfig:
    """
    Load storage configuration from TOML file.

    Args:
        config_path: Path to storage.toml. If None, uses default location.

    Returns:
        Loaded StorageConfig instance.
    """
    if config_path is None:
        config_path = CONFIG_DIR / "storage.toml"

    logger.debug("Loading storage config from %s", config_path)

    with config_path.open("rb") as f:
        data = tomllib.load(f)

    return parse_storage_config(data)


# Global singleton instance (lazy loaded)
_storage_config: StorageConfig | None = None


def get_storage_config() -> StorageConfig:
    """
    Get the global storage configuration (lazy loaded singleton).

    Returns:
        The StorageConfig instance.
    """
    global _storage_config

    if _storage_config is None:
        _storage_config = load_storage_config()

    return _storage_config


def reload_storage_config(config_path: Path | None = None) -> StorageConfig:
    """Force reload of storage configuration."""
    global _storage_config
    _storage_config = load_storage_config(config_path)
    return _storage_config

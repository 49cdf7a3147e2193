"""
Core domain package.

This package contains the library storage engine, which is independent of any
UI layer. The goal is to keep this layer small, testable, and free of
presentation concerns.

We intentionally keep exports minimal; consumers should usually import from the
specific module they need (e.g. `cadence.core.library_store`).
"""

from __future__ import annotations

__all__: list[str] = [
    "CoreError",
    "StorageError",
    "NotFoundError",
    "ReferentialIntegrityError",
    "DuplicateEntryError",
    "KindMismatchError",
    "OrderingConflictError",
    "StorageUnavailableError",
]


class CoreError(Exception):
    """Base class for core-layer exceptions."""


class StorageError(CoreError):
    """Base class for errors raised by the library store."""


class NotFoundError(StorageError):
    """Raised when an entity (playable/artist/playlist/etc.) cannot be found."""


class ReferentialIntegrityError(StorageError):
    """Raised when a write would violate a foreign-key or uniqueness constraint."""


class DuplicateEntryError(ReferentialIntegrityError):
    """Raised when a unique name, source locator or membership already exists."""


class KindMismatchError(StorageError):
    """Raised when an operation is not valid for a playlist's kind."""


class OrderingConflictError(StorageError):
    """Raised when a playlist position is duplicated or out of range."""


class StorageUnavailableError(StorageError):
    """Raised when the database cannot be reached (closed, locked, unreadable)."""

"""
Persistent Storage Module.

Provides SQLite-backed persistence for:
- Shielded account states
- Token to account index assignments
- Storage schema version
"""

from shielder.core.storage.sqlite_adapter import SQLiteAdapter
from shielder.core.storage.storage_manager import StorageManager

__all__ = ["SQLiteAdapter", "StorageManager"]
